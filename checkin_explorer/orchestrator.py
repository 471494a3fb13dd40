import logging
from datetime import datetime
from typing import List

from checkin_explorer.core.config import settings
from checkin_explorer.core.errors import InvalidArgument
from checkin_explorer.correlation.trajectory import TrajectoryCorrelator
from checkin_explorer.models import (
    CheckIn,
    GeoBounds,
    PopularityRecord,
    SearchCriteria,
    TrajectoryPoint,
    as_utc,
)
from checkin_explorer.ranking.popular import PopularPOIAggregator
from checkin_explorer.search.custom import CustomSearchEngine
from checkin_explorer.store.base import CheckInStore

logger = logging.getLogger(__name__)


class QueryOrchestrator:
    """
    Entry point for the query engine.

    Checks the cross-field rules (date order, at least one search id) before
    anything reaches the store, then hands the request to the component that
    answers it and returns that result as is.
    """

    def __init__(self, store: CheckInStore):
        self.store = store
        self.correlator = TrajectoryCorrelator(store)
        self.aggregator = PopularPOIAggregator(store)
        self.search_engine = CustomSearchEngine(store)

    async def build_trajectory(
        self, user_id: int, start_time: datetime, end_time: datetime, radius_km: float
    ) -> List[TrajectoryPoint]:
        self._check_dates(start_time, end_time)
        return await self.correlator.build_trajectory(
            user_id, start_time, end_time, radius_km
        )

    async def rank_popular_locations(
        self, start_time: datetime, end_time: datetime, bounds: GeoBounds, limit: int = 20
    ) -> List[PopularityRecord]:
        self._check_dates(start_time, end_time)
        return await self.aggregator.rank_popular_locations(
            start_time, end_time, bounds, limit
        )

    async def search(self, criteria: SearchCriteria) -> List[CheckIn]:
        if criteria.user_id is None and criteria.location_id is None:
            raise InvalidArgument("At least one of userId or locationId is required")
        return await self.search_engine.search(criteria)

    async def available_user_ids(self) -> List[int]:
        return await self.store.distinct_user_ids(settings.DISTINCT_ID_LIMIT)

    async def available_location_ids(self) -> List[int]:
        return await self.store.distinct_location_ids(settings.DISTINCT_ID_LIMIT)

    @staticmethod
    def _check_dates(start_time: datetime, end_time: datetime):
        if as_utc(start_time) > as_utc(end_time):
            raise InvalidArgument("End date must be after start date")
