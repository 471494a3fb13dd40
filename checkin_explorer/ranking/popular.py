import logging
from datetime import datetime
from typing import Dict, List, Set

from checkin_explorer.core.errors import InvalidArgument
from checkin_explorer.models import GeoBounds, PopularityRecord, as_utc
from checkin_explorer.store.base import CheckInQuery, CheckInStore, Ordering

logger = logging.getLogger(__name__)

MAX_LIMIT = 100


class PopularPOIAggregator:
    def __init__(self, store: CheckInStore):
        self.store = store

    async def rank_popular_locations(
        self,
        start_time: datetime,
        end_time: datetime,
        bounds: GeoBounds,
        limit: int = 20,
    ) -> List[PopularityRecord]:
        """
        Rank locations inside `bounds` by check-ins in [start_time, end_time].

        Order: check-in count desc, then unique users desc, then location id asc.
        A location's coordinates are those of its earliest check-in in range.

        Every matching check-in is fetched and grouped here, so cost grows
        with the number of check-ins in the box and window. Counts are exact;
        an Elasticsearch `cardinality` aggregation would only approximate
        unique users.
        """
        self._validate(start_time, end_time, bounds, limit)

        check_ins = await self.store.query(
            CheckInQuery(
                start_time=as_utc(start_time),
                end_time=as_utc(end_time),
                bounds=bounds,
                order=Ordering.TIME_ASC,
            )
        )

        records: Dict[int, PopularityRecord] = {}
        users: Dict[int, Set[int]] = {}
        for c in check_ins:
            record = records.get(c.location_id)
            if record is None:
                record = PopularityRecord(
                    location_id=c.location_id,
                    latitude=c.latitude,
                    longitude=c.longitude,
                    check_in_count=0,
                    unique_user_count=0,
                )
                records[c.location_id] = record
                users[c.location_id] = set()
            record.check_in_count += 1
            users[c.location_id].add(c.user_id)

        for location_id, record in records.items():
            record.unique_user_count = len(users[location_id])

        ranked = sorted(
            records.values(),
            key=lambda r: (-r.check_in_count, -r.unique_user_count, r.location_id),
        )
        logger.info(
            f"Popular locations: {len(check_ins)} check-ins, "
            f"{len(ranked)} locations, returning {min(limit, len(ranked))}"
        )
        return ranked[:limit]

    @staticmethod
    def _validate(start_time, end_time, bounds: GeoBounds, limit):
        if as_utc(start_time) > as_utc(end_time):
            raise InvalidArgument("End date must be after start date")
        if bounds.south > bounds.north:
            raise InvalidArgument("South bound must not exceed north bound")
        for name in ("north", "south"):
            if not -90 <= getattr(bounds, name) <= 90:
                raise InvalidArgument(f"{name.capitalize()} bound must be within [-90, 90]")
        for name in ("east", "west"):
            if not -180 <= getattr(bounds, name) <= 180:
                raise InvalidArgument(f"{name.capitalize()} bound must be within [-180, 180]")
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
            raise InvalidArgument(f"Limit must be an integer in [1, {MAX_LIMIT}]")
