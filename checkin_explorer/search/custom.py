import logging
from typing import List, Tuple

from checkin_explorer.core.config import settings
from checkin_explorer.core.errors import InvalidArgument
from checkin_explorer.models import CheckIn, SearchCriteria, SortMode
from checkin_explorer.store.base import CheckInQuery, CheckInStore, Ordering

logger = logging.getLogger(__name__)

MIN_LIMIT = 10
MAX_LIMIT = 1000

SORT_ORDERING = {
    SortMode.TIME_DESC: Ordering.TIME_DESC,
    SortMode.TIME_ASC: Ordering.TIME_ASC,
    SortMode.DISTANCE_ASC: Ordering.DISTANCE_ASC,
    SortMode.DISTANCE_DESC: Ordering.DISTANCE_DESC,
}


def _positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class CustomSearchEngine:
    def __init__(self, store: CheckInStore, reference: Tuple[float, float] = None):
        self.store = store
        # Distance sorts measure from here
        self.reference = reference or (
            settings.REFERENCE_LATITUDE,
            settings.REFERENCE_LONGITUDE,
        )

    async def search(self, criteria: SearchCriteria) -> List[CheckIn]:
        if criteria.user_id is None and criteria.location_id is None:
            raise InvalidArgument("At least one of userId or locationId is required")
        for name, value in (("User", criteria.user_id), ("Location", criteria.location_id)):
            if value is not None and not _positive_int(value):
                raise InvalidArgument(f"{name} ID must be a positive integer")
        if not MIN_LIMIT <= criteria.limit <= MAX_LIMIT:
            raise InvalidArgument(f"Limit must be in [{MIN_LIMIT}, {MAX_LIMIT}]")

        ordering = SORT_ORDERING[criteria.sort_mode]
        results = await self.store.query(
            CheckInQuery(
                user_id=criteria.user_id,
                location_id=criteria.location_id,
                order=ordering,
                reference=self.reference if ordering.by_distance else None,
                limit=criteria.limit,
            )
        )
        logger.info(
            f"Custom search user={criteria.user_id} location={criteria.location_id} "
            f"sort={ordering.value}: {len(results)} results"
        )
        return results
