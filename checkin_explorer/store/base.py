from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from checkin_explorer.models import CheckIn, GeoBounds


class Ordering(str, Enum):
    NONE = "none"
    TIME_ASC = "time-asc"
    TIME_DESC = "time-desc"
    DISTANCE_ASC = "distance-asc"
    DISTANCE_DESC = "distance-desc"

    @property
    def by_distance(self) -> bool:
        return self in (Ordering.DISTANCE_ASC, Ordering.DISTANCE_DESC)


@dataclass(frozen=True)
class NearPoint:
    latitude: float
    longitude: float
    radius_km: float


@dataclass(frozen=True)
class CheckInQuery:
    """
    Conjunction of predicates over check-in records.

    Distance orderings sort by great-circle distance from `reference` and break
    ties by timestamp descending, then user id and location id ascending.
    A `limit` of None returns every match.
    """

    user_id: Optional[int] = None
    exclude_user_id: Optional[int] = None
    location_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    bounds: Optional[GeoBounds] = None
    near: Optional[NearPoint] = None
    order: Ordering = Ordering.NONE
    reference: Optional[Tuple[float, float]] = None
    limit: Optional[int] = None

    def __post_init__(self):
        if self.order.by_distance and self.reference is None:
            raise ValueError("distance ordering requires a reference point")


class CheckInStore(ABC):
    """Read-only, predicate-based access to check-in records."""

    name = "abstract"

    @abstractmethod
    async def query(self, query: CheckInQuery) -> List[CheckIn]:
        """Run `query`; raises UpstreamUnavailable when the backend fails."""

    @abstractmethod
    async def distinct_user_ids(self, limit: int) -> List[int]:
        """Smallest `limit` distinct user ids, ascending."""

    @abstractmethod
    async def distinct_location_ids(self, limit: int) -> List[int]:
        """Smallest `limit` distinct location ids, ascending."""

    async def close(self) -> None:
        pass
