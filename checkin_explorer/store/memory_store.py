import logging
import os
import time
from operator import attrgetter
from typing import Callable, Iterable, List

from pydantic import ValidationError

from checkin_explorer.core.geo import distance_km
from checkin_explorer.models import CheckIn
from checkin_explorer.store.base import CheckInQuery, CheckInStore, Ordering

logger = logging.getLogger(__name__)

DistanceFn = Callable[[float, float, float, float], float]


class InMemoryCheckInStore(CheckInStore):
    """
    Check-in store backed by a Python list.

    Every query is a linear scan, so this backend suits tests and small
    datasets. The distance function used for radius filters and distance
    ordering is injectable.
    """

    name = "memory"

    def __init__(self, check_ins: Iterable[CheckIn] = (), distance: DistanceFn = distance_km):
        self._rows: List[CheckIn] = list(check_ins)
        self._distance = distance

    def __len__(self):
        return len(self._rows)

    @classmethod
    def from_gowalla_file(cls, path: str, **kwargs) -> "InMemoryCheckInStore":
        """
        Load a Gowalla-format dump: one tab-separated check-in per line,
        `user  timestamp  latitude  longitude  location_id`.
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Check-in file {path} not found")

        rows = []
        skipped = 0
        with open(path, "r") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                parts = line.split("\t")
                try:
                    user, ts, lat, lng, location = parts
                    rows.append(
                        CheckIn(
                            user_id=int(user),
                            location_id=int(location),
                            latitude=float(lat),
                            longitude=float(lng),
                            timestamp=ts,
                        )
                    )
                except (ValueError, ValidationError) as e:
                    skipped += 1
                    logger.warning(f"Skipping malformed line {line_no} in {path}: {e}")
        logger.info(f"Loaded {len(rows)} check-ins from {path} ({skipped} skipped)")
        return cls(rows, **kwargs)

    async def query(self, query: CheckInQuery) -> List[CheckIn]:
        start = time.perf_counter()
        rows = [c for c in self._rows if self._matches(c, query)]
        rows = self._sort(rows, query)
        if query.limit is not None:
            rows = rows[: query.limit]
        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Executed query {query} in {duration_ms:.1f}ms, rows={len(rows)}")
        return rows

    async def distinct_user_ids(self, limit: int) -> List[int]:
        return sorted({c.user_id for c in self._rows})[:limit]

    async def distinct_location_ids(self, limit: int) -> List[int]:
        return sorted({c.location_id for c in self._rows})[:limit]

    def _matches(self, c: CheckIn, q: CheckInQuery) -> bool:
        if q.user_id is not None and c.user_id != q.user_id:
            return False
        if q.exclude_user_id is not None and c.user_id == q.exclude_user_id:
            return False
        if q.location_id is not None and c.location_id != q.location_id:
            return False
        if q.start_time is not None and c.timestamp < q.start_time:
            return False
        if q.end_time is not None and c.timestamp > q.end_time:
            return False
        if q.bounds is not None and not q.bounds.contains(c.latitude, c.longitude):
            return False
        if q.near is not None:
            d = self._distance(q.near.latitude, q.near.longitude, c.latitude, c.longitude)
            if d > q.near.radius_km:
                return False
        return True

    def _sort(self, rows: List[CheckIn], q: CheckInQuery) -> List[CheckIn]:
        if q.order is Ordering.NONE:
            return rows

        # Stable sorts, least significant key first
        rows = sorted(rows, key=lambda c: (c.user_id, c.location_id))
        if q.order is Ordering.TIME_ASC:
            return sorted(rows, key=attrgetter("timestamp"))

        rows = sorted(rows, key=attrgetter("timestamp"), reverse=True)
        if q.order is Ordering.TIME_DESC:
            return rows

        ref_lat, ref_lng = q.reference
        return sorted(
            rows,
            key=lambda c: self._distance(ref_lat, ref_lng, c.latitude, c.longitude),
            reverse=q.order is Ordering.DISTANCE_DESC,
        )
