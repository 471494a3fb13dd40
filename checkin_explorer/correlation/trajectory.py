import asyncio
import logging
from datetime import datetime, timedelta
from typing import List

from checkin_explorer.core.config import settings
from checkin_explorer.core.errors import InvalidArgument
from checkin_explorer.models import CheckIn, TrajectoryPoint, as_utc
from checkin_explorer.store.base import CheckInQuery, CheckInStore, NearPoint, Ordering

logger = logging.getLogger(__name__)

MAX_RADIUS_KM = 100.0


class TrajectoryCorrelator:
    """
    Builds a user's trajectory and attaches companion check-ins to each point.

    A companion is a check-in by another user within `radius_km` of the point
    and within `companion_window` of its timestamp. Each point keeps at most
    `companion_limit` companions: nearest first, then most recent.

    Companion lookups run concurrently, at most `max_concurrency` at a time.
    Points are returned in trajectory order whatever order the lookups
    finish in. If one lookup fails, the others are cancelled and the whole
    trajectory fails.
    """

    def __init__(
        self,
        store: CheckInStore,
        companion_window: timedelta = None,
        companion_limit: int = None,
        max_concurrency: int = None,
    ):
        self.store = store
        self.companion_window = companion_window or timedelta(
            hours=settings.COMPANION_WINDOW_HOURS
        )
        self.companion_limit = companion_limit or settings.COMPANION_LIMIT
        self.max_concurrency = max(1, max_concurrency or settings.MAX_CONCURRENT_LOOKUPS)

    async def build_trajectory(
        self,
        user_id: int,
        start_time: datetime,
        end_time: datetime,
        radius_km: float,
    ) -> List[TrajectoryPoint]:
        self._validate(user_id, start_time, end_time, radius_km)
        start_time, end_time = as_utc(start_time), as_utc(end_time)

        # 1. The user's own check-ins, oldest first
        points = await self.store.query(
            CheckInQuery(
                user_id=user_id,
                start_time=start_time,
                end_time=end_time,
                order=Ordering.TIME_ASC,
            )
        )
        if not points:
            logger.info(f"No check-ins for user {user_id} in [{start_time}, {end_time}]")
            return []

        # 2. Companion lookups (bounded fan-out)
        semaphore = asyncio.Semaphore(min(self.max_concurrency, len(points)))
        tasks = [
            asyncio.create_task(self._with_companions(p, user_id, radius_km, semaphore))
            for p in points
        ]
        try:
            trajectory = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error(f"Trajectory build for user {user_id} aborted")
            raise

        logger.info(
            f"Trajectory for user {user_id}: {len(trajectory)} points, "
            f"{sum(len(p.companions) for p in trajectory)} companions"
        )
        # gather keeps input order
        return list(trajectory)

    async def _with_companions(
        self,
        point: CheckIn,
        user_id: int,
        radius_km: float,
        semaphore: asyncio.Semaphore,
    ) -> TrajectoryPoint:
        async with semaphore:
            companions = await self.store.query(
                CheckInQuery(
                    exclude_user_id=user_id,
                    start_time=point.timestamp - self.companion_window,
                    end_time=point.timestamp + self.companion_window,
                    near=NearPoint(point.latitude, point.longitude, radius_km),
                    order=Ordering.DISTANCE_ASC,
                    reference=(point.latitude, point.longitude),
                    limit=self.companion_limit,
                )
            )
        return TrajectoryPoint(**point.model_dump(), companions=companions)

    @staticmethod
    def _validate(user_id, start_time, end_time, radius_km):
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            raise InvalidArgument("User ID must be a positive integer")
        if not 0 < radius_km <= MAX_RADIUS_KM:
            raise InvalidArgument(f"Radius must be in (0, {MAX_RADIUS_KM:g}] km")
        if as_utc(start_time) > as_utc(end_time):
            raise InvalidArgument("End date must be after start date")
