import asyncio
import random
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import T0, check_in
from checkin_explorer.core.errors import InvalidArgument, UpstreamUnavailable
from checkin_explorer.core.geo import distance_km
from checkin_explorer.correlation.trajectory import TrajectoryCorrelator
from checkin_explorer.store.memory_store import InMemoryCheckInStore

DAY = timedelta(days=1)


class JitteryStore(InMemoryCheckInStore):
    """Companion lookups finish in random order."""

    def __init__(self, rows, seed):
        super().__init__(rows)
        self._rng = random.Random(seed)

    async def query(self, query):
        if query.near is not None:
            await asyncio.sleep(self._rng.uniform(0, 0.02))
        return await super().query(query)


def user_trajectory_rows():
    rows = []
    for i in range(8):
        ts = T0 + timedelta(hours=6 * i)
        rows.append(check_in(1, 100 + i, 40.0 + i * 0.01, -74.0, ts))
        rows.append(check_in(2, 200 + i, 40.0 + i * 0.01, -74.001, ts + timedelta(minutes=30)))
    return rows


@pytest.mark.asyncio
async def test_companions_scenario(companion_store):
    correlator = TrajectoryCorrelator(companion_store)

    points = await correlator.build_trajectory(1, T0 - DAY, T0 + DAY, 1.0)

    assert len(points) == 1
    assert points[0].location_id == 1
    companion_users = [c.user_id for c in points[0].companions]
    assert 2 in companion_users
    assert 3 not in companion_users


@pytest.mark.asyncio
async def test_no_check_ins_returns_empty(companion_store):
    correlator = TrajectoryCorrelator(companion_store)

    points = await correlator.build_trajectory(99, T0 - DAY, T0 + DAY, 5.0)

    assert points == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "user_id, start, end, radius",
    [
        (1, T0 - DAY, T0 + DAY, 0),
        (1, T0 - DAY, T0 + DAY, 100.5),
        (1, T0 + DAY, T0 - DAY, 5.0),
        (0, T0 - DAY, T0 + DAY, 5.0),
    ],
)
async def test_invalid_arguments_never_reach_store(user_id, start, end, radius):
    store = AsyncMock()
    correlator = TrajectoryCorrelator(store)

    with pytest.raises(InvalidArgument):
        await correlator.build_trajectory(user_id, start, end, radius)

    store.query.assert_not_awaited()


@pytest.mark.asyncio
async def test_order_stable_under_random_latency():
    rows = user_trajectory_rows()
    first = await TrajectoryCorrelator(JitteryStore(rows, seed=1)).build_trajectory(
        1, T0 - DAY, T0 + 3 * DAY, 2.0
    )
    second = await TrajectoryCorrelator(JitteryStore(rows, seed=2)).build_trajectory(
        1, T0 - DAY, T0 + 3 * DAY, 2.0
    )

    assert first == second
    timestamps = [p.timestamp for p in first]
    assert timestamps == sorted(timestamps)
    assert [p.location_id for p in first] == list(range(100, 108))


@pytest.mark.asyncio
async def test_companion_constraints_and_cap():
    rows = [
        check_in(1, 1, 40.0, -74.0, T0),
        # user 1's own nearby check-in is never a companion
        check_in(1, 2, 40.0001, -74.0, T0 + timedelta(minutes=10)),
        # outside the 24h window
        check_in(50, 3, 40.0, -74.0, T0 + timedelta(hours=25)),
        # outside the radius
        check_in(51, 4, 40.05, -74.0, T0),
    ]
    # 12 candidates, each ~33m further away than the last
    for i in range(1, 13):
        rows.append(check_in(1 + i, 10 + i, 40.0 + i * 0.0003, -74.0, T0 + timedelta(hours=i)))

    correlator = TrajectoryCorrelator(InMemoryCheckInStore(rows))
    points = await correlator.build_trajectory(1, T0 - DAY, T0 + DAY, 1.0)

    first = points[0]
    assert len(first.companions) == 10
    for c in first.companions:
        assert c.user_id != 1
        assert distance_km(first.latitude, first.longitude, c.latitude, c.longitude) <= 1.0
        assert abs(c.timestamp - first.timestamp) <= timedelta(hours=24)

    # nearest first
    assert [c.user_id for c in first.companions] == list(range(2, 12))


@pytest.mark.asyncio
async def test_companion_window_is_inclusive():
    window = timedelta(hours=24)
    rows = [
        check_in(1, 1, 40.0, -74.0, T0),
        check_in(2, 2, 40.0, -74.0, T0 - window),
        check_in(3, 3, 40.0, -74.0, T0 + window),
        check_in(4, 4, 40.0, -74.0, T0 + window + timedelta(seconds=1)),
        check_in(5, 5, 40.0, -74.0, T0 - window - timedelta(seconds=1)),
    ]
    correlator = TrajectoryCorrelator(InMemoryCheckInStore(rows))

    points = await correlator.build_trajectory(1, T0, T0, 1.0)

    assert len(points) == 1
    assert sorted(c.user_id for c in points[0].companions) == [2, 3]


@pytest.mark.asyncio
async def test_companion_radius_is_inclusive():
    # Distances keyed by the candidate's latitude
    distances = {40.0: 0.0, 40.1: 1.0, 40.2: 1.0000001}

    def fixed_distance(lat1, lng1, lat2, lng2):
        return distances[lat2]

    rows = [
        check_in(1, 1, 40.0, -74.0, T0),
        check_in(2, 2, 40.1, -74.0, T0),
        check_in(3, 3, 40.2, -74.0, T0),
    ]
    store = InMemoryCheckInStore(rows, distance=fixed_distance)
    correlator = TrajectoryCorrelator(store)

    points = await correlator.build_trajectory(1, T0 - DAY, T0 + DAY, 1.0)

    assert [c.user_id for c in points[0].companions] == [2]


@pytest.mark.asyncio
async def test_companion_limit_is_configurable():
    rows = [
        check_in(1, 1, 40.0, -74.0, T0),
        check_in(4, 4, 40.004, -74.0, T0 + timedelta(hours=2)),
        check_in(2, 2, 40.001, -74.001, T0 + timedelta(hours=1)),
    ]
    correlator = TrajectoryCorrelator(InMemoryCheckInStore(rows), companion_limit=1)

    points = await correlator.build_trajectory(1, T0 - DAY, T0 + DAY, 1.0)

    assert len(points[0].companions) == 1
    # u2 (~0.14km) is closer than u4 (~0.44km)
    assert points[0].companions[0].user_id == 2


@pytest.mark.asyncio
async def test_fan_out_is_bounded():
    rows = [check_in(1, i, 40.0 + i * 0.1, -74.0, T0 + timedelta(hours=i)) for i in range(10)]

    class CountingStore(InMemoryCheckInStore):
        in_flight = 0
        peak = 0

        async def query(self, query):
            if query.near is not None:
                CountingStore.in_flight += 1
                CountingStore.peak = max(CountingStore.peak, CountingStore.in_flight)
                await asyncio.sleep(0.01)
                CountingStore.in_flight -= 1
            return await super().query(query)

    correlator = TrajectoryCorrelator(CountingStore(rows), max_concurrency=3)
    points = await correlator.build_trajectory(1, T0 - DAY, T0 + DAY, 1.0)

    assert len(points) == 10
    assert CountingStore.peak == 3


@pytest.mark.asyncio
async def test_failed_lookup_aborts_and_cancels_siblings():
    rows = [check_in(1, i, 40.0 + i * 0.1, -74.0, T0 + timedelta(hours=i)) for i in range(5)]

    class FailingStore(InMemoryCheckInStore):
        cancelled = 0
        completed = 0

        async def query(self, query):
            if query.near is None:
                return await super().query(query)
            if query.near.latitude == 40.0:
                await asyncio.sleep(0.01)
                raise UpstreamUnavailable("store down")
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                FailingStore.cancelled += 1
                raise
            FailingStore.completed += 1
            return []

    correlator = TrajectoryCorrelator(FailingStore(rows), max_concurrency=10)

    with pytest.raises(UpstreamUnavailable):
        await correlator.build_trajectory(1, T0 - DAY, T0 + DAY, 1.0)

    assert FailingStore.cancelled == 4
    assert FailingStore.completed == 0


@pytest.mark.asyncio
async def test_naive_datetimes_are_utc(companion_store):
    correlator = TrajectoryCorrelator(companion_store)
    start = (T0 - DAY).replace(tzinfo=None)
    end = (T0 + DAY).replace(tzinfo=None)

    points = await correlator.build_trajectory(1, start, end, 1.0)

    assert len(points) == 1
    assert points[0].timestamp == T0
