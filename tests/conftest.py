"""
Shared fixtures: small in-memory check-in datasets.
"""

from datetime import datetime, timedelta, timezone

import pytest

from checkin_explorer.models import CheckIn
from checkin_explorer.store.memory_store import InMemoryCheckInStore

T0 = datetime(2010, 10, 19, 12, 0, tzinfo=timezone.utc)


def check_in(user_id, location_id, lat, lng, ts):
    return CheckIn(
        user_id=user_id, location_id=location_id, latitude=lat, longitude=lng, timestamp=ts
    )


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def companion_store():
    """u1 at loc1; u2 ~0.14km away an hour later; u3 ~139km away."""
    return InMemoryCheckInStore(
        [
            check_in(1, 1, 40.0, -74.0, T0),
            check_in(2, 2, 40.001, -74.001, T0 + timedelta(hours=1)),
            check_in(3, 3, 41.0, -75.0, T0 + timedelta(hours=1)),
        ]
    )


@pytest.fixture
def popular_store():
    """Three check-ins at loc1 by two users, one at loc2."""
    return InMemoryCheckInStore(
        [
            check_in(1, 1, 40.70, -74.00, T0),
            check_in(1, 1, 40.70, -74.00, T0 + timedelta(hours=2)),
            check_in(2, 1, 40.70, -74.00, T0 + timedelta(hours=3)),
            check_in(3, 2, 40.75, -73.95, T0 + timedelta(hours=1)),
        ]
    )
