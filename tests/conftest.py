import pytest

from constellation_tracker.scheduler import PropagationScheduler
from constellation_tracker.session import TrackerSession
from tests.tle_samples import NEAR_EPOCH


@pytest.fixture
def session():
    return TrackerSession()


@pytest.fixture
def scheduler(session):
    # Pinned near the TLE epoch so SGP4 stays accurate
    return PropagationScheduler(session, clock=lambda: NEAR_EPOCH)
