# aquacrew/conftest.py
import os
from datetime import date, timedelta

# Keep tests off the on-disk SQLite default; individual tests opt in via tmp_path.
os.environ["DATABASE_URL"] = ""
os.environ.setdefault("ENV", "test")

import pytest

from aquacrew.core.config import Settings
from aquacrew.core.documents import InMemoryDocumentStore
from aquacrew.core.kvstore import InMemoryKeyValueStorage
from aquacrew.core.metrics import METRICS
from aquacrew.core.triggers import TriggerDispatcher
from aquacrew.models.profile import profile_path


class FixedClock:
    """Injectable local-date source for date-sensitive services."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int = 1) -> date:
        self.today = self.today + timedelta(days=days)
        return self.today


def seed_profile(store, uid: str = "u1", **fields) -> dict:
    data = {
        "uid": uid,
        "email": f"{uid}@example.com",
        "username": uid,
        "hydrationGoal": 2000,
        "onboardingComplete": True,
        "currentStreak": 0,
        "longestStreak": 0,
        "lastGoalAchievedDate": "",
        "unviewedMilestones": [],
    }
    data.update(fields)
    store.set(profile_path(uid), data)
    return data


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield


@pytest.fixture
def clock():
    return FixedClock(date(2024, 1, 2))


@pytest.fixture
def store():
    return InMemoryDocumentStore(triggers=TriggerDispatcher(max_attempts=3))


@pytest.fixture
def seed(store):
    """Create a profile document in the test store: seed("u1", currentStreak=3)."""
    def _seed(uid: str = "u1", **fields) -> dict:
        return seed_profile(store, uid, **fields)
    return _seed


@pytest.fixture
def storage():
    return InMemoryKeyValueStorage()


@pytest.fixture
def test_settings():
    return Settings(DATABASE_URL=None, DOCUMENT_STORE="memory", ADMIN_KEY=None, _env_file=None)


@pytest.fixture
def container(test_settings, store, storage, clock):
    from aquacrew.core.container import build_container

    return build_container(test_settings, store=store, storage=storage, today_fn=clock)


@pytest.fixture
def client(container):
    from fastapi.testclient import TestClient
    from aquacrew.main import create_app

    return TestClient(create_app(container))
