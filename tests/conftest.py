"""Pytest configuration and shared fixtures."""

import itertools
from typing import List

import pytest
from fastapi.testclient import TestClient

from main import app
from app.core.tenant import TenantContext
from app.services.import_session_store import import_session_store
from app.services.rate_limiter import FixedDelayRateLimiter, RateLimitRetryPolicy
from tests.factories import OTHER_USER_ID, USER_ID, FakeBrokerageDB


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client (lifespan is not run)."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
def clear_session_store():
    import_session_store.clear()
    yield
    import_session_store.clear()


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(user_id=USER_ID)


@pytest.fixture
def fake_db() -> FakeBrokerageDB:
    """Fake DB seeded with one tenant's reference data and a second tenant's rows."""
    db = FakeBrokerageDB()
    db.add("companies", id="company-porto", user_id=USER_ID, name="Porto Seguro")
    db.add("companies", id="company-allianz", user_id=USER_ID, name="Allianz")
    db.add("ramos", id="ramo-auto", user_id=USER_ID, nome="Auto")
    db.add("ramos", id="ramo-residencial", user_id=USER_ID, nome="Residencial")
    db.add("ramos", id="ramo-vida", user_id=USER_ID, nome="Vida")
    db.add("producers", id="producer-1", user_id=USER_ID, name="João Corretor")
    db.add("companies", id="company-other", user_id=OTHER_USER_ID, name="Porto Seguro")
    return db


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def recording_sleep(sleeps):
    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)
    return sleep


@pytest.fixture
def fast_limiters(recording_sleep):
    """Limiters and retry policy that record delays instead of sleeping."""
    clock = itertools.count(0, 0.001)
    return {
        "batch_limiter": FixedDelayRateLimiter(20.0, sleep=recording_sleep, clock=lambda: next(clock)),
        "file_limiter": FixedDelayRateLimiter(5.0, sleep=recording_sleep, clock=lambda: next(clock)),
        "retry_policy": RateLimitRetryPolicy(2, 15.0, sleep=recording_sleep),
    }
