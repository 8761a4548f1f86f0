"""
Pytest configuration and fixtures for the OTP service tests.

Every test gets a fresh in-memory SQLite schema, a controllable clock and
in-process stand-ins for the notification sender.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# must be set before main/database are imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")

from models.users_models import Base  # noqa: E402
import models.challenge_models  # noqa: E402,F401
from services.challenge_service import ChallengeService  # noqa: E402
from services.users_services import UserService  # noqa: E402

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


class FakeNotifier:
    def __init__(self):
        self.deliveries: list[tuple[str, str]] = []
        self.fail = False

    def deliver(self, target: str, code: str) -> bool:
        self.deliveries.append((target, code))
        return not self.fail

    @property
    def last_code(self) -> str:
        return self.deliveries[-1][1]


class CountingIdentityStore(UserService):
    def __init__(self, db):
        super().__init__(db)
        self.calls: list[str] = []

    def upsert_verified_identity(self, target: str):
        self.calls.append(target)
        return super().upsert_verified_identity(target)


@pytest.fixture(autouse=True)
def setup_test_db():
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def identity_store(db):
    return CountingIdentityStore(db)


@pytest.fixture
def service(db, notifier, identity_store, clock):
    return ChallengeService(db, notifier, identity_store, clock=clock, diagnostic=True)


@pytest.fixture
def client(db, notifier, clock):
    """FastAPI TestClient wired to the test database, clock and notifier."""
    from fastapi.testclient import TestClient
    from main import app
    from services.challenge_service import get_challenge_service

    def override_challenge_service():
        return ChallengeService(db, notifier, UserService(db), clock=clock, diagnostic=True)

    app.dependency_overrides[get_challenge_service] = override_challenge_service
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
