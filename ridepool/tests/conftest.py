"""
Centralized Test Configuration.

Every test gets its own SQLite database file, so separate sessions use
separate connections the way they would against PostgreSQL.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from ridepool.app.main import app
from ridepool.app.db.session import get_db, Base
from ridepool.app.core.dependencies import get_ride_services
from ridepool.app.core.jwt import create_access_token
from ridepool.app.core.reliability import CircuitBreaker
from ridepool.app.domain.rides.container import build_ride_services
from ridepool.app.models.enums import Gender, RequiredGender
from ridepool.app.models.notification import NotificationKind
from ridepool.app.schemas.ride import RideCreate
from ridepool.app.services.clock import FixedClock
from ridepool.app.services.identity import StaticIdentityProvider
import ridepool.app.core.redis_client as redis_client_module

DRIVER = 1
PASSENGER_1 = 11
PASSENGER_2 = 12
PASSENGER_3 = 13
FEMALE_PASSENGER = 21

# Monday
NOW = datetime(2024, 5, 6, 8, 0)
DEPARTURE = datetime(2024, 5, 6, 10, 0)


class RecordingSink:
    """NotificationSink that remembers what it was asked to send."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def notify(self, user_id, kind, ride_id, payload):
        self.sent.append({"user_id": user_id, "kind": kind, "ride_id": ride_id, "payload": payload})

    def kinds_for(self, user_id) -> List[NotificationKind]:
        return [n["kind"] for n in self.sent if n["user_id"] == user_id]


class CounterSequenceAllocator:
    def __init__(self, start: int = 100):
        self.current = start

    async def next_ride_id(self) -> int:
        self.current += 1
        return self.current


class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def aclose(self):
        self._closed = True
        self.store = {}


def token_for(user_id: int) -> Dict[str, str]:
    """Authorization header for ``user_id``."""
    token = create_access_token(data={"sub": f"user-{user_id}", "user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ridepool.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def identity():
    return StaticIdentityProvider({
        PASSENGER_1: Gender.MALE,
        PASSENGER_2: Gender.MALE,
        PASSENGER_3: Gender.MALE,
        FEMALE_PASSENGER: Gender.FEMALE,
    })


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def sequence():
    return CounterSequenceAllocator()


@pytest.fixture
def services(clock, identity, sequence, sink):
    return build_ride_services(
        clock=clock,
        identity=identity,
        sequence=sequence,
        sink=sink,
        breaker=CircuitBreaker(failure_threshold=100, reset_timeout=60),
    )


@pytest.fixture
def make_ride(services, db_session):
    """Publish a ride through the lifecycle controller."""

    async def _make_ride(
        driver_id: int = DRIVER,
        scheduled_at: datetime = DEPARTURE,
        total_seats: int = 3,
        is_recurring: bool = False,
        required_gender: RequiredGender = RequiredGender.ANY,
        waypoints: List[Dict[str, Any]] = None,
    ):
        draft = RideCreate(
            origin_address="Kaiserstrasse 1, Karlsruhe",
            destination_address="Hauptbahnhof, Stuttgart",
            waypoints=waypoints or [],
            scheduled_at=scheduled_at,
            is_recurring=is_recurring,
            recurring_days=["MONDAY"] if is_recurring else [],
            total_seats=total_seats,
            required_gender=required_gender,
        )
        return await services.lifecycle.create_ride(db_session, driver_id, draft)

    return _make_ride


@pytest.fixture
def redis_mock():
    return MockRedis()


@pytest.fixture
async def client(session_factory, services, redis_mock):
    """Async client for testing, wired to the per-test database and engine."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_mock

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ride_services] = lambda: services

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


def later(minutes: int) -> datetime:
    return DEPARTURE + timedelta(minutes=minutes)
