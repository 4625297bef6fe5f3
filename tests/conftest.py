"""Global test fixtures and utilities for streak engine tests"""
import pytest
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from streak_engine.config import Settings
from streak_engine.db.memory_repository import InMemoryStreakRepository
from streak_engine.models.streak import UserStreakState
from streak_engine.services.activity_ingestion import ActivityIngestionService


# ============================================================================
# Clock
# ============================================================================

class FrozenClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def utc(year, month, day, hour=12, minute=0) -> datetime:
    """Shorthand for an aware UTC datetime"""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    """Clock frozen at 2024-03-15 10:00 UTC"""
    return FrozenClock(utc(2024, 3, 15, 10, 0))


# ============================================================================
# Settings & Services
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def settings():
    """Settings isolated from any local .env file"""
    return Settings(_env_file=None, default_timezone="Asia/Kolkata")


@pytest.fixture
def memory_repository():
    """Fresh in-memory repository"""
    return InMemoryStreakRepository()


@pytest.fixture
def ingestion_service(memory_repository, settings, clock):
    """Ingestion service over the in-memory repository with a frozen clock"""
    return ActivityIngestionService(
        memory_repository,
        memory_repository,
        settings,
        clock=clock,
    )


@pytest.fixture
def seed_state(memory_repository, test_user_id):
    """Seed a stored streak state for the test user"""
    def _seed(
        streak_days=0,
        longest_streak=None,
        total_activity_points=0.0,
        last_activity_at=None,
        user_id=None,
    ) -> UserStreakState:
        state = UserStreakState(
            user_id=user_id or test_user_id,
            streak_days=streak_days,
            longest_streak=streak_days if longest_streak is None else longest_streak,
            total_activity_points=total_activity_points,
            last_activity_at=last_activity_at,
        )
        memory_repository.save_state(state)
        return state
    return _seed


# ============================================================================
# Fake psycopg connection
# ============================================================================

class FakeCursor:
    """Async cursor returning queued rows and recording executed SQL"""

    def __init__(self, rows=None, error=None):
        self.rows = list(rows or [])
        self.error = error
        self.executed = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def execute(self, query, params=None):
        self.executed.append((" ".join(query.split()), params))
        if self.error is not None:
            raise self.error

    async def fetchone(self):
        return self.rows.pop(0) if self.rows else None

    async def fetchall(self):
        return self.rows.pop(0) if self.rows else []


class FakeConnection:
    def __init__(self, cursor: FakeCursor):
        self._cursor = cursor
        self.commit = AsyncMock()
        self.rollback = AsyncMock()

    def cursor(self):
        return self._cursor


class FakeDatabase:
    """Stands in for streak_engine.db.connection.Database"""

    def __init__(self, rows=None, error=None):
        self.cursor = FakeCursor(rows, error)
        self.conn = FakeConnection(self.cursor)

    @asynccontextmanager
    async def connection(self):
        yield self.conn


@pytest.fixture
def fake_db_factory():
    """Build a FakeDatabase with queued fetch results"""
    def _create(rows=None, error=None):
        return FakeDatabase(rows, error)
    return _create
