"""Unit tests for PostgresStreakRepository (streak_engine/db/postgres_repository.py)"""
import json
from datetime import datetime, timezone

import psycopg
import pytest

from streak_engine.db.postgres_repository import PostgresStreakRepository
from streak_engine.db.schema import SCHEMA_STATEMENTS, ensure_schema
from streak_engine.exceptions import (
    ConcurrencyConflictError,
    ConnectionError,
    NoShieldAvailableError,
    QueryError,
    RecordNotFoundError,
)
from streak_engine.models.streak import RewardKind, StreakEventType

USER_ID = "user-123"
LAST = datetime(2024, 3, 14, 10, 0, tzinfo=timezone.utc)
NOW = datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)


def state_row(streak_days=5, longest_streak=7, points=12.5, last_activity_at=LAST):
    return {
        "user_id": USER_ID,
        "streak_days": streak_days,
        "longest_streak": longest_streak,
        "total_activity_points": points,
        "last_activity_at": last_activity_at,
    }


# ============================================================================
# Streak State
# ============================================================================

@pytest.mark.asyncio
async def test_get_streak_state(fake_db_factory):
    db = fake_db_factory(rows=[state_row()])
    repo = PostgresStreakRepository(db)

    state = await repo.get_streak_state(USER_ID)

    assert state.streak_days == 5
    assert state.longest_streak == 7
    assert state.total_activity_points == 12.5
    assert state.last_activity_at == LAST
    query, params = db.cursor.executed[0]
    assert "FROM user_progress WHERE user_id = %s" in query
    assert params == (USER_ID,)


@pytest.mark.asyncio
async def test_get_streak_state_missing(fake_db_factory):
    repo = PostgresStreakRepository(fake_db_factory())

    assert await repo.get_streak_state(USER_ID) is None


@pytest.mark.asyncio
async def test_init_streak_state_creates_row(fake_db_factory):
    db = fake_db_factory(rows=[state_row(0, 0, 0, None)])
    repo = PostgresStreakRepository(db)

    state = await repo.init_streak_state(USER_ID)

    assert state.streak_days == 0
    assert state.last_activity_at is None
    assert "ON CONFLICT (user_id) DO NOTHING" in db.cursor.executed[0][0]
    db.conn.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_init_streak_state_created_concurrently(fake_db_factory):
    """Insert hits the conflict, existing row is read back"""
    db = fake_db_factory(rows=[None, state_row(streak_days=2)])
    repo = PostgresStreakRepository(db)

    state = await repo.init_streak_state(USER_ID)

    assert state.streak_days == 2
    assert len(db.cursor.executed) == 2


@pytest.mark.asyncio
async def test_update_streak_state_compare_and_swap(fake_db_factory):
    db = fake_db_factory(rows=[state_row(streak_days=6, last_activity_at=NOW, points=15.43)])
    repo = PostgresStreakRepository(db)

    state = await repo.update_streak_state(
        USER_ID,
        new_streak_days=6,
        new_last_activity_at=NOW,
        weight_delta=2.93,
        expected_previous_last_activity_at=LAST,
    )

    assert state.streak_days == 6
    query, params = db.cursor.executed[0]
    assert "GREATEST(longest_streak, %s)" in query
    assert "last_activity_at IS NOT DISTINCT FROM %s::timestamptz" in query
    assert params == (6, 6, NOW, 2.93, USER_ID, LAST)
    assert len(db.cursor.executed) == 1
    db.conn.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_update_streak_state_conflict(fake_db_factory):
    db = fake_db_factory(rows=[None, {"?column?": 1}])
    repo = PostgresStreakRepository(db)

    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await repo.update_streak_state(USER_ID, 6, NOW, 1.0, LAST)

    assert exc_info.value.expected_last_activity_at == LAST
    assert exc_info.value.operation == "update_streak_state"
    db.conn.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_streak_state_missing_row(fake_db_factory):
    db = fake_db_factory(rows=[None, None])
    repo = PostgresStreakRepository(db)

    with pytest.raises(RecordNotFoundError):
        await repo.update_streak_state(USER_ID, 1, NOW, 1.0, None)


@pytest.mark.asyncio
async def test_update_streak_state_spends_shield_in_same_transaction(fake_db_factory):
    db = fake_db_factory(rows=[state_row(streak_days=12, last_activity_at=NOW), {"quantity": 1}])
    repo = PostgresStreakRepository(db)

    state = await repo.update_streak_state(USER_ID, 12, NOW, 1.0, LAST, consume_shield=True)

    assert state.streak_days == 12
    assert len(db.cursor.executed) == 2
    query, params = db.cursor.executed[1]
    assert "UPDATE user_inventory SET quantity = quantity - 1" in query
    assert "quantity > 0" in query
    assert params == (USER_ID, "streak_shield")
    db.conn.commit.assert_awaited_once()
    db.conn.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_streak_state_conflict_keeps_shield(fake_db_factory):
    db = fake_db_factory(rows=[None, {"?column?": 1}])
    repo = PostgresStreakRepository(db)

    with pytest.raises(ConcurrencyConflictError):
        await repo.update_streak_state(USER_ID, 12, NOW, 1.0, LAST, consume_shield=True)

    assert not any("user_inventory" in query for query, _ in db.cursor.executed)
    db.conn.rollback.assert_awaited_once()
    db.conn.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_streak_state_without_shield_rolls_back(fake_db_factory):
    db = fake_db_factory(rows=[state_row(streak_days=12, last_activity_at=NOW), None])
    repo = PostgresStreakRepository(db)

    with pytest.raises(NoShieldAvailableError):
        await repo.update_streak_state(USER_ID, 12, NOW, 1.0, LAST, consume_shield=True)

    db.conn.rollback.assert_awaited_once()
    db.conn.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_add_activity_points(fake_db_factory):
    db = fake_db_factory(rows=[state_row(points=13.5)])
    repo = PostgresStreakRepository(db)

    state = await repo.add_activity_points(USER_ID, 1.0)

    assert state.total_activity_points == 13.5
    assert db.cursor.executed[0][1] == (1.0, USER_ID)


@pytest.mark.asyncio
async def test_add_activity_points_missing_row(fake_db_factory):
    repo = PostgresStreakRepository(fake_db_factory(rows=[None]))

    with pytest.raises(RecordNotFoundError):
        await repo.add_activity_points(USER_ID, 1.0)


# ============================================================================
# Shields
# ============================================================================

@pytest.mark.asyncio
async def test_get_shield_count(fake_db_factory):
    db = fake_db_factory(rows=[{"quantity": 2}])
    repo = PostgresStreakRepository(db)

    assert await repo.get_shield_count(USER_ID) == 2
    assert db.cursor.executed[0][1] == (USER_ID, "streak_shield")


@pytest.mark.asyncio
async def test_get_shield_count_without_inventory(fake_db_factory):
    repo = PostgresStreakRepository(fake_db_factory())

    assert await repo.get_shield_count(USER_ID) == 0


@pytest.mark.asyncio
async def test_consume_shield(fake_db_factory):
    db = fake_db_factory(rows=[{"quantity": 0}])
    repo = PostgresStreakRepository(db)

    assert await repo.consume_shield(USER_ID) == 0
    assert "quantity > 0" in db.cursor.executed[0][0]


@pytest.mark.asyncio
async def test_consume_shield_none_left(fake_db_factory):
    repo = PostgresStreakRepository(fake_db_factory(rows=[None]))

    with pytest.raises(NoShieldAvailableError):
        await repo.consume_shield(USER_ID)


# ============================================================================
# Event Log, Leaderboard & Rewards
# ============================================================================

@pytest.mark.asyncio
async def test_append_event_log(fake_db_factory):
    db = fake_db_factory()
    repo = PostgresStreakRepository(db)
    metadata = {"outcome": "extended", "new_streak": 6, "activity_weight": 2.93}

    await repo.append_event_log(USER_ID, StreakEventType.STREAK_UPDATED, metadata)

    query, params = db.cursor.executed[0]
    assert "INSERT INTO streak_events" in query
    assert params[0] == USER_ID
    assert params[1] == "streak_updated"
    assert json.loads(params[2]) == metadata


@pytest.mark.asyncio
async def test_leaderboard(fake_db_factory):
    db = fake_db_factory(rows=[[
        {"user_id": "b", "streak_days": 10, "longest_streak": 12},
        {"user_id": "a", "streak_days": 3, "longest_streak": 3},
    ]])
    repo = PostgresStreakRepository(db)

    board = await repo.get_streak_leaderboard(limit=5)

    assert [(e.rank, e.user_id, e.streak_days) for e in board] == [(1, "b", 10), (2, "a", 3)]
    assert db.cursor.executed[0][1] == (5,)


@pytest.mark.asyncio
async def test_grant_shield_upserts_inventory(fake_db_factory):
    db = fake_db_factory()
    repo = PostgresStreakRepository(db)

    await repo.grant_reward(USER_ID, RewardKind.STREAK_SHIELD)

    query, params = db.cursor.executed[0]
    assert "INSERT INTO user_inventory" in query
    assert "quantity = user_inventory.quantity + EXCLUDED.quantity" in query
    assert params == (USER_ID, "streak_shield", 1)
    db.conn.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_grant_unlock_reward(fake_db_factory):
    db = fake_db_factory()
    repo = PostgresStreakRepository(db)

    await repo.grant_reward(USER_ID, RewardKind.PREMIUM_VOICE)

    query, params = db.cursor.executed[0]
    assert "INSERT INTO user_rewards" in query
    assert params == (USER_ID, "premium_voice", 1)


# ============================================================================
# Driver Error Wrapping
# ============================================================================

@pytest.mark.asyncio
async def test_operational_error_becomes_connection_error(fake_db_factory):
    repo = PostgresStreakRepository(
        fake_db_factory(error=psycopg.OperationalError("server closed the connection"))
    )

    with pytest.raises(ConnectionError) as exc_info:
        await repo.get_streak_state(USER_ID)

    assert exc_info.value.operation == "get_streak_state"
    assert exc_info.value.user_id == USER_ID


@pytest.mark.asyncio
async def test_query_error_wrapped(fake_db_factory):
    repo = PostgresStreakRepository(fake_db_factory(error=psycopg.DataError("bad value")))

    with pytest.raises(QueryError):
        await repo.update_streak_state(USER_ID, 6, NOW, 1.0, LAST)


@pytest.mark.asyncio
async def test_event_log_error_wrapped(fake_db_factory):
    repo = PostgresStreakRepository(fake_db_factory(error=psycopg.DataError("bad json")))

    with pytest.raises(QueryError):
        await repo.append_event_log(USER_ID, StreakEventType.SHIELD_USED, {})


# ============================================================================
# Schema
# ============================================================================

@pytest.mark.asyncio
async def test_ensure_schema_runs_all_statements(fake_db_factory):
    db = fake_db_factory()

    await ensure_schema(db)

    assert len(db.cursor.executed) == len(SCHEMA_STATEMENTS)
    assert any("CREATE TABLE IF NOT EXISTS user_progress" in q for q, _ in db.cursor.executed)
    db.conn.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_ensure_schema_wraps_driver_errors(fake_db_factory):
    db = fake_db_factory(error=psycopg.OperationalError("no route to host"))

    with pytest.raises(ConnectionError):
        await ensure_schema(db)
