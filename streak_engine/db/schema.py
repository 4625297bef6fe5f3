"""Database schema for streak persistence"""
import logging

import psycopg

from streak_engine.db.connection import Database
from streak_engine.exceptions import wrap_external_exception

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS user_progress (
        user_id TEXT PRIMARY KEY,
        streak_days INTEGER NOT NULL DEFAULT 0 CHECK (streak_days >= 0),
        longest_streak INTEGER NOT NULL DEFAULT 0 CHECK (longest_streak >= 0),
        total_activity_points DOUBLE PRECISION NOT NULL DEFAULT 0,
        last_activity_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_user_progress_leaderboard
        ON user_progress (streak_days DESC, longest_streak DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS user_inventory (
        user_id TEXT NOT NULL,
        item_type TEXT NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_id, item_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS streak_events (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_streak_events_user_id ON streak_events (user_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS user_rewards (
        user_id TEXT NOT NULL,
        reward_kind TEXT NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 1,
        granted_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_id, reward_kind)
    )
    """,
]


async def ensure_schema(db: Database) -> None:
    """Create streak tables and indexes if they don't exist"""
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    await cur.execute(statement)
            await conn.commit()
    except psycopg.Error as e:
        raise wrap_external_exception(e, operation="ensure_schema")

    logger.info(f"Streak schema ready ({len(SCHEMA_STATEMENTS)} statements applied)")
