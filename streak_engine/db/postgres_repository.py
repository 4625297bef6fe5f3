"""PostgreSQL streak repository (psycopg 3, async)"""
import json
import logging
from datetime import datetime
from typing import Any, Optional

import psycopg

from streak_engine.db.connection import Database
from streak_engine.db.repository import RewardGranter, StreakRepository
from streak_engine.exceptions import (
    ConcurrencyConflictError,
    NoShieldAvailableError,
    RecordNotFoundError,
    wrap_external_exception,
)
from streak_engine.models.streak import (
    SHIELD_ITEM_TYPE,
    LeaderboardEntry,
    RewardKind,
    StreakEventType,
    UserStreakState,
)

logger = logging.getLogger(__name__)

STATE_COLUMNS = "user_id, streak_days, longest_streak, total_activity_points, last_activity_at"


def _row_to_state(row: dict) -> UserStreakState:
    return UserStreakState(
        user_id=str(row["user_id"]),
        streak_days=row["streak_days"] or 0,
        longest_streak=row["longest_streak"] or 0,
        total_activity_points=float(row["total_activity_points"] or 0),
        last_activity_at=row["last_activity_at"],
    )


class PostgresStreakRepository(StreakRepository, RewardGranter):
    """
    Streak persistence on user_progress, user_inventory, streak_events and
    user_rewards (see streak_engine.db.schema).

    Streak updates are one conditional UPDATE, committed together with the
    shield decrement when a shield is spent, so two writers racing on the
    same user cannot both succeed and a losing writer spends nothing.
    """

    def __init__(self, db: Database):
        self.db = db

    # ==========================================
    # Streak State
    # ==========================================

    async def get_streak_state(self, user_id: str) -> Optional[UserStreakState]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {STATE_COLUMNS}
                        FROM user_progress
                        WHERE user_id = %s
                        """,
                        (user_id,)
                    )
                    row = await cur.fetchone()
                    return _row_to_state(row) if row else None
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_streak_state", user_id=user_id)

    async def init_streak_state(self, user_id: str) -> UserStreakState:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        INSERT INTO user_progress
                            (user_id, streak_days, longest_streak, total_activity_points, last_activity_at)
                        VALUES (%s, 0, 0, 0, NULL)
                        ON CONFLICT (user_id) DO NOTHING
                        RETURNING {STATE_COLUMNS}
                        """,
                        (user_id,)
                    )
                    row = await cur.fetchone()

                    if not row:
                        # Created concurrently by another request
                        await cur.execute(
                            f"SELECT {STATE_COLUMNS} FROM user_progress WHERE user_id = %s",
                            (user_id,)
                        )
                        row = await cur.fetchone()
                    else:
                        logger.info(f"Created new streak record for user {user_id}")

                    await conn.commit()
                    return _row_to_state(row)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="init_streak_state", user_id=user_id)

    async def update_streak_state(
        self,
        user_id: str,
        new_streak_days: int,
        new_last_activity_at: datetime,
        weight_delta: float,
        expected_previous_last_activity_at: Optional[datetime],
        consume_shield: bool = False,
    ) -> UserStreakState:
        shield_row = None
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        UPDATE user_progress
                        SET streak_days = %s,
                            longest_streak = GREATEST(longest_streak, %s),
                            last_activity_at = %s,
                            total_activity_points = total_activity_points + %s,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE user_id = %s
                          AND last_activity_at IS NOT DISTINCT FROM %s::timestamptz
                        RETURNING {STATE_COLUMNS}
                        """,
                        (
                            new_streak_days,
                            new_streak_days,
                            new_last_activity_at,
                            weight_delta,
                            user_id,
                            expected_previous_last_activity_at,
                        )
                    )
                    row = await cur.fetchone()

                    if row and consume_shield:
                        # Same transaction as the streak update
                        await cur.execute(
                            """
                            UPDATE user_inventory
                            SET quantity = quantity - 1,
                                updated_at = CURRENT_TIMESTAMP
                            WHERE user_id = %s AND item_type = %s AND quantity > 0
                            RETURNING quantity
                            """,
                            (user_id, SHIELD_ITEM_TYPE)
                        )
                        shield_row = await cur.fetchone()

                    if row and (shield_row or not consume_shield):
                        await conn.commit()
                        return _row_to_state(row)

                    await conn.rollback()
                    if row:
                        raise NoShieldAvailableError(user_id=user_id, operation="update_streak_state")

                    await cur.execute(
                        "SELECT 1 FROM user_progress WHERE user_id = %s",
                        (user_id,)
                    )
                    exists = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="update_streak_state", user_id=user_id)

        if not exists:
            raise RecordNotFoundError(
                message=f"No streak state for user {user_id}",
                record_type="UserStreakState",
                record_id=user_id,
                user_id=user_id,
                operation="update_streak_state",
            )
        raise ConcurrencyConflictError(
            user_id=user_id,
            operation="update_streak_state",
            expected_last_activity_at=expected_previous_last_activity_at,
        )

    async def add_activity_points(self, user_id: str, weight_delta: float) -> UserStreakState:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        UPDATE user_progress
                        SET total_activity_points = total_activity_points + %s,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE user_id = %s
                        RETURNING {STATE_COLUMNS}
                        """,
                        (weight_delta, user_id)
                    )
                    row = await cur.fetchone()
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="add_activity_points", user_id=user_id)

        if not row:
            raise RecordNotFoundError(
                message=f"No streak state for user {user_id}",
                record_type="UserStreakState",
                record_id=user_id,
                user_id=user_id,
                operation="add_activity_points",
            )
        return _row_to_state(row)

    # ==========================================
    # Shield Inventory
    # ==========================================

    async def get_shield_count(self, user_id: str) -> int:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        SELECT quantity
                        FROM user_inventory
                        WHERE user_id = %s AND item_type = %s
                        """,
                        (user_id, SHIELD_ITEM_TYPE)
                    )
                    row = await cur.fetchone()
                    return int(row["quantity"]) if row else 0
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_shield_count", user_id=user_id)

    async def consume_shield(self, user_id: str) -> int:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        UPDATE user_inventory
                        SET quantity = quantity - 1,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE user_id = %s AND item_type = %s AND quantity > 0
                        RETURNING quantity
                        """,
                        (user_id, SHIELD_ITEM_TYPE)
                    )
                    row = await cur.fetchone()
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="consume_shield", user_id=user_id)

        if not row:
            raise NoShieldAvailableError(user_id=user_id, operation="consume_shield")
        return int(row["quantity"])

    # ==========================================
    # Event Log & Leaderboard
    # ==========================================

    async def append_event_log(
        self,
        user_id: str,
        event_type: StreakEventType,
        metadata: dict[str, Any],
    ) -> None:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        INSERT INTO streak_events (user_id, event_type, metadata)
                        VALUES (%s, %s, %s)
                        """,
                        (user_id, StreakEventType(event_type).value, json.dumps(metadata))
                    )
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="append_event_log", user_id=user_id)

    async def get_streak_leaderboard(self, limit: int = 10) -> list[LeaderboardEntry]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        SELECT user_id, streak_days, longest_streak
                        FROM user_progress
                        WHERE streak_days > 0
                        ORDER BY streak_days DESC, longest_streak DESC, user_id
                        LIMIT %s
                        """,
                        (limit,)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_streak_leaderboard")

        return [
            LeaderboardEntry(
                rank=rank,
                user_id=str(row["user_id"]),
                streak_days=row["streak_days"],
                longest_streak=row["longest_streak"],
            )
            for rank, row in enumerate(rows, start=1)
        ]

    # ==========================================
    # Rewards
    # ==========================================

    async def grant_reward(self, user_id: str, reward_kind: RewardKind, quantity: int = 1) -> None:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    if reward_kind == RewardKind.STREAK_SHIELD:
                        await cur.execute(
                            """
                            INSERT INTO user_inventory (user_id, item_type, quantity)
                            VALUES (%s, %s, %s)
                            ON CONFLICT (user_id, item_type)
                            DO UPDATE SET quantity = user_inventory.quantity + EXCLUDED.quantity,
                                          updated_at = CURRENT_TIMESTAMP
                            """,
                            (user_id, SHIELD_ITEM_TYPE, quantity)
                        )
                    else:
                        await cur.execute(
                            """
                            INSERT INTO user_rewards (user_id, reward_kind, quantity)
                            VALUES (%s, %s, %s)
                            ON CONFLICT (user_id, reward_kind) DO NOTHING
                            """,
                            (user_id, reward_kind.value, quantity)
                        )
                    await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="grant_reward",
                user_id=user_id,
                context={"reward_kind": reward_kind.value, "quantity": quantity},
            )

        logger.info(f"Granted {quantity}x {reward_kind.value} to user {user_id}")
