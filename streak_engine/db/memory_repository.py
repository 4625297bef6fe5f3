"""
In-memory streak repository

Used by tests and local development. State lives only as long as the
instance. Per-user asyncio locks give the single-writer guarantee, and
updates perform the same compare-and-swap as the PostgreSQL adapter.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Optional

from streak_engine.exceptions import (
    ConcurrencyConflictError,
    NoShieldAvailableError,
    RecordNotFoundError,
)
from streak_engine.db.repository import RewardGranter, StreakRepository
from streak_engine.models.streak import (
    LeaderboardEntry,
    RewardKind,
    StreakEventLogEntry,
    StreakEventType,
    UserStreakState,
)
from streak_engine.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


class InMemoryStreakRepository(StreakRepository, RewardGranter):
    """Dict-backed repository and reward granter"""

    def __init__(self):
        self._states: dict[str, UserStreakState] = {}
        self._shields: dict[str, int] = defaultdict(int)
        self._rewards: dict[str, set[RewardKind]] = defaultdict(set)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.events: list[StreakEventLogEntry] = []

    async def get_streak_state(self, user_id: str) -> Optional[UserStreakState]:
        state = self._states.get(user_id)
        return state.model_copy() if state else None

    async def init_streak_state(self, user_id: str) -> UserStreakState:
        async with self._locks[user_id]:
            if user_id not in self._states:
                self._states[user_id] = UserStreakState(user_id=user_id)
                logger.info(f"Created new streak record for user {user_id}")
            return self._states[user_id].model_copy()

    async def update_streak_state(
        self,
        user_id: str,
        new_streak_days: int,
        new_last_activity_at: datetime,
        weight_delta: float,
        expected_previous_last_activity_at: Optional[datetime],
        consume_shield: bool = False,
    ) -> UserStreakState:
        async with self._locks[user_id]:
            state = self._require_state(user_id, "update_streak_state")

            if state.last_activity_at != expected_previous_last_activity_at:
                raise ConcurrencyConflictError(
                    user_id=user_id,
                    operation="update_streak_state",
                    expected_last_activity_at=expected_previous_last_activity_at,
                )

            # Checked before anything is written so a failure leaves both untouched
            if consume_shield:
                if self._shields.get(user_id, 0) <= 0:
                    raise NoShieldAvailableError(user_id=user_id, operation="update_streak_state")
                self._shields[user_id] -= 1

            state.streak_days = new_streak_days
            state.longest_streak = max(state.longest_streak, new_streak_days)
            state.last_activity_at = new_last_activity_at
            state.total_activity_points += weight_delta
            return state.model_copy()

    async def add_activity_points(self, user_id: str, weight_delta: float) -> UserStreakState:
        async with self._locks[user_id]:
            state = self._require_state(user_id, "add_activity_points")
            state.total_activity_points += weight_delta
            return state.model_copy()

    async def get_shield_count(self, user_id: str) -> int:
        return self._shields.get(user_id, 0)

    async def consume_shield(self, user_id: str) -> int:
        async with self._locks[user_id]:
            if self._shields.get(user_id, 0) <= 0:
                raise NoShieldAvailableError(user_id=user_id, operation="consume_shield")
            self._shields[user_id] -= 1
            return self._shields[user_id]

    async def append_event_log(
        self,
        user_id: str,
        event_type: StreakEventType,
        metadata: dict[str, Any],
    ) -> None:
        self.events.append(
            StreakEventLogEntry(
                user_id=user_id,
                event_type=event_type,
                metadata=dict(metadata),
                created_at=now_utc(),
            )
        )

    async def get_streak_leaderboard(self, limit: int = 10) -> list[LeaderboardEntry]:
        active = [s for s in self._states.values() if s.streak_days > 0]
        active.sort(key=lambda s: (-s.streak_days, -s.longest_streak, s.user_id))
        return [
            LeaderboardEntry(
                rank=rank,
                user_id=state.user_id,
                streak_days=state.streak_days,
                longest_streak=state.longest_streak,
            )
            for rank, state in enumerate(active[:limit], start=1)
        ]

    async def grant_reward(self, user_id: str, reward_kind: RewardKind, quantity: int = 1) -> None:
        if reward_kind == RewardKind.STREAK_SHIELD:
            self._shields[user_id] += quantity
        else:
            self._rewards[user_id].add(reward_kind)
        logger.info(f"Granted {quantity}x {reward_kind.value} to user {user_id}")

    def save_state(self, state: UserStreakState) -> None:
        """Seed or overwrite a user's state directly (fixtures, local tooling)"""
        self._states[state.user_id] = state.model_copy()

    def get_rewards(self, user_id: str) -> set[RewardKind]:
        return set(self._rewards.get(user_id, set()))

    def _require_state(self, user_id: str, operation: str) -> UserStreakState:
        state = self._states.get(user_id)
        if state is None:
            raise RecordNotFoundError(
                message=f"No streak state for user {user_id}",
                record_type="UserStreakState",
                record_id=user_id,
                user_id=user_id,
                operation=operation,
            )
        return state
