"""
Persistence contracts consumed by the streak engine

Adapters MUST provide single-writer-per-user semantics for streak updates:
`update_streak_state` is a compare-and-swap keyed on the previous
`last_activity_at`, raising ConcurrencyConflictError when another writer got
there first. The engine never retries; callers may re-run the whole ingestion
(see streak_engine.resilience.retry.retry_on_conflict).

All storage failures surface as PersistenceError subclasses.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from streak_engine.models.streak import (
    LeaderboardEntry,
    RewardKind,
    StreakEventType,
    UserStreakState,
)


class StreakRepository(ABC):
    """Streak state store, shield inventory and event log"""

    @abstractmethod
    async def get_streak_state(self, user_id: str) -> Optional[UserStreakState]:
        """Stored state, or None if the user never had an activity"""

    @abstractmethod
    async def init_streak_state(self, user_id: str) -> UserStreakState:
        """Create a zeroed state (returns the existing one if already created)"""

    @abstractmethod
    async def update_streak_state(
        self,
        user_id: str,
        new_streak_days: int,
        new_last_activity_at: datetime,
        weight_delta: float,
        expected_previous_last_activity_at: Optional[datetime],
        consume_shield: bool = False,
    ) -> UserStreakState:
        """
        Atomically set streak days and last activity, raise longest streak to
        at least new_streak_days, and add weight_delta to the points total.

        With consume_shield, one streak shield is decremented in the same
        atomic unit: either both changes are applied or neither is.

        Raises:
            ConcurrencyConflictError: stored last_activity_at differs from
                expected_previous_last_activity_at
            RecordNotFoundError: no state exists for the user
            NoShieldAvailableError: consume_shield was requested but the
                user has no shield left
        """

    @abstractmethod
    async def add_activity_points(self, user_id: str, weight_delta: float) -> UserStreakState:
        """Atomic increment of the points total only"""

    @abstractmethod
    async def get_shield_count(self, user_id: str) -> int:
        """Streak shields the user owns (0 when no inventory row exists)"""

    @abstractmethod
    async def consume_shield(self, user_id: str) -> int:
        """
        Decrement the shield count by exactly one

        Returns:
            Shields remaining

        Raises:
            NoShieldAvailableError: quantity is already 0
        """

    @abstractmethod
    async def append_event_log(
        self,
        user_id: str,
        event_type: StreakEventType,
        metadata: dict[str, Any],
    ) -> None:
        """Append one audit entry (write-only)"""

    @abstractmethod
    async def get_streak_leaderboard(self, limit: int = 10) -> list[LeaderboardEntry]:
        """Users with an active streak, longest current streak first"""


class RewardGranter(ABC):
    """Achievement collaborator handing out milestone rewards"""

    @abstractmethod
    async def grant_reward(self, user_id: str, reward_kind: RewardKind, quantity: int = 1) -> None:
        """
        Grant a reward. A streak_shield adds to the shield inventory; other
        kinds are unlocked once per user.
        """
