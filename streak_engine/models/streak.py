"""Streak, inventory, milestone and ingestion result models"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class StreakOutcome(str, Enum):
    """Exactly one outcome is produced per ingested activity"""
    ALREADY_LOGGED = "already_logged"
    EXTENDED = "extended"
    SAVED = "saved"
    FORGIVEN = "forgiven"
    RESET = "reset"


class StreakEventType(str, Enum):
    """Audit log event kinds"""
    STREAK_UPDATED = "streak_updated"
    SHIELD_USED = "shield_used"


class RewardCategory(str, Enum):
    """What kind of thing a milestone reward unlocks"""
    PROTECTION_GRANT = "protection_grant"
    FEATURE_UNLOCK = "feature_unlock"
    TIER_UNLOCK = "tier_unlock"
    STATUS_UNLOCK = "status_unlock"


class RewardKind(str, Enum):
    """Concrete rewards handed out by the achievement collaborator"""
    STREAK_SHIELD = "streak_shield"
    PREMIUM_VOICE = "premium_voice"
    LIFETIME_PRO = "lifetime_pro"
    HALL_OF_FAME = "hall_of_fame"


SHIELD_ITEM_TYPE = RewardKind.STREAK_SHIELD.value


class UserStreakState(BaseModel):
    """One per user; created lazily on first activity"""
    user_id: str
    streak_days: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    total_activity_points: float = Field(default=0.0, ge=0)
    last_activity_at: Optional[datetime] = None


class ShieldInventoryEntry(BaseModel):
    """Streak protection items owned by a user"""
    user_id: str
    item_type: str = SHIELD_ITEM_TYPE
    quantity: int = Field(default=0, ge=0)


class MilestoneDefinition(BaseModel):
    """Reward unlocked at an exact streak length"""
    threshold: int
    title: str
    reward: RewardKind
    category: RewardCategory
    quantity: int = 1


class StreakEventLogEntry(BaseModel):
    """Append-only audit record; never read back by the engine"""
    user_id: str
    event_type: StreakEventType
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class StreakTransition(BaseModel):
    """Decision produced by the streak state machine for one activity"""
    outcome: StreakOutcome
    previous_streak_days: int
    streak_days: int
    longest_streak: int
    previous_last_activity_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    weight: float
    milestone: Optional[MilestoneDefinition] = None
    shield_consumed: bool = False
    is_first_activity: bool = False

    @property
    def changes_streak_state(self) -> bool:
        return self.outcome != StreakOutcome.ALREADY_LOGGED


class IngestionResult(BaseModel):
    """Composite result returned to the caller of process_activity"""
    status: StreakOutcome
    message: str
    emoji: str
    streak_days: int
    longest_streak: int
    total_activity_points: float
    weight: float
    xp_earned: int
    milestone: Optional[MilestoneDefinition] = None
    reward_granted: bool = False
    previous_best: Optional[int] = None
    is_first_activity: bool = False


class StreakStats(BaseModel):
    """Read-only streak summary for a user"""
    current_streak: int = 0
    longest_streak: int = 0
    total_points: float = 0.0
    last_active: Optional[datetime] = None
    next_milestone: Optional[int] = None


class LeaderboardEntry(BaseModel):
    """One row of the streak leaderboard"""
    rank: int
    user_id: str
    streak_days: int
    longest_streak: int
