"""Pydantic models for the streak engine"""
from streak_engine.models.activity import ActivityEvent, ActivityType, ActivityWeightBreakdown
from streak_engine.models.streak import (
    IngestionResult,
    LeaderboardEntry,
    MilestoneDefinition,
    RewardCategory,
    RewardKind,
    ShieldInventoryEntry,
    StreakEventLogEntry,
    StreakEventType,
    StreakOutcome,
    StreakStats,
    StreakTransition,
    UserStreakState,
)

__all__ = [
    "ActivityEvent",
    "ActivityType",
    "ActivityWeightBreakdown",
    "IngestionResult",
    "LeaderboardEntry",
    "MilestoneDefinition",
    "RewardCategory",
    "RewardKind",
    "ShieldInventoryEntry",
    "StreakEventLogEntry",
    "StreakEventType",
    "StreakOutcome",
    "StreakStats",
    "StreakTransition",
    "UserStreakState",
]
