"""Streak milestones: rewards unlocked at an exact streak length"""

from typing import Optional

from streak_engine.models.streak import MilestoneDefinition, RewardCategory, RewardKind

MILESTONES: dict[int, MilestoneDefinition] = {
    7: MilestoneDefinition(
        threshold=7,
        title="Week Warrior",
        reward=RewardKind.STREAK_SHIELD,
        category=RewardCategory.PROTECTION_GRANT,
    ),
    30: MilestoneDefinition(
        threshold=30,
        title="Monthly Master",
        reward=RewardKind.PREMIUM_VOICE,
        category=RewardCategory.FEATURE_UNLOCK,
    ),
    100: MilestoneDefinition(
        threshold=100,
        title="Century Champion",
        reward=RewardKind.LIFETIME_PRO,
        category=RewardCategory.TIER_UNLOCK,
    ),
    365: MilestoneDefinition(
        threshold=365,
        title="Year Legend",
        reward=RewardKind.HALL_OF_FAME,
        category=RewardCategory.STATUS_UNLOCK,
    ),
}


def evaluate_milestone(streak_days: int) -> Optional[MilestoneDefinition]:
    """Milestone reached at exactly this streak length, if any"""
    return MILESTONES.get(streak_days)


def get_next_milestone(streak_days: int) -> Optional[int]:
    """Smallest milestone threshold still ahead of the streak"""
    for threshold in sorted(MILESTONES):
        if threshold > streak_days:
            return threshold
    return None
