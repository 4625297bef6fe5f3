"""
XP Calculation

XP = weight x 10, boosted by the current streak:
- +10% per streak day
- bonus capped at +200% (reached at a 20-day streak)

Always evaluated with the streak length AFTER the activity was applied.
"""

import math

XP_PER_WEIGHT_UNIT = 10
STREAK_BONUS_PER_DAY = 0.1
MAX_STREAK_BONUS = 2.0


def calculate_streak_bonus(streak_days: int) -> float:
    """Streak bonus multiplier component (0.0 - 2.0)"""
    return min(max(streak_days, 0) * STREAK_BONUS_PER_DAY, MAX_STREAK_BONUS)


def calculate_xp(weight: float, streak_days: int) -> int:
    """
    Calculate XP earned for an activity

    Args:
        weight: Activity weight (0 < weight <= 3.0)
        streak_days: Streak length after this activity

    Returns:
        Whole XP points (floored)

    Example:
        >>> calculate_xp(2.925, 6)
        46
    """
    base_xp = weight * XP_PER_WEIGHT_UNIT
    return math.floor(base_xp * (1 + calculate_streak_bonus(streak_days)))
