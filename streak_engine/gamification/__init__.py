"""
Streak gamification core

- Activity weighting (type, duration, quality)
- XP with streak bonus
- Exact-length streak milestones
- Daily streak state machine with shields and a forgiveness window
"""

from streak_engine.gamification.activity_weight import calculate_activity_weight, weigh_activity
from streak_engine.gamification.xp_system import calculate_xp
from streak_engine.gamification.milestones import MILESTONES, evaluate_milestone, get_next_milestone
from streak_engine.gamification.streak_system import StreakStateMachine

__all__ = [
    "calculate_activity_weight",
    "weigh_activity",
    "calculate_xp",
    "MILESTONES",
    "evaluate_milestone",
    "get_next_milestone",
    "StreakStateMachine",
]
