"""
Activity Weight Calculation

Turns activity metadata into a bounded score. Higher weight = more valuable
activity. Only metadata is used (type, duration, quality), never content.

Stages (each multiplies the running value):
- Type: voice_drill 1.5, chat_session 1.0, pod_review 1.3, assessment 1.8,
  mentors_lab 1.6, meeting_agent 1.7, vision_lab 1.4, unknown 1.0
- Duration: 20+ min x1.8, 10+ min x1.5, 5+ min x1.2, under 1 min x0.5
- Quality: 90+ x1.3, 70+ x1.1, under 30 x0.7

Result is rounded to 2 decimals and capped at 3.0 to prevent gaming.
"""

from typing import Optional
import logging

from streak_engine.exceptions import UnrecognizedActivityTypeError
from streak_engine.models.activity import ActivityEvent, ActivityType, ActivityWeightBreakdown

logger = logging.getLogger(__name__)

MAX_ACTIVITY_WEIGHT = 3.0
DEFAULT_COMPLETION_SCORE = 50.0

TYPE_MULTIPLIERS = {
    ActivityType.VOICE_DRILL: 1.5,
    ActivityType.CHAT_SESSION: 1.0,
    ActivityType.POD_REVIEW: 1.3,
    ActivityType.ASSESSMENT: 1.8,
    ActivityType.MENTORS_LAB: 1.6,
    ActivityType.MEETING_AGENT: 1.7,
    ActivityType.VISION_LAB: 1.4,
}

# (min_seconds, multiplier), highest first
DURATION_TIERS = [
    (1200, 1.8),  # 20+ min = serious practice
    (600, 1.5),   # 10+ min = good session
    (300, 1.2),   # 5+ min = decent
]
QUICK_CHECK_IN_SECONDS = 60
QUICK_CHECK_IN_MULTIPLIER = 0.5

# (min_score, multiplier), highest first
QUALITY_TIERS = [
    (90, 1.3),  # Excellent
    (70, 1.1),  # Good
]
LOW_QUALITY_SCORE = 30
LOW_QUALITY_MULTIPLIER = 0.7


def lookup_type_multiplier(activity_type: Optional[str]) -> float:
    """
    Base multiplier for a known activity type

    Raises:
        UnrecognizedActivityTypeError: If the type has no multiplier
    """
    known = ActivityType.parse(activity_type)
    if known not in TYPE_MULTIPLIERS:
        raise UnrecognizedActivityTypeError(activity_type, operation="lookup_type_multiplier")
    return TYPE_MULTIPLIERS[known]


def get_type_multiplier(activity_type: Optional[str]) -> float:
    """Base multiplier for an activity type; unknown types are neutral"""
    try:
        return lookup_type_multiplier(activity_type)
    except UnrecognizedActivityTypeError:
        logger.warning(f"Using neutral multiplier for activity type {activity_type!r}")
        return 1.0


def get_duration_multiplier(duration_seconds: int) -> float:
    duration_seconds = max(duration_seconds or 0, 0)
    for min_seconds, multiplier in DURATION_TIERS:
        if duration_seconds >= min_seconds:
            return multiplier
    if duration_seconds < QUICK_CHECK_IN_SECONDS:
        return QUICK_CHECK_IN_MULTIPLIER
    return 1.0


def get_quality_multiplier(completion_score: Optional[float]) -> float:
    if completion_score is None:
        completion_score = DEFAULT_COMPLETION_SCORE
    for min_score, multiplier in QUALITY_TIERS:
        if completion_score >= min_score:
            return multiplier
    if completion_score < LOW_QUALITY_SCORE:
        return LOW_QUALITY_MULTIPLIER
    return 1.0


def weigh_activity(activity: ActivityEvent) -> ActivityWeightBreakdown:
    """
    Weigh an activity and keep the individual multipliers

    Returns:
        ActivityWeightBreakdown with base/duration/quality multipliers and
        the final weight (0 < weight <= 3.0)
    """
    base = get_type_multiplier(activity.activity_type)
    duration = get_duration_multiplier(activity.duration_seconds)
    quality = get_quality_multiplier(activity.completion_score)

    weight = min(round(base * duration * quality, 2), MAX_ACTIVITY_WEIGHT)

    return ActivityWeightBreakdown(
        base_multiplier=base,
        duration_multiplier=duration,
        quality_multiplier=quality,
        weight=weight,
    )


def calculate_activity_weight(
    activity_type: Optional[str],
    duration_seconds: int = 0,
    completion_score: Optional[float] = DEFAULT_COMPLETION_SCORE,
) -> float:
    """
    Calculate the weight of one activity

    Never raises for odd input: unknown types, negative durations and
    out-of-range scores degrade to neutral multipliers.

    Example:
        >>> calculate_activity_weight("voice_drill", 700, 95)
        2.93
    """
    activity = ActivityEvent(
        activity_type=activity_type or ActivityType.UNKNOWN.value,
        duration_seconds=duration_seconds,
        completion_score=completion_score,
    )
    return weigh_activity(activity).weight
