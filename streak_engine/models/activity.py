"""Activity metadata models (transient, never persisted)"""
import math
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ActivityType(str, Enum):
    """Known activity types"""
    VOICE_DRILL = "voice_drill"
    CHAT_SESSION = "chat_session"
    POD_REVIEW = "pod_review"
    ASSESSMENT = "assessment"
    MENTORS_LAB = "mentors_lab"
    MEETING_AGENT = "meeting_agent"
    VISION_LAB = "vision_lab"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ActivityType":
        """Map a raw type string to a known type, or UNKNOWN"""
        if isinstance(value, ActivityType):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


class ActivityEvent(BaseModel):
    """
    Metadata about one completed activity.

    Only THAT an activity happened is described here (type, length, quality),
    never WHAT was said or produced.
    """
    activity_type: str = ActivityType.UNKNOWN.value
    duration_seconds: int = 0
    completion_score: float = 50.0

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def non_negative_duration(cls, value) -> int:
        if value is None:
            return 0
        # inf/nan carry no usable length
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(int(value), 0)

    @field_validator("completion_score", mode="before")
    @classmethod
    def clamp_completion_score(cls, value) -> float:
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return 50.0
        return min(max(float(value), 0.0), 100.0)

    @property
    def known_type(self) -> ActivityType:
        return ActivityType.parse(self.activity_type)


class ActivityWeightBreakdown(BaseModel):
    """Multipliers applied while weighting an activity"""
    base_multiplier: float
    duration_multiplier: float
    quality_multiplier: float
    weight: float = Field(gt=0, le=3.0)
