"""
Daily Streak State Machine

Decides what one activity does to a user's streak, judged on the user's
LOCAL calendar day. Rules are checked in order, first match wins:

1. already_logged - same local day as the last activity (streak unchanged)
2. extended       - last activity was yesterday (streak + 1, milestones)
3. saved          - a day was missed but a streak shield is available
                    (spent by the caller together with the streak update)
4. forgiven       - one day missed, but it's 00:00-03:00 and the session
                    counts for yesterday (streak + 1)
5. reset          - anything else, including the very first activity

Every outcome adds the activity weight to the points total. Outcomes other
than already_logged write one audit entry to the event log.
"""

from datetime import date, datetime
from typing import Any, Optional
import logging

from streak_engine.config import FORGIVENESS_WINDOW_END_HOUR
from streak_engine.db.repository import StreakRepository
from streak_engine.gamification.milestones import evaluate_milestone
from streak_engine.models.streak import (
    StreakEventType,
    StreakOutcome,
    StreakTransition,
    UserStreakState,
)
from streak_engine.utils.datetime_helpers import (
    is_in_forgiveness_window,
    local_date,
    previous_local_day,
    shift_local_days,
)

logger = logging.getLogger(__name__)


def is_already_logged(last_day: Optional[date], today: date) -> bool:
    """
    Same local day as the last activity.

    A day earlier than the last activity (clock skew, timezone change) is
    treated the same way so last_activity_at never moves backwards.
    """
    return last_day is not None and today <= last_day


def is_consecutive(last_day: Optional[date], today: date) -> bool:
    return last_day is not None and previous_local_day(today) == last_day


def is_forgivable(
    last_day: Optional[date],
    now_local: datetime,
    window_end_hour: int = FORGIVENESS_WINDOW_END_HOUR
) -> bool:
    """
    Late-night session after exactly one skipped day.

    Last activity on D, now between 00:00 and the window end on D+2: the
    session is counted for D+1.
    """
    if last_day is None or not is_in_forgiveness_window(now_local, window_end_hour):
        return False
    yesterday = previous_local_day(now_local.date())
    return previous_local_day(yesterday) == last_day


class StreakStateMachine:
    """
    Streak decision engine.

    Reads the shield inventory and writes the event log; nothing else is
    persisted here. A saved transition carries shield_consumed=True and the
    caller spends the shield in the same atomic update as the new streak
    state. Persistence errors propagate unchanged and are never retried.
    """

    def __init__(
        self,
        repository: StreakRepository,
        forgiveness_window_end_hour: int = FORGIVENESS_WINDOW_END_HOUR
    ):
        self.repository = repository
        self.forgiveness_window_end_hour = forgiveness_window_end_hour

    async def transition(
        self,
        user_id: str,
        state: UserStreakState,
        now_local: datetime,
        weight: float,
        allow_shield: bool = True
    ) -> StreakTransition:
        """
        Apply one activity to a streak state

        Args:
            user_id: User ID
            state: Current stored state
            now_local: Current time in the user's timezone (must be aware)
            weight: Activity weight
            allow_shield: Consider rule 3 (False once a shield turned out
                to be spent elsewhere)

        Returns:
            StreakTransition with the outcome and the new state values
        """
        if now_local.tzinfo is None:
            raise ValueError("now_local must be timezone-aware")

        last_at = state.last_activity_at
        last_day = local_date(last_at, now_local.tzinfo) if last_at else None
        today = now_local.date()

        base = {
            "previous_streak_days": state.streak_days,
            "previous_last_activity_at": last_at,
            "weight": weight,
        }

        # 1. Already logged today
        if is_already_logged(last_day, today):
            return StreakTransition(
                outcome=StreakOutcome.ALREADY_LOGGED,
                streak_days=state.streak_days,
                longest_streak=state.longest_streak,
                last_activity_at=last_at,
                **base
            )

        # 2. Consecutive day
        if is_consecutive(last_day, today):
            new_streak = state.streak_days + 1
            return StreakTransition(
                outcome=StreakOutcome.EXTENDED,
                streak_days=new_streak,
                longest_streak=max(state.longest_streak, new_streak),
                last_activity_at=now_local,
                milestone=evaluate_milestone(new_streak),
                **base
            )

        # 3. Gap - protect with a shield if the user has one
        if last_day is not None and allow_shield and await self._has_shield(user_id):
            return StreakTransition(
                outcome=StreakOutcome.SAVED,
                streak_days=state.streak_days,
                longest_streak=max(state.longest_streak, state.streak_days),
                last_activity_at=now_local,
                shield_consumed=True,
                **base
            )

        # 4. Late night session after one skipped day counts for yesterday
        if is_forgivable(last_day, now_local, self.forgiveness_window_end_hour):
            new_streak = state.streak_days + 1
            return StreakTransition(
                outcome=StreakOutcome.FORGIVEN,
                streak_days=new_streak,
                longest_streak=max(state.longest_streak, new_streak),
                last_activity_at=shift_local_days(now_local, -1),
                **base
            )

        # 5. Streak broken (or first ever activity)
        if last_day is not None:
            logger.info(
                f"User {user_id} streak broken. Was {state.streak_days}, "
                f"last active {last_day.isoformat()}, now {today.isoformat()}"
            )
        return StreakTransition(
            outcome=StreakOutcome.RESET,
            streak_days=1,
            longest_streak=max(state.longest_streak, 1),
            last_activity_at=now_local,
            is_first_activity=last_at is None,
            **base
        )

    async def log_transition(self, user_id: str, transition: StreakTransition) -> None:
        """Write the audit entry for a transition (no-op for already_logged)"""
        if not transition.changes_streak_state:
            return

        if transition.outcome == StreakOutcome.SAVED:
            await self.record_event(
                user_id,
                StreakEventType.SHIELD_USED,
                {"streak_days": transition.streak_days, "activity_weight": transition.weight},
            )
        else:
            await self.record_event(
                user_id,
                StreakEventType.STREAK_UPDATED,
                {
                    "outcome": transition.outcome.value,
                    "new_streak": transition.streak_days,
                    "activity_weight": transition.weight,
                },
            )

    async def record_event(
        self,
        user_id: str,
        event_type: StreakEventType,
        metadata: dict[str, Any]
    ) -> None:
        """Append to the event log; a failing log never fails the caller"""
        try:
            await self.repository.append_event_log(user_id, event_type, metadata)
        except Exception as e:
            logger.warning(
                f"Could not append {event_type.value} event for user {user_id}: {e}",
                exc_info=True
            )

    async def _has_shield(self, user_id: str) -> bool:
        return await self.repository.get_shield_count(user_id) > 0
