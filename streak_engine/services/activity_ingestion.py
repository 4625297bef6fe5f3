"""
ActivityIngestionService - Activity Ingestion Pipeline

Bridges completed activities with the streak state machine WITHOUT touching
activity content: only type, duration and quality score are used.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from streak_engine.config import Settings
from streak_engine.db.repository import RewardGranter, StreakRepository
from streak_engine.exceptions import NoShieldAvailableError, PersistenceError
from streak_engine.gamification.activity_weight import weigh_activity
from streak_engine.gamification.milestones import get_next_milestone
from streak_engine.gamification.streak_system import StreakStateMachine
from streak_engine.gamification.xp_system import calculate_xp
from streak_engine.models.activity import ActivityEvent
from streak_engine.models.streak import (
    IngestionResult,
    LeaderboardEntry,
    ShieldInventoryEntry,
    StreakEventType,
    StreakOutcome,
    StreakStats,
    StreakTransition,
    UserStreakState,
)
from streak_engine.observability.metrics import (
    milestones_reached_total,
    record_persistence_error,
    record_transition,
    shields_consumed_total,
)
from streak_engine.resilience.retry import retry_on_conflict
from streak_engine.utils.datetime_helpers import now_utc, resolve_timezone

logger = logging.getLogger(__name__)

OUTCOME_EMOJI = {
    StreakOutcome.ALREADY_LOGGED: "✅",
    StreakOutcome.EXTENDED: "🔥",
    StreakOutcome.SAVED: "🛡️",
    StreakOutcome.FORGIVEN: "🌙",
    StreakOutcome.RESET: "🔄",
}


def format_outcome_message(outcome: StreakOutcome, streak_days: int) -> str:
    """User-facing message for an outcome (never includes activity content)"""
    if outcome == StreakOutcome.ALREADY_LOGGED:
        return "Great work! You've already extended your streak today."
    if outcome == StreakOutcome.EXTENDED:
        return f"🔥 Streak Extended! You are now on Day {streak_days}!"
    if outcome == StreakOutcome.SAVED:
        return "❄️ Streak Shield Used! Streak saved."
    if outcome == StreakOutcome.FORGIVEN:
        return f"🌙 Late night session counted! Day {streak_days} streak maintained."
    return "Streak reset. Day 1 starts now. Let's build it back!"


class ActivityIngestionService:
    """
    Service for streak ingestion.

    Responsibilities:
    - Weighting the activity
    - Resolving the user's local day
    - Driving the streak state machine and persisting its decision
    - Granting milestone rewards
    - Computing XP
    """

    def __init__(
        self,
        repository: StreakRepository,
        reward_granter: RewardGranter,
        settings: Settings,
        clock: Callable[[], datetime] = now_utc
    ):
        """
        Initialize ActivityIngestionService.

        Args:
            repository: Streak state / shield / event log store
            reward_granter: Achievement collaborator for milestone rewards
            settings: Engine settings (default timezone, forgiveness window)
            clock: Returns the current aware datetime; injectable for tests
        """
        self.repository = repository
        self.reward_granter = reward_granter
        self.settings = settings
        self.clock = clock
        self.state_machine = StreakStateMachine(
            repository,
            forgiveness_window_end_hour=settings.forgiveness_window_end_hour,
        )
        logger.debug("ActivityIngestionService initialized")

    async def process_activity(
        self,
        user_id: str,
        timezone: Optional[str],
        activity: ActivityEvent
    ) -> IngestionResult:
        """
        Ingest one completed activity.

        Args:
            user_id: User ID
            timezone: User's IANA timezone (falls back to the default zone)
            activity: Activity metadata

        Returns:
            IngestionResult

        Raises:
            PersistenceError: Storage failed (including ConcurrencyConflictError
                when another request updated the same user first)
        """
        weighting = weigh_activity(activity)
        weight = weighting.weight

        try:
            state = await self._load_or_create_state(user_id)

            tz = resolve_timezone(timezone, self.settings.default_timezone)
            now_local = self.clock().astimezone(tz)

            transition = await self.state_machine.transition(user_id, state, now_local, weight)
            try:
                new_state = await self._persist(user_id, transition)
            except NoShieldAvailableError:
                # Shield spent elsewhere since it was counted; nothing was written
                transition = await self.state_machine.transition(
                    user_id, state, now_local, weight, allow_shield=False
                )
                new_state = await self._persist(user_id, transition)
        except PersistenceError as e:
            record_persistence_error(e.operation, e)
            raise

        if transition.shield_consumed:
            shields_consumed_total.labels(source="automatic").inc()
            logger.info(f"User {user_id} used a streak shield to keep a {new_state.streak_days}-day streak")

        await self.state_machine.log_transition(user_id, transition)

        reward_granted = False
        milestone = None
        if transition.outcome == StreakOutcome.EXTENDED and transition.milestone:
            milestone = transition.milestone
            reward_granted = await self._grant_milestone_reward(user_id, transition)

        xp = calculate_xp(weight, new_state.streak_days)

        record_transition(transition.outcome.value, activity.known_type.value, weight, xp)
        logger.info(
            f"Activity processed: user={user_id}, type={activity.known_type.value}, "
            f"weight={weight}, outcome={transition.outcome.value}, "
            f"streak={transition.previous_streak_days} → {new_state.streak_days}, xp={xp}"
        )

        return IngestionResult(
            status=transition.outcome,
            message=format_outcome_message(transition.outcome, new_state.streak_days),
            emoji=OUTCOME_EMOJI[transition.outcome],
            streak_days=new_state.streak_days,
            longest_streak=new_state.longest_streak,
            total_activity_points=new_state.total_activity_points,
            weight=weight,
            xp_earned=xp,
            milestone=milestone,
            reward_granted=reward_granted,
            previous_best=state.longest_streak if transition.outcome == StreakOutcome.RESET else None,
            is_first_activity=transition.is_first_activity,
        )

    async def process_activity_with_retry(
        self,
        user_id: str,
        timezone: Optional[str],
        activity: ActivityEvent
    ) -> IngestionResult:
        """
        process_activity, re-run from a fresh read when another request for
        the same user won the race (up to Settings.conflict_max_retries times)
        """
        return await retry_on_conflict(
            self.process_activity,
            user_id,
            timezone,
            activity,
            max_retries=self.settings.conflict_max_retries,
        )

    async def get_streak_stats(self, user_id: str) -> StreakStats:
        """
        Get user's streak statistics

        Users without any activity get zeroed stats; no record is created.
        """
        state = await self.repository.get_streak_state(user_id)
        if state is None:
            return StreakStats(next_milestone=get_next_milestone(0))

        return StreakStats(
            current_streak=state.streak_days,
            longest_streak=state.longest_streak,
            total_points=state.total_activity_points,
            last_active=state.last_activity_at,
            next_milestone=get_next_milestone(state.streak_days),
        )

    async def get_shield_inventory(self, user_id: str) -> ShieldInventoryEntry:
        """Streak shields the user currently owns"""
        quantity = await self.repository.get_shield_count(user_id)
        return ShieldInventoryEntry(user_id=user_id, quantity=quantity)

    async def use_streak_shield(self, user_id: str) -> Dict[str, Any]:
        """
        Manually consume a streak shield (admin/testing; normally automatic)

        Returns:
            {
                'success': bool,
                'shields_remaining': int,
                'message': str
            }
        """
        try:
            remaining = await self.repository.consume_shield(user_id)
        except NoShieldAvailableError:
            return {
                "success": False,
                "shields_remaining": 0,
                "message": "No streak shields available",
            }

        shields_consumed_total.labels(source="manual").inc()
        await self.state_machine.record_event(
            user_id, StreakEventType.SHIELD_USED, {"manual": True}
        )

        return {
            "success": True,
            "shields_remaining": remaining,
            "message": f"Streak shield used successfully. {remaining} remaining",
        }

    async def get_leaderboard(self, limit: int = 10) -> List[LeaderboardEntry]:
        """Top current streaks"""
        limit = max(1, min(limit, 100))
        return await self.repository.get_streak_leaderboard(limit)

    # Internal helpers -------------------------------------------------

    async def _load_or_create_state(self, user_id: str) -> UserStreakState:
        state = await self.repository.get_streak_state(user_id)
        if state is None:
            state = await self.repository.init_streak_state(user_id)
        return state

    async def _persist(self, user_id: str, transition: StreakTransition) -> UserStreakState:
        if transition.outcome == StreakOutcome.ALREADY_LOGGED:
            return await self.repository.add_activity_points(user_id, transition.weight)

        return await self.repository.update_streak_state(
            user_id,
            new_streak_days=transition.streak_days,
            new_last_activity_at=transition.last_activity_at,
            weight_delta=transition.weight,
            expected_previous_last_activity_at=transition.previous_last_activity_at,
            consume_shield=transition.shield_consumed,
        )

    async def _grant_milestone_reward(self, user_id: str, transition: StreakTransition) -> bool:
        """
        Grant the milestone reward. The streak update is already committed,
        so a failed grant is logged and reported instead of failing the call.
        """
        milestone = transition.milestone
        milestones_reached_total.labels(title=milestone.title).inc()

        try:
            await self.reward_granter.grant_reward(user_id, milestone.reward, milestone.quantity)
        except PersistenceError as e:
            record_persistence_error("grant_reward", e)
            logger.error(
                f"Milestone {milestone.title} reached by user {user_id} but reward "
                f"{milestone.reward.value} was not granted (request_id={e.request_id})"
            )
            return False

        logger.info(f"Milestone awarded: {milestone.title} to user {user_id}")
        return True
