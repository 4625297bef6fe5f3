"""
Prometheus metrics definitions for the streak engine.

- Streak metrics: transitions by outcome, shields consumed, milestones
- Scoring metrics: activity weight distribution, XP awarded
- Persistence metrics: failures by repository operation
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# Streak Metrics
# =============================================================================

streak_transitions_total = Counter(
    "streak_transitions_total",
    "Streak state machine outcomes",
    ["outcome"],  # already_logged/extended/saved/forgiven/reset
)

shields_consumed_total = Counter(
    "streak_shields_consumed_total",
    "Streak shields consumed (automatic and manual)",
    ["source"],  # source: automatic/manual
)

milestones_reached_total = Counter(
    "streak_milestones_reached_total",
    "Streak milestones reached",
    ["title"],
)

# =============================================================================
# Scoring Metrics
# =============================================================================

activity_weight = Histogram(
    "streak_activity_weight",
    "Weight assigned to ingested activities",
    ["activity_type"],
    buckets=[0.25, 0.5, 0.75, 1.0, 1.5, 2.0, 2.5, 3.0],
)

xp_awarded_total = Counter(
    "streak_xp_awarded_total",
    "Total XP awarded for activities",
)

# =============================================================================
# Persistence Metrics
# =============================================================================

persistence_errors_total = Counter(
    "streak_persistence_errors_total",
    "Persistence failures surfaced to callers",
    ["operation", "error_type"],
)


def record_transition(outcome: str, activity_type: str, weight: float, xp: int) -> None:
    """Record one completed ingestion"""
    streak_transitions_total.labels(outcome=outcome).inc()
    activity_weight.labels(activity_type=activity_type).observe(weight)
    xp_awarded_total.inc(xp)


def record_persistence_error(operation: str, error: Exception) -> None:
    persistence_errors_total.labels(
        operation=operation or "unknown",
        error_type=type(error).__name__,
    ).inc()
