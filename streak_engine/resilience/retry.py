"""Caller-side retry on optimistic concurrency conflicts

The streak engine itself never retries. A caller that wants at-least-once
ingestion wraps the WHOLE process_activity call, so the state is re-read
and the state machine re-evaluated on every attempt.
ActivityIngestionService.process_activity_with_retry does exactly that:

    result = await retry_on_conflict(
        service.process_activity, user_id, timezone, activity,
        max_retries=settings.conflict_max_retries,
    )

Only ConcurrencyConflictError is retried; every other error propagates at once.
"""

import asyncio
import random
import logging
from typing import Awaitable, Callable, Any, TypeVar

from streak_engine.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 0.05  # seconds
MAX_DELAY = 1.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """Only lost optimistic-concurrency races are worth re-running"""
    return isinstance(exc, ConcurrencyConflictError)


def calculate_backoff(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(base_delay * (2 ** attempt), MAX_DELAY) + jitter
    Jitter is random value between -10% and +10% of delay
    """
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    return max(delay + jitter_amount, 0.0)


async def retry_on_conflict(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any
) -> T:
    """
    Re-run an async call while it fails with ConcurrencyConflictError.

    Args:
        func: Async function to call (normally process_activity)
        max_retries: Maximum number of retry attempts
        base_delay: First backoff delay in seconds
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        ConcurrencyConflictError if retries are exhausted, or any
        non-retryable error immediately
    """
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    f"[RETRY] All {max_retries} retries exhausted for {name}"
                )
                raise

            backoff = calculate_backoff(attempt, base_delay)
            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {name} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )
            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")
