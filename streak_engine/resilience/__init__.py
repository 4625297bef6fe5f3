"""Caller-side resilience helpers"""
from streak_engine.resilience.retry import retry_on_conflict, is_retryable_error

__all__ = [
    "retry_on_conflict",
    "is_retryable_error",
]
