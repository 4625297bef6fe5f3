"""
Standardized exception hierarchy for the streak engine
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

import psycopg

logger = logging.getLogger(__name__)


class StreakEngineError(Exception):
    """
    Base exception for all streak engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise StreakEngineError(
            message="Failed to update streak",
            user_id="user-123",
            operation="update_streak_state",
            context={"streak_days": 6}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause,
            )
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Persistence Errors
# ==========================================

class PersistenceError(StreakEngineError):
    """
    Any storage I/O failure.

    Surfaced to the caller unmodified; the engine never retries it.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault(
            "user_message",
            "We couldn't save your progress right now. Please try again."
        )
        super().__init__(message=message, **kwargs)


class ConnectionError(PersistenceError):
    """Database connection failed"""

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(PersistenceError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        context = kwargs.pop("context", None) or {}
        super().__init__(
            message=message,
            context={**context, "query": query},
            **kwargs
        )


class RecordNotFoundError(PersistenceError):
    """Requested database record does not exist"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


class ConcurrencyConflictError(PersistenceError):
    """
    Optimistic concurrency mismatch on a streak update.

    The stored last_activity_at no longer matches the value the update was
    computed from. Callers decide whether to re-run the whole ingestion.
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Streak state changed concurrently",
        expected_last_activity_at: Optional[datetime] = None,
        **kwargs
    ):
        self.expected_last_activity_at = expected_last_activity_at
        super().__init__(
            message=message,
            user_message="Your activity was logged from another session at the same time. Please try again.",
            context={
                "expected_last_activity_at": (
                    expected_last_activity_at.isoformat() if expected_last_activity_at else None
                )
            },
            **kwargs
        )


# ==========================================
# Inventory
# ==========================================

class NoShieldAvailableError(StreakEngineError):
    """User has no streak shield left to consume"""

    log_level = logging.INFO

    def __init__(self, message: str = "No streak shields available", **kwargs):
        super().__init__(
            message=message,
            user_message="No streak shields available",
            **kwargs
        )


# ==========================================
# Degraded Inputs (handled, never surfaced)
# ==========================================

class UnrecognizedTimezoneError(StreakEngineError):
    """Timezone name is not a known IANA zone; the default zone is used instead"""

    log_level = logging.WARNING

    def __init__(self, timezone_name: Optional[str], **kwargs):
        self.timezone_name = timezone_name
        super().__init__(
            message=f"Unrecognized timezone: {timezone_name!r}",
            context={"timezone": timezone_name},
            **kwargs
        )


class UnrecognizedActivityTypeError(StreakEngineError):
    """Activity type has no weight multiplier; a neutral multiplier is used instead"""

    log_level = logging.WARNING

    def __init__(self, activity_type: Optional[str], **kwargs):
        self.activity_type = activity_type
        super().__init__(
            message=f"Unrecognized activity type: {activity_type!r}",
            context={"activity_type": activity_type},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> StreakEngineError:
    """
    Wrap driver exceptions (psycopg, pool errors) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate PersistenceError subclass

    Example:
        try:
            await cur.execute(query, params)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="update_streak_state", user_id=user_id)
    """
    if isinstance(error, StreakEngineError):
        return error

    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    return PersistenceError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
