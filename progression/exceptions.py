"""
Standardized exception hierarchy for the progression engine
Provides rich context, consistent logging, and caller-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class ProgressionError(Exception):
    """
    Base exception for all progression engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - Caller-facing messages
    - Structured context
    - Automatic logging

    Example:
        raise ProgressionError(
            message="Failed to award points",
            user_id="u-123",
            operation="award_points",
            context={"amount": 50}
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
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for callers that report errors upstream"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Input Errors
# ==========================================

class ValidationError(ProgressionError):
    """
    Raised when input fails validation, before any mutation happens

    Examples:
    - Zero-amount point award
    - Missing user or achievement identifier

    Example:
        raise ValidationError(
            message="Amount must be a non-zero integer",
            field="amount",
            value=0,
            user_id="u-123"
        )
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


class NotFoundError(ProgressionError):
    """Requested user or achievement does not exist"""

    log_level = logging.WARNING

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


# ==========================================
# Expected Outcomes
# ==========================================

class ConflictError(ProgressionError):
    """
    Duplicate achievement unlock

    The engine reports duplicates as ``already_unlocked=True`` on the unlock
    result. The class exists for callers that prefer to raise it.
    """

    log_level = logging.INFO

    def __init__(self, message: str, achievement_id: Optional[str] = None, **kwargs):
        self.achievement_id = achievement_id
        super().__init__(
            message=message,
            user_message="Achievement already unlocked.",
            context={"achievement_id": achievement_id},
            **kwargs
        )


class ClampedError(ProgressionError):
    """
    A negative award would have pushed points below zero

    Never raised; created so the clamp is logged with context. The award
    itself still succeeds with the total held at zero.
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        requested_amount: Optional[int] = None,
        applied_amount: Optional[int] = None,
        **kwargs
    ):
        self.requested_amount = requested_amount
        self.applied_amount = applied_amount
        super().__init__(
            message=message,
            user_message="Points cannot go below zero; the total was set to zero.",
            context={"requested_amount": requested_amount, "applied_amount": applied_amount},
            **kwargs
        )


# ==========================================
# Storage Errors
# ==========================================

class InternalError(ProgressionError):
    """
    Storage unavailable or an atomic operation failed unexpectedly

    The enclosing transaction is rolled back, so no partial state is visible.
    """
    pass


class ConnectionError(InternalError):
    """Database connection failed"""

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(InternalError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your progress. Please try again.",
            context={"query": query},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(ProgressionError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_storage_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> ProgressionError:
    """
    Wrap storage driver exceptions (psycopg, pool timeouts) into our hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate InternalError subclass

    Example:
        try:
            await cur.execute(query, params)
        except psycopg.Error as e:
            raise wrap_storage_exception(e, operation="award_points", user_id=user_id) from e
    """
    import psycopg
    from psycopg_pool import PoolTimeout

    if isinstance(error, (psycopg.OperationalError, PoolTimeout)):
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
            cause=error
        )

    return InternalError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
