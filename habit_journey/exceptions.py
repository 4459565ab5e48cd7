"""
Standardized exception hierarchy for habit-journey
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class HabitJourneyError(Exception):
    """
    Base exception for all habit-journey errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise HabitJourneyError(
            message="Failed to apply completion",
            user_id="user-1",
            operation="complete_habit",
            context={"habit_template_id": "drink-water"}
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
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(HabitJourneyError):
    """
    Raised when user input fails validation

    Example:
        raise ValidationError(
            message="Daily XP goal must be positive",
            field="daily_xp_goal",
            value=0,
            user_id="user-1"
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
        kwargs.setdefault("user_message", f"Invalid {field}: {message}" if field else message)
        super().__init__(
            message=message,
            context={"field": field, "value": value},
            **kwargs
        )


class MalformedRecurrenceError(ValidationError):
    """Recurrence specification cannot be expanded into dates"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            user_message=f"Invalid repeat settings: {message}",
            **kwargs
        )


# ==========================================
# Progression Errors
# ==========================================

class ProgressionError(HabitJourneyError):
    """
    Base class for habit/goal progression errors
    """
    pass


class DuplicateCompletionError(ProgressionError):
    """Habit was already completed on this calendar day"""

    log_level = logging.INFO

    def __init__(
        self,
        message: str = "Habit already completed today",
        habit_template_id: Optional[str] = None,
        completion_date: Optional[Any] = None,
        **kwargs
    ):
        self.habit_template_id = habit_template_id
        self.completion_date = completion_date
        super().__init__(
            message=message,
            user_message="Habit already completed today",
            context={
                "habit_template_id": habit_template_id,
                "completion_date": str(completion_date) if completion_date else None,
            },
            **kwargs
        )


class InvalidStateError(ProgressionError):
    """
    Operation is not allowed in the current progression state

    Examples:
    - Completing a locked habit
    - Completing a habit whose goal is paused or completed
    - Completing a habit with no progress record
    """

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        status: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        self.status = status
        super().__init__(
            message=message,
            user_message="This action isn't available right now.",
            context={"record_type": record_type, "record_id": record_id, "status": status},
            **kwargs
        )


class ConcurrentUpdateError(ProgressionError):
    """State changed in the store since it was read; reload and retry"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        expected_version: Optional[int] = None,
        stored_version: Optional[int] = None,
        **kwargs
    ):
        self.expected_version = expected_version
        self.stored_version = stored_version
        super().__init__(
            message=message,
            user_message="Your progress changed in the meantime. Please try again.",
            context={"expected_version": expected_version, "stored_version": stored_version},
            **kwargs
        )


class RecordNotFoundError(HabitJourneyError):
    """Requested record does not exist"""

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
# Configuration Errors
# ==========================================

class ConfigurationError(HabitJourneyError):
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
