# ttsbridge/core/errors.py
"""
Centralized error taxonomy for the synthesis bridge, with severity-aware logging.
"""

import inspect
import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional

logger = logging.getLogger("ttsbridge.errors")


class ErrorSeverity(Enum):
    """Error severity levels for monitoring."""
    LOW = "low"  # Expected errors (caller mistakes)
    MEDIUM = "medium"  # Unexpected but recoverable
    HIGH = "high"  # Backend degradation
    CRITICAL = "critical"  # System failure


class ErrorCategory(Enum):
    """Categories for error classification."""
    INPUT = "input"
    MARKUP = "markup"
    CAPABILITY = "capability"
    ENGINE = "engine"
    PLAYBACK = "playback"
    CONFIG = "config"
    INTERNAL = "internal"


class BridgeError(Exception):
    """Base exception for bridge errors with caller-facing messages."""

    def __init__(
            self,
            user_message: str,
            log_message: str = None,
            category: ErrorCategory = ErrorCategory.INTERNAL,
            severity: ErrorSeverity = ErrorSeverity.MEDIUM,
            original_error: Exception = None
    ):
        self.user_message = user_message
        self.log_message = log_message or user_message
        self.category = category
        self.severity = severity
        self.original_error = original_error
        super().__init__(self.log_message)


class UserInputError(BridgeError):
    """Errors caused by invalid caller input."""

    def __init__(self, user_message: str, log_message: str = None):
        super().__init__(
            user_message,
            log_message,
            ErrorCategory.INPUT,
            ErrorSeverity.LOW
        )


class MarkupValidationError(BridgeError):
    """Input is not wrapped in a recognizable <speak> root element."""

    def __init__(self, user_message: str, errors: Optional[list] = None, log_message: str = None):
        super().__init__(
            user_message,
            log_message,
            ErrorCategory.MARKUP,
            ErrorSeverity.LOW
        )
        self.errors = list(errors or [])


class EngineAdapterError(BridgeError):
    """
    Wraps any failure raised by an engine adapter (network, auth, quota...).

    The original exception is kept on ``original_error`` and chained as
    ``__cause__`` by the orchestrator.
    """

    def __init__(self, engine_id: str, operation: str, original_error: Exception = None):
        detail = f"{type(original_error).__name__}: {original_error}" if original_error else "unknown error"
        super().__init__(
            f"Speech engine '{engine_id}' failed during {operation}.",
            f"Engine '{engine_id}' {operation} failed: {detail}",
            ErrorCategory.ENGINE,
            ErrorSeverity.HIGH,
            original_error
        )
        self.engine_id = engine_id
        self.operation = operation


class PlaybackStateError(BridgeError):
    """Raised on an invalid playback state transition."""

    def __init__(self, current_state: Any, action: str):
        state_name = getattr(current_state, "value", current_state)
        super().__init__(
            f"Cannot {action} playback while {state_name}.",
            f"Invalid playback transition: {action}() from state '{state_name}'",
            ErrorCategory.PLAYBACK,
            ErrorSeverity.LOW
        )
        self.current_state = current_state
        self.action = action


class ConfigError(BridgeError):
    """Errors related to configuration values."""

    def __init__(self, user_message: str, log_message: str = None):
        super().__init__(
            user_message,
            log_message,
            ErrorCategory.CONFIG,
            ErrorSeverity.MEDIUM
        )


class CapabilityMismatchWarning(UserWarning):
    """
    Non-fatal notice that the input uses markup the target engine cannot honour.

    Never raised by the core; collected into validation results instead.
    """

    def __init__(self, message: str, engine_id: Optional[str] = None, tag: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.engine_id = engine_id
        self.tag = tag

    def __str__(self) -> str:
        return self.message

    def __eq__(self, other) -> bool:
        if not isinstance(other, CapabilityMismatchWarning):
            return NotImplemented
        return (self.message, self.engine_id, self.tag) == (other.message, other.engine_id, other.tag)

    def __hash__(self) -> int:
        return hash((self.message, self.engine_id, self.tag))


class ErrorHandler:
    """Central error logging with a bounded history for diagnostics."""

    def __init__(self, max_error_history: int = 100):
        self.error_count = 0
        self.errors_by_category = {}
        self.last_errors = []
        self.max_error_history = max_error_history

    def log_error(
            self,
            error: Exception,
            context: dict = None,
            severity: ErrorSeverity = ErrorSeverity.MEDIUM,
            category: ErrorCategory = ErrorCategory.INTERNAL
    ):
        """Log an error with full context."""

        if isinstance(error, BridgeError):
            severity = error.severity
            category = error.category

        self.error_count += 1

        cat_name = category.value
        self.errors_by_category[cat_name] = self.errors_by_category.get(cat_name, 0) + 1

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error_type": type(error).__name__,
            "severity": severity.value,
            "category": category.value,
            "message": str(error),
        }

        if context:
            log_data["context"] = context

        self.last_errors.append(log_data)
        if len(self.last_errors) > self.max_error_history:
            self.last_errors.pop(0)

        if severity == ErrorSeverity.CRITICAL:
            logger.critical(
                f"CRITICAL ERROR: {error}\n"
                f"Context: {context}\n"
                f"Traceback: {traceback.format_exc()}"
            )
        elif severity == ErrorSeverity.HIGH:
            logger.error(
                f"HIGH SEVERITY: {error}\n"
                f"Context: {context}"
            )
        elif severity == ErrorSeverity.MEDIUM:
            logger.error(f"Error: {error}\nContext: {context}")
        else:  # LOW
            logger.warning(f"Minor error: {error}\nContext: {context}")

    def get_stats(self) -> dict:
        """Get error statistics."""
        return {
            "total_errors": self.error_count,
            "by_category": self.errors_by_category.copy(),
            "recent_errors": self.last_errors[-10:],
        }

    def reset(self):
        self.error_count = 0
        self.errors_by_category = {}
        self.last_errors = []


# Global error handler instance
error_handler = ErrorHandler()


def safe_operation(
        fallback_value: Any = None,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        category: ErrorCategory = ErrorCategory.INTERNAL
):
    """
    Decorator for non-critical operations that should fail gracefully.

    Usage:
        @safe_operation(fallback_value=False, category=ErrorCategory.ENGINE)
        async def check_credentials(self):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                error_handler.log_error(
                    e,
                    context={"function": func.__name__},
                    severity=severity,
                    category=category
                )
                return fallback_value

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                error_handler.log_error(
                    e,
                    context={"function": func.__name__},
                    severity=severity,
                    category=category
                )
                return fallback_value

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
