"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the school operations core.

- Provides clear exception hierarchy
- Enables specific error handling
- Preserves the original error as cause for diagnostics
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
SchoolOpsException (base)
├── ConfigurationError
│   └── InvalidPolicyError
├── InternalError
├── InvalidPartitionNameError
└── AnalyticsError
    ├── SubmissionNotFoundError
    └── AnalyticsBackpressureError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class SchoolOpsException(Exception):
    """
    Base exception for all school operations errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - cause: the underlying error, if any
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(SchoolOpsException):
    """Error in configuration."""

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidPolicyError(ConfigurationError):
    """Archiving policy value is out of range or inconsistent."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid archiving policy {key}={value!r}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )


# ============================================================
# STORAGE LIFECYCLE ERRORS
# ============================================================

class InternalError(SchoolOpsException):
    """
    Generic internal-error signal.

    Raised by the partition manager with a fixed, per-operation
    message. The original error is kept as `cause`.
    """

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if operation:
            context["operation"] = operation

        super().__init__(message, context=context, **kwargs)


class InvalidPartitionNameError(SchoolOpsException):
    """A generated storage identifier failed allow-list validation."""

    default_severity = Severity.CRITICAL

    def __init__(self, identifier: str):
        super().__init__(
            f"Refusing to use storage identifier {identifier!r}",
            context={"identifier": identifier},
        )
        self.identifier = identifier


# ============================================================
# ANALYTICS ERRORS
# ============================================================

class AnalyticsError(SchoolOpsException):
    """Base class for analytics pipeline errors."""


class SubmissionNotFoundError(AnalyticsError):
    """The graded submission does not exist."""

    def __init__(self, submission_id: str):
        super().__init__(
            f"Submission {submission_id} not found",
            context={"submission_id": submission_id},
        )
        self.submission_id = submission_id


class AnalyticsBackpressureError(AnalyticsError):
    """The analytics update queue stayed full past the enqueue timeout."""

    default_severity = Severity.HIGH

    def __init__(
        self,
        capacity: int,
        timeout_seconds: float,
        update_type: Optional[str] = None,
    ):
        context = {
            "capacity": capacity,
            "timeout_seconds": timeout_seconds,
        }
        if update_type:
            context["update_type"] = update_type

        super().__init__(
            f"Analytics queue full ({capacity} items) after {timeout_seconds}s",
            context=context,
        )


__all__ = [
    "Severity",
    "SchoolOpsException",
    "ConfigurationError",
    "InvalidPolicyError",
    "InternalError",
    "InvalidPartitionNameError",
    "AnalyticsError",
    "SubmissionNotFoundError",
    "AnalyticsBackpressureError",
]
