"""Structured error codes and error handling for rolloutguard.

Error codes follow the pattern: E{category}{number}
- E1xx: Input validation errors (programmer errors at the API boundary)
- E7xx: Integration/infrastructure errors (cache, audit, notification)
- E8xx: Configuration errors
- E9xx: API/Request errors

Only E1xx errors are ever raised to embedding call sites. Infrastructure
errors are logged with their code and absorbed so the caller's request
never fails because of the controller.

Example:
    >>> from rolloutguard.utils.errors import ErrorCode, RolloutGuardError
    >>> raise RolloutGuardError(ErrorCode.E101_EMPTY_ROLLOUT_ID)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Standardized error codes for rolloutguard."""

    # E1xx: Input validation errors
    E100_VALIDATION_ERROR = "E100"
    E101_EMPTY_ROLLOUT_ID = "E101"
    E103_INVALID_PARTIAL_UPDATE = "E103"

    # E7xx: Integration/infrastructure errors
    E700_SYSTEM_ERROR = "E700"
    E701_CACHE_UNAVAILABLE = "E701"
    E702_NOTIFICATION_FAILED = "E702"
    E703_AUDIT_WRITE_FAILED = "E703"
    E704_WRITE_BACK_FAILED = "E704"
    E705_DISPATCH_QUEUE_FULL = "E705"
    E706_DISABLE_FAILED = "E706"

    # E8xx: Configuration errors
    E800_CONFIG_ERROR = "E800"
    E801_INVALID_CONFIG_FILE = "E801"
    E802_MISSING_REQUIRED_CONFIG = "E802"
    E803_CONFIG_VALIDATION_FAILED = "E803"

    # E9xx: API/Request errors
    E900_API_ERROR = "E900"
    E904_BAD_REQUEST = "E904"
    E905_NOT_FOUND = "E905"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.E100_VALIDATION_ERROR: "Input validation failed",
    ErrorCode.E101_EMPTY_ROLLOUT_ID: "Rollout ID cannot be empty",
    ErrorCode.E103_INVALID_PARTIAL_UPDATE: "Partial rollout update is malformed",
    ErrorCode.E700_SYSTEM_ERROR: "System error",
    ErrorCode.E701_CACHE_UNAVAILABLE: "Config cache unavailable",
    ErrorCode.E702_NOTIFICATION_FAILED: "Operator notification failed",
    ErrorCode.E703_AUDIT_WRITE_FAILED: "Audit record could not be written",
    ErrorCode.E704_WRITE_BACK_FAILED: "Config write-back failed",
    ErrorCode.E705_DISPATCH_QUEUE_FULL: "Side-effect queue is full",
    ErrorCode.E706_DISABLE_FAILED: "Rollout disable failed",
    ErrorCode.E800_CONFIG_ERROR: "Configuration error",
    ErrorCode.E801_INVALID_CONFIG_FILE: "Invalid rollout configuration file",
    ErrorCode.E802_MISSING_REQUIRED_CONFIG: "Required configuration parameter missing",
    ErrorCode.E803_CONFIG_VALIDATION_FAILED: "Configuration validation failed",
    ErrorCode.E900_API_ERROR: "API error",
    ErrorCode.E904_BAD_REQUEST: "Bad request",
    ErrorCode.E905_NOT_FOUND: "Resource not found",
}


@dataclass
class ErrorDetails:
    """Structured error details for logging and API responses.

    Attributes:
        code: Error code enum value
        message: Human-readable error message
        details: Additional error details
        context: Context information (rollout_id, action, ...)
        recoverable: Whether the error is recoverable
    """

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error_code": self.code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.context:
            result["context"] = self.context
        result["recoverable"] = self.recoverable
        return result

    def to_log_dict(self) -> dict[str, Any]:
        """Flatten into a dictionary suitable for ``logging`` extras."""
        log_dict: dict[str, Any] = {
            "error_code": self.code.value,
            "error_message": self.message,
            "recoverable": self.recoverable,
        }
        for key, value in self.details.items():
            log_dict[f"detail_{key}"] = value
        for key, value in self.context.items():
            log_dict[f"ctx_{key}"] = value
        return log_dict


class RolloutGuardError(Exception):
    """Base exception class with structured error codes.

    Example:
        >>> try:
        ...     raise RolloutGuardError(
        ...         ErrorCode.E103_INVALID_PARTIAL_UPDATE,
        ...         details={"field": "percentage"},
        ...     )
        ... except RolloutGuardError as e:
        ...     print(e.error_details.to_dict())
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "Unknown error")
        self.error_details = ErrorDetails(
            code=code,
            message=self.message,
            details=details or {},
            context=context or {},
            recoverable=recoverable,
        )
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def log(self, level: int = logging.ERROR) -> None:
        """Log the error with structured details."""
        logger.log(level, str(self), extra=self.error_details.to_log_dict())


class ValidationError(RolloutGuardError):
    """Input validation error."""

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.E100_VALIDATION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(code, message, details, **kwargs)


class ConfigurationError(RolloutGuardError):
    """Configuration error."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E800_CONFIG_ERROR,
        message: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(code, message, **kwargs)


class IntegrationError(RolloutGuardError):
    """Failure of an external collaborator (cache, sink, notifier, platform)."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_SYSTEM_ERROR,
        message: str | None = None,
        action: str | None = None,
        **kwargs: Any,
    ) -> None:
        details: dict[str, Any] = kwargs.pop("details", {})
        if action is not None:
            details["action"] = action
        super().__init__(code, message, details=details, recoverable=True, **kwargs)


def require_rollout_id(rollout_id: str) -> str:
    """Validate a rollout ID at the API boundary.

    Raises:
        ValidationError: If the ID is not a non-blank string
    """
    if not isinstance(rollout_id, str) or not rollout_id.strip():
        raise ValidationError(
            code=ErrorCode.E101_EMPTY_ROLLOUT_ID,
            details={"rollout_id": repr(rollout_id)},
        )
    return rollout_id


def log_error(
    error: RolloutGuardError | Exception,
    rollout_id: str | None = None,
    additional_context: dict[str, Any] | None = None,
    code: ErrorCode = ErrorCode.E700_SYSTEM_ERROR,
) -> None:
    """Log an error with structured context.

    Args:
        error: The error to log
        rollout_id: Rollout ID for correlation
        additional_context: Additional context to include
        code: Code attached to non-rolloutguard exceptions
    """
    if isinstance(error, RolloutGuardError):
        if rollout_id:
            error.error_details.context["rollout_id"] = rollout_id
        if additional_context:
            error.error_details.context.update(additional_context)
        error.log()
    else:
        extra: dict[str, Any] = {
            "error_code": code.value,
            "error_type": type(error).__name__,
        }
        if rollout_id:
            extra["rollout_id"] = rollout_id
        if additional_context:
            extra.update(additional_context)
        logger.error("%s: %s", ERROR_MESSAGES.get(code, "Error"), error, extra=extra)


def create_error_response(
    error: RolloutGuardError | Exception,
    include_details: bool = True,
) -> dict[str, Any]:
    """Create a structured error response for API returns."""
    if isinstance(error, RolloutGuardError):
        response = error.error_details.to_dict()
        if not include_details:
            response.pop("details", None)
            response.pop("context", None)
        return {"error": response}
    return {
        "error": {
            "error_code": ErrorCode.E700_SYSTEM_ERROR.value,
            "message": str(error) if include_details else "An unexpected error occurred",
            "recoverable": False,
        }
    }


def get_http_status_for_error(error: RolloutGuardError) -> int:
    """Get appropriate HTTP status code for a rolloutguard error."""
    code = error.code.value

    if code.startswith("E1"):
        return 400
    elif code.startswith("E7"):
        return 503
    elif code.startswith("E8"):
        return 500
    elif code.startswith("E9"):
        if code == "E904":
            return 400
        elif code == "E905":
            return 404
        return 500

    return 500
