"""Error categories and exception hierarchy."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Standard API error codes."""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_005"
    DATABASE_ERROR = "INTERNAL_006"


class ErrorResponse(BaseModel):
    """Standard error payload."""

    code: ErrorCode = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional details")


class ErrorCategory(Enum):
    """Error category for handling decisions."""

    TRANSIENT = "transient"  # retryable
    PERMANENT = "permanent"  # fail immediately


class BaseServiceError(Exception):
    """Base exception for all service errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        service: str,
        operation: str,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize service error.

        Args:
            message: Error message
            category: Error category for handling
            service: Service name (e.g., "gemini", "cache")
            operation: Operation being performed (e.g., "generateContent")
            details: Additional error details
            original_error: Original exception that caused this error
        """
        self.message = message
        self.category = category
        self.service = service
        self.operation = operation
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "service": self.service,
            "operation": self.operation,
            "details": self.details,
        }


class TransientError(BaseServiceError):
    """Retryable error."""

    def __init__(
        self,
        message: str,
        service: str,
        operation: str,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.TRANSIENT,
            service=service,
            operation=operation,
            details=details,
            original_error=original_error,
        )


class PermanentError(BaseServiceError):
    """Error that must not be retried."""

    def __init__(
        self,
        message: str,
        service: str,
        operation: str,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.PERMANENT,
            service=service,
            operation=operation,
            details=details,
            original_error=original_error,
        )


# Service-specific errors

class GeminiError(TransientError):
    """Gemini API error (5xx, 429, timeouts). Retried by the client."""

    def __init__(
        self,
        message: str,
        operation: str = "generateContent",
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            service="gemini",
            operation=operation,
            details=details,
            original_error=original_error,
        )


class GeminiRequestError(PermanentError):
    """Gemini rejected the request (4xx other than 429)."""

    def __init__(
        self,
        message: str,
        operation: str = "generateContent",
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            service="gemini",
            operation=operation,
            details=details,
            original_error=original_error,
        )
