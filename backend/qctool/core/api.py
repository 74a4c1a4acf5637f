"""Standard API response envelope."""
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field

from qctool.core.errors import ErrorCode, ErrorResponse


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    Standard API response format.

    Every endpoint responds with this envelope.
    """

    success: bool = Field(..., description="Whether the request succeeded")
    data: Optional[T] = Field(None, description="Response payload")
    error: Optional[ErrorResponse] = Field(None, description="Error details on failure")
    request_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Request tracking ID"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Response creation time"
    )

    @classmethod
    def success_response(
        cls,
        data: T,
        request_id: Optional[str] = None,
    ) -> "ApiResponse[T]":
        """
        Build a success response.

        Args:
            data: Response payload
            request_id: Request ID (generated when missing)
        """
        return cls(
            success=True,
            data=data,
            request_id=request_id or str(uuid4()),
        )

    @classmethod
    def error_response(
        cls,
        code: ErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> "ApiResponse[None]":
        """
        Build an error response.

        Args:
            code: Error code
            message: Error message
            details: Additional error details
            request_id: Request ID (generated when missing)
        """
        return cls(
            success=False,
            error=ErrorResponse(
                code=code,
                message=message,
                details=details or {},
            ),
            request_id=request_id or str(uuid4()),
        )
