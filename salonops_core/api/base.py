"""
API Base Types and Models Module

This module provides response models, error handling, and common
utilities for the REST API layer.
"""

import secrets
import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import (
    AlreadyCancelled,
    CapacityExhausted,
    InvalidActionState,
    NotFound,
    SchedulingConflict,
    SchedulingError,
    SchedulingValidationError,
    StorageError,
)


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VAL_2001"

    # Resource errors (3xxx)
    RESOURCE_NOT_FOUND = "RES_3001"
    RESOURCE_CONFLICT = "RES_3003"
    RESOURCE_LIMIT_EXCEEDED = "RES_3005"

    # Server errors (5xxx)
    INTERNAL_ERROR = "SRV_5001"
    SERVICE_UNAVAILABLE = "SRV_5002"

    # Business logic errors (6xxx)
    INVALID_STATE_TRANSITION = "BIZ_6001"
    OPERATION_NOT_ALLOWED = "BIZ_6002"


# =============================================================================
# Response Models
# =============================================================================


class APIError(BaseModel):
    """API error response model."""

    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details",
    )
    field: Optional[str] = Field(
        default=None,
        description="Field that caused the error (for validation errors)",
    )
    request_id: Optional[str] = Field(
        default=None,
        description="Request ID for tracking",
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="Error timestamp",
    )


# =============================================================================
# Exception Classes
# =============================================================================


class APIException(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.field = field
        super().__init__(message)

    def to_error(self, request_id: Optional[str] = None) -> APIError:
        """Convert to APIError model."""
        return APIError(
            code=self.code,
            message=self.message,
            details=self.details,
            field=self.field,
            request_id=request_id,
        )


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
    ):
        super().__init__(
            code=ErrorCode.RESOURCE_NOT_FOUND,
            message=f"{resource_type} with ID '{resource_id}' not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ValidationError(APIException):
    """Validation failure."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            status_code=422,
            details=details,
            field=field,
        )


class ConflictError(APIException):
    """Resource conflict."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class ServiceError(APIException):
    """Internal service error."""

    def __init__(
        self,
        message: str = "Internal server error",
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details,
        )


def from_scheduling_error(exc: SchedulingError) -> APIException:
    """Map a scheduling error onto the HTTP error family."""
    details = dict(exc.details)
    details["error_type"] = exc.code

    if isinstance(exc, NotFound):
        return NotFoundError(exc.resource, exc.resource_id)
    if isinstance(exc, SchedulingConflict):
        return ConflictError(exc.message, details=details)
    if isinstance(exc, CapacityExhausted):
        return ConflictError(exc.message, details=details, code=ErrorCode.RESOURCE_LIMIT_EXCEEDED)
    if isinstance(exc, InvalidActionState):
        return ConflictError(exc.message, details=details, code=ErrorCode.INVALID_STATE_TRANSITION)
    if isinstance(exc, AlreadyCancelled):
        return ConflictError(exc.message, details=details, code=ErrorCode.OPERATION_NOT_ALLOWED)
    if isinstance(exc, SchedulingValidationError):
        return ValidationError(exc.message, details=details)
    if isinstance(exc, StorageError):
        return ServiceError(
            exc.message,
            details={"retryable": True},
            code=ErrorCode.SERVICE_UNAVAILABLE,
            status_code=503,
        )
    return APIException(ErrorCode.OPERATION_NOT_ALLOWED, exc.message, details=details)


# =============================================================================
# Utility Functions
# =============================================================================


def generate_request_id() -> str:
    """Generate a unique request ID."""
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(8)
    return f"req_{timestamp}_{random_part}"


def success_response(
    data: Any,
    meta: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a success response."""
    return {
        "success": True,
        "data": data,
        "error": None,
        "meta": meta,
        "request_id": request_id or generate_request_id(),
        "timestamp": datetime.utcnow().isoformat(),
    }


def error_response(
    error: APIException,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Create an error response."""
    return {
        "success": False,
        "data": None,
        "error": error.to_error(request_id).model_dump(mode="json"),
        "error_reason": error.message,
        "meta": None,
        "request_id": request_id or generate_request_id(),
        "timestamp": datetime.utcnow().isoformat(),
    }


__all__ = [
    "ErrorCode",
    "APIError",
    # Exceptions
    "APIException",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ServiceError",
    "from_scheduling_error",
    # Utilities
    "generate_request_id",
    "success_response",
    "error_response",
]
