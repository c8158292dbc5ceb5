"""
REST API Module

This module provides the HTTP surface of the scheduling core.

Features:
- FastAPI-based REST endpoints for appointments, actions and day-rate chairs
- Scheduling errors mapped onto 404, 409, 422 and 503 responses
- Request ID propagation into structured logs
"""

from .base import (
    APIError,
    APIException,
    ConflictError,
    ErrorCode,
    NotFoundError,
    ServiceError,
    ValidationError,
    error_response,
    from_scheduling_error,
    generate_request_id,
    success_response,
)
from .app import AppConfig, HealthResponse, create_app


__all__ = [
    # Base
    "ErrorCode",
    "APIError",
    "APIException",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ServiceError",
    "from_scheduling_error",
    "generate_request_id",
    "success_response",
    "error_response",
    # App
    "AppConfig",
    "HealthResponse",
    "create_app",
]
