"""
FastAPI Application Module

This module provides the main FastAPI application setup with
all routes, exception handlers, and configuration.
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..config import SchedulingConfig
from ..core.logging import bind_log_context, clear_log_context, setup_logging
from ..database.base import close_database, get_database, init_database
from ..exceptions import SchedulingError
from ..integrations.base import PosClient
from ..integrations.pos.phorest import PhorestClient, PhorestConfig
from ..notifications.base import SchedulingNotifier
from ..scheduling.service import SchedulingService
from ..scheduling.sync import WritePolicy
from .base import (
    APIException,
    ErrorCode,
    ValidationError,
    error_response,
    from_scheduling_error,
    generate_request_id,
)
from .routes import actions_router, appointments_router, day_rate_router


logger = structlog.get_logger(__name__)


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Application configuration."""

    # API settings
    title: str = "SalonOps Scheduling API"
    description: str = "Appointment scheduling and POS sync for salon locations"
    version: str = __version__
    api_prefix: str = "/api/v1"

    # Server settings
    debug: bool = False
    docs_enabled: bool = True

    # Scheduling core
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)

    # POS
    phorest_enabled: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    configure_logging: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables."""
        return cls(
            debug=os.getenv("DEBUG", "false").lower() == "true",
            docs_enabled=os.getenv("DOCS_ENABLED", "true").lower() == "true",
            scheduling=SchedulingConfig.from_env(),
            phorest_enabled=bool(os.getenv("PHOREST_BUSINESS_ID")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            configure_logging=True,
        )


# =============================================================================
# Health Check Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    timestamp: datetime
    checks: Dict[str, Any] = {}


# =============================================================================
# Exception Handlers
# =============================================================================


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or generate_request_id()


async def api_exception_handler(request: Request, exc: APIException):
    """Handle API exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc, _request_id(request)),
    )


async def scheduling_exception_handler(request: Request, exc: SchedulingError):
    """Map scheduling errors onto HTTP statuses."""
    api_error = from_scheduling_error(exc)
    if exc.retryable:
        logger.warning("request_failed_retryable", path=request.url.path, error=exc.message)
    return await api_exception_handler(request, api_error)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request body and query validation errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or None
    api_error = ValidationError(
        first.get("msg", "Invalid request"),
        field=field,
        details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
    )
    return await api_exception_handler(request, api_error)


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    error_codes = {
        404: ErrorCode.RESOURCE_NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE,
    }
    api_error = APIException(
        code=error_codes.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
        message=str(exc.detail),
        status_code=exc.status_code,
    )
    return await api_exception_handler(request, api_error)


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("unhandled_exception", path=request.url.path)
    api_error = APIException(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred",
        status_code=500,
    )
    return await api_exception_handler(request, api_error)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    config: Optional[AppConfig] = None,
    pos_client: Optional[PosClient] = None,
    policy: Optional[WritePolicy] = None,
    notifier: Optional[SchedulingNotifier] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration
        pos_client: POS client to mirror writes to; built from the
            environment when ``config.phorest_enabled`` and none is given
        policy: Per-tenant write gate; defaults to the organization flag
        notifier: Receiver of sync failures and action outcomes

    Returns:
        Configured FastAPI application
    """
    config = config or AppConfig.from_env()
    if config.configure_logging:
        setup_logging(level=config.log_level, format=config.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api_starting", version=config.version)

        scheduling_config = config.scheduling
        db = init_database(
            database_url=scheduling_config.database_url,
            pool_size=scheduling_config.database_pool_size,
            max_overflow=scheduling_config.database_max_overflow,
            echo=scheduling_config.database_echo,
        )

        # Create tables if they don't exist (for development)
        if config.debug or db.is_sqlite:
            await db.create_all()

        if await db.health_check():
            logger.info("database_connected")
        else:
            logger.error("database_unreachable")

        client = pos_client
        if client is None and config.phorest_enabled:
            client = PhorestClient(PhorestConfig.from_env())

        app.state.scheduling = SchedulingService(
            db,
            config=scheduling_config,
            pos_client=client,
            policy=policy,
            notifier=notifier,
        )

        yield

        logger.info("api_stopping")
        await app.state.scheduling.close()
        await close_database()

    app = FastAPI(
        title=config.title,
        description=config.description,
        version=config.version,
        docs_url="/docs" if config.docs_enabled else None,
        redoc_url="/redoc" if config.docs_enabled else None,
        openapi_url="/openapi.json" if config.docs_enabled else None,
        lifespan=lifespan,
    )

    app.state.config = config

    # ==========================================================================
    # Request Context
    # ==========================================================================

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        request.state.request_id = request_id
        clear_log_context()
        bind_log_context(
            request_id=request_id,
            organization_id=request.headers.get("X-Organization-ID"),
        )
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # ==========================================================================
    # Add Exception Handlers
    # ==========================================================================

    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(SchedulingError, scheduling_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ==========================================================================
    # Add Routes
    # ==========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        try:
            db_healthy = await get_database().health_check()
        except RuntimeError:
            db_healthy = False

        return HealthResponse(
            status="healthy" if db_healthy else "degraded",
            version=config.version,
            timestamp=datetime.utcnow(),
            checks={
                "api": "ok",
                "database": "ok" if db_healthy else "error",
            },
        )

    app.include_router(appointments_router, prefix=config.api_prefix)
    app.include_router(actions_router, prefix=config.api_prefix)
    app.include_router(day_rate_router, prefix=config.api_prefix)

    return app


__all__ = [
    "AppConfig",
    "HealthResponse",
    "create_app",
]
