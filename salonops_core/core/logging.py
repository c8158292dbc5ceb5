"""
Standardized Logging Configuration

This module wires structlog into the standard library logging tree so that
every ``structlog.get_logger(__name__)`` call in the scheduling core renders
through one handler. JSON output is used in production, a colored
human-readable format in development.
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import structlog


# =============================================================================
# Configuration
# =============================================================================


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    PRETTY = "pretty"


DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DEFAULT_LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "json" if os.getenv("ENVIRONMENT") == "production" else "pretty",
)
SERVICE_NAME = os.getenv("SERVICE_NAME", "salonops-scheduling")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "exc_info", "exc_text",
    "stack_info", "taskName",
})


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "event": record.getMessage(),
            "logger": record.name,
            "service": SERVICE_NAME,
            "environment": ENVIRONMENT,
        }

        context = _record_context(record)
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }
            payload["stack_trace"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",   # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")

        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        level = f"{color}{record.levelname:8}{self.RESET}"
        logger = f"\033[90m{record.name}\033[0m"

        message = f"{timestamp} | {level} | {logger} | {record.getMessage()}"

        context = _record_context(record)
        if context:
            message += " | " + " ".join(f"{k}={v}" for k, v in context.items())

        if record.exc_info:
            message += f"\n{''.join(traceback.format_exception(*record.exc_info))}"

        return message


# =============================================================================
# Logger Setup
# =============================================================================


def setup_logging(
    level: str = DEFAULT_LOG_LEVEL,
    format: str = DEFAULT_LOG_FORMAT,
    service_name: Optional[str] = None,
) -> None:
    """
    Configure logging for the scheduling core.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json, pretty)
        service_name: Service name for log entries
    """
    global SERVICE_NAME

    if service_name:
        SERVICE_NAME = service_name

    numeric_level = getattr(logging, level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if format == LogFormat.JSON or format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(PrettyFormatter())
    root_logger.addHandler(handler)

    # structlog event dicts become stdlib ``extra`` so the formatters above
    # see bound context as ordinary record attributes.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=level,
        log_format=format,
        service=SERVICE_NAME,
    )


def bind_log_context(**values: Any) -> None:
    """Bind request-scoped values (tenant, request id) to every log line."""
    structlog.contextvars.bind_contextvars(**values)


def clear_log_context() -> None:
    """Drop all request-scoped logging context."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "LogLevel",
    "LogFormat",
    "JSONFormatter",
    "PrettyFormatter",
    "setup_logging",
    "bind_log_context",
    "clear_log_context",
]
