"""
Core Infrastructure
===================

Cross-cutting infrastructure shared by the scheduling core.
"""

from .logging import (
    LogFormat,
    LogLevel,
    bind_log_context,
    clear_log_context,
    setup_logging,
)

__all__ = [
    "LogFormat",
    "LogLevel",
    "bind_log_context",
    "clear_log_context",
    "setup_logging",
]
