"""
Scheduling Configuration

Runtime settings for the scheduling core, loaded from the environment.
"""

import os
from enum import Enum

from pydantic import BaseModel, Field


class SyncMode(str, Enum):
    """How outbound POS writes are scheduled relative to the caller."""

    INLINE = "inline"  # await the bounded remote call, report the outcome
    BACKGROUND = "background"  # fire a task, report a pending outcome


class SchedulingConfig(BaseModel):
    """Scheduling core configuration."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./salonops.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_echo: bool = False

    # External sync
    remote_timeout_seconds: float = Field(default=10.0, gt=0)
    sync_mode: SyncMode = SyncMode.INLINE

    # Recurrence
    max_recurrence_occurrences: int = Field(default=52, ge=2)

    @classmethod
    def from_env(cls) -> "SchedulingConfig":
        """Load configuration from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./salonops.db"),
            database_pool_size=int(os.getenv("DATABASE_POOL_SIZE", "5")),
            database_max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
            database_echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
            remote_timeout_seconds=float(os.getenv("POS_REMOTE_TIMEOUT_SECONDS", "10")),
            sync_mode=SyncMode(os.getenv("POS_SYNC_MODE", SyncMode.INLINE.value)),
            max_recurrence_occurrences=int(os.getenv("MAX_RECURRENCE_OCCURRENCES", "52")),
        )


__all__ = ["SyncMode", "SchedulingConfig"]
