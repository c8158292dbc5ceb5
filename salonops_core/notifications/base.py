"""
Scheduling Notifications

Audit and alert hooks informed of scheduling outcomes. Notifiers observe the
core; they never influence its control flow, and delivery (push, email) lives
outside this package.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

import structlog


logger = structlog.get_logger(__name__)


# =============================================================================
# Enums
# =============================================================================


class SchedulingEventType(str, Enum):
    """Types of scheduling events reported to notifiers."""

    REMOTE_SYNC_FAILED = "remote_sync_failed"
    REMOTE_SYNC_TIMED_OUT = "remote_sync_timed_out"
    ACTION_EXECUTED = "action_executed"
    ACTION_FAILED = "action_failed"
    RECURRENCE_PARTIAL = "recurrence_partial"


class EventSeverity(str, Enum):
    """Severity of a scheduling event."""

    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"


# =============================================================================
# Event
# =============================================================================


@dataclass
class SchedulingEvent:
    """An outcome worth surfacing to staff or audit logs."""

    type: SchedulingEventType
    organization_id: str
    subject_id: str
    message: str
    severity: EventSeverity = EventSeverity.INFO
    details: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "organization_id": self.organization_id,
            "subject_id": self.subject_id,
            "message": self.message,
            "severity": self.severity.value,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Notifiers
# =============================================================================


class SchedulingNotifier(ABC):
    """Receives scheduling events."""

    @abstractmethod
    async def notify(self, event: SchedulingEvent) -> None:
        """Deliver or record one event."""


class LoggingNotifier(SchedulingNotifier):
    """Writes events to the structured log."""

    async def notify(self, event: SchedulingEvent) -> None:
        log = logger.warning if event.severity != EventSeverity.INFO else logger.info
        log(
            "scheduling_event",
            event_type=event.type.value,
            organization_id=event.organization_id,
            subject_id=event.subject_id,
            detail=event.message,
            severity=event.severity.value,
        )


class InMemoryNotifier(SchedulingNotifier):
    """Keeps events in memory (for tests and local development)."""

    def __init__(self):
        self.events: List[SchedulingEvent] = []

    async def notify(self, event: SchedulingEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: SchedulingEventType) -> List[SchedulingEvent]:
        return [e for e in self.events if e.type == event_type]


__all__ = [
    "SchedulingEventType",
    "EventSeverity",
    "SchedulingEvent",
    "SchedulingNotifier",
    "LoggingNotifier",
    "InMemoryNotifier",
]
