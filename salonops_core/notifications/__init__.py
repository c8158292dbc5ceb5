"""
Notifications Module

Audit and alert hooks for scheduling outcomes (sync failures, executed or
failed assistant actions, partially applied recurrence batches).
"""

from .base import (
    EventSeverity,
    InMemoryNotifier,
    LoggingNotifier,
    SchedulingEvent,
    SchedulingEventType,
    SchedulingNotifier,
)

__all__ = [
    "EventSeverity",
    "InMemoryNotifier",
    "LoggingNotifier",
    "SchedulingEvent",
    "SchedulingEventType",
    "SchedulingNotifier",
]
