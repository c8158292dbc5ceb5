"""
Scheduling Errors

Exception taxonomy shared by the scheduling core, the repositories' callers,
and the POS integration. Validation and conflict errors carry enough detail
for the caller to act; ``StorageError`` is retryable; ``RemoteSyncFailure``
never escapes the sync gate.
"""

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    code = "scheduling_error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFound(SchedulingError):
    """Referenced appointment, action, location or booking is absent."""

    code = "not_found"

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} not found: {resource_id}",
            {"resource": resource, "id": resource_id},
        )


class AlreadyCancelled(SchedulingError):
    """Mutation attempted on a cancelled booking."""

    code = "already_cancelled"

    def __init__(self, resource: str, resource_id: str):
        self.resource_id = resource_id
        super().__init__(
            f"{resource} {resource_id} is already cancelled",
            {"resource": resource, "id": resource_id},
        )


class SchedulingConflict(SchedulingError):
    """Destination slot is occupied by another booking."""

    code = "scheduling_conflict"

    def __init__(self, conflicting_appointment_id: str, summary: str):
        self.conflicting_appointment_id = conflicting_appointment_id
        self.summary = summary
        super().__init__(
            f"Time slot conflicts with {summary}",
            {
                "conflicting_appointment_id": conflicting_appointment_id,
                "summary": summary,
            },
        )


class SchedulingValidationError(SchedulingError):
    """The proposed intent itself is invalid."""

    code = "validation_error"


class InvalidRecurrenceRule(SchedulingValidationError):
    code = "invalid_recurrence_rule"


class InvalidTimeRange(SchedulingValidationError):
    code = "invalid_time_range"


class DateNotBookable(SchedulingValidationError):
    """Day-rate date is a blackout, in the past, or not offered."""

    code = "date_not_bookable"

    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__(message, {"reason": reason})


class InvalidActionState(SchedulingError):
    """Confirmation workflow guard violation."""

    code = "invalid_action_state"

    def __init__(self, action_id: str, current: str, target: str):
        self.action_id = action_id
        self.current = current
        self.target = target
        super().__init__(
            f"Action {action_id} cannot move from {current} to {target}",
            {"action_id": action_id, "current": current, "target": target},
        )


class CapacityExhausted(SchedulingError):
    """Day-rate pool is full for the requested date."""

    code = "capacity_exhausted"


class StorageError(SchedulingError):
    """Infrastructure fault in the local store. Safe to retry."""

    code = "storage_error"
    retryable = True


# =============================================================================
# Remote (POS) Failures
# =============================================================================


class RemoteSyncFailure(SchedulingError):
    """The external system rejected or never answered a write."""

    code = "remote_sync_failure"


class PosValidationError(RemoteSyncFailure):
    code = "pos_validation_error"


class PosConflictError(RemoteSyncFailure):
    code = "pos_conflict"


class PosTransportError(RemoteSyncFailure):
    code = "pos_transport_error"
    retryable = True


__all__ = [
    "SchedulingError",
    "NotFound",
    "AlreadyCancelled",
    "SchedulingConflict",
    "SchedulingValidationError",
    "InvalidRecurrenceRule",
    "InvalidTimeRange",
    "DateNotBookable",
    "InvalidActionState",
    "CapacityExhausted",
    "StorageError",
    "RemoteSyncFailure",
    "PosValidationError",
    "PosConflictError",
    "PosTransportError",
]
