"""
Scheduling Module

Appointment scheduling and POS synchronization core for salon locations.

Features:
- Conflict Checking: Half-open slot overlap per staff member and date
- Recurring Series: Weekly to 8-weekly and monthly cadences, conflicts skipped
- Actions: Create, reschedule (duration preserved) and cancel
- POS Sync: Per-tenant write gate, bounded timeout, local-first semantics
- Day-Rate Capacity: Chair availability, blackout dates, race-free booking
- Confirmation Workflow: Assistant proposals require explicit confirmation

Example usage:

    from salonops_core.database import DatabaseManager
    from salonops_core.scheduling import (
        SchedulingService,
        RecurrenceRule,
        RecurrenceFrequency,
    )

    db = DatabaseManager("postgresql://localhost/salonops")
    service = SchedulingService(db)

    outcome = await service.actions.create_booking(
        organization_id=org_id,
        appointment_date=date(2025, 3, 4),
        start_time=time(10, 0),
        end_time=time(11, 0),
        staff_user_id=stylist_id,
        client_name="Jordan Lee",
        recurrence_rule=RecurrenceRule(RecurrenceFrequency.EVERY_4_WEEKS, 6),
    )
    print(outcome.to_dict()["created_count"], outcome.to_dict()["skipped"])

    moved = await service.actions.reschedule(
        outcome.appointment.id, date(2025, 3, 5), time(14, 0)
    )
    print(moved.applied_remotely)
"""

from .actions import AppointmentActionEngine
from .base import (
    ActionExecutionResult,
    ActionKind,
    ActionStatus,
    AlreadyCancelled,
    AppointmentStatus,
    BookableUnitDay,
    CapacityExhausted,
    DateCheck,
    DateNotBookable,
    DayRateBookingStatus,
    InvalidActionState,
    InvalidRecurrenceRule,
    InvalidTimeRange,
    LocalResult,
    MutationOutcome,
    NotFound,
    RecurrenceFrequency,
    RecurrenceResult,
    RecurrenceRule,
    RemoteSyncFailure,
    RemoteSyncOutcome,
    SchedulingConflict,
    SchedulingError,
    SchedulingValidationError,
    SkippedDate,
    StorageError,
    SyncStatus,
    TimeRange,
    UnavailableReason,
)
from .capacity import CapacityAllocator
from .conflicts import ConflictChecker, intervals_overlap
from .recurrence import RecurrenceExpander, generate_recurrence_dates
from .service import ClientCreation, SchedulingService
from .sync import (
    DatabaseWritePolicy,
    ExternalSyncGate,
    MutationKind,
    StaffMapper,
    StaticWritePolicy,
    SyncMutation,
    WritePolicy,
)
from .workflow import ACTION_TRANSITIONS, ActionConfirmationWorkflow

__all__ = [
    # Service
    "SchedulingService",
    "ClientCreation",
    # Components
    "ConflictChecker",
    "intervals_overlap",
    "RecurrenceExpander",
    "generate_recurrence_dates",
    "AppointmentActionEngine",
    "ExternalSyncGate",
    "WritePolicy",
    "DatabaseWritePolicy",
    "StaticWritePolicy",
    "StaffMapper",
    "MutationKind",
    "SyncMutation",
    "CapacityAllocator",
    "ActionConfirmationWorkflow",
    "ACTION_TRANSITIONS",
    # Types
    "AppointmentStatus",
    "RecurrenceFrequency",
    "RecurrenceRule",
    "RecurrenceResult",
    "SkippedDate",
    "TimeRange",
    "LocalResult",
    "MutationOutcome",
    "RemoteSyncOutcome",
    "SyncStatus",
    "BookableUnitDay",
    "DateCheck",
    "UnavailableReason",
    "DayRateBookingStatus",
    "ActionKind",
    "ActionStatus",
    "ActionExecutionResult",
    # Errors
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
]
