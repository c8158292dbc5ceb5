"""
Scheduling Base Types Module

This module defines core types for appointment scheduling, recurrence
expansion, external sync outcomes, day-rate capacity and assistant action
confirmation.
"""

import calendar
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.base import DatabaseManager
from ..database.models import Appointment
from ..exceptions import (
    AlreadyCancelled,
    CapacityExhausted,
    DateNotBookable,
    InvalidActionState,
    InvalidRecurrenceRule,
    InvalidTimeRange,
    NotFound,
    PosConflictError,
    PosTransportError,
    PosValidationError,
    RemoteSyncFailure,
    SchedulingConflict,
    SchedulingError,
    SchedulingValidationError,
    StorageError,
)


# =============================================================================
# Enums
# =============================================================================


class AppointmentStatus(str, Enum):
    """Status of an appointment."""

    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class RecurrenceFrequency(str, Enum):
    """Cadence between instances of a recurring series."""

    WEEKLY = "weekly"
    EVERY_2_WEEKS = "every_2_weeks"
    EVERY_4_WEEKS = "every_4_weeks"
    EVERY_6_WEEKS = "every_6_weeks"
    EVERY_8_WEEKS = "every_8_weeks"
    MONTHLY = "monthly"  # Same day-of-month, clamped to month end

    @property
    def cadence_days(self) -> Optional[int]:
        """Fixed day interval, or None for calendar-month cadence."""
        return _CADENCE_DAYS.get(self)


_CADENCE_DAYS = {
    RecurrenceFrequency.WEEKLY: 7,
    RecurrenceFrequency.EVERY_2_WEEKS: 14,
    RecurrenceFrequency.EVERY_4_WEEKS: 28,
    RecurrenceFrequency.EVERY_6_WEEKS: 42,
    RecurrenceFrequency.EVERY_8_WEEKS: 56,
}


class ActionKind(str, Enum):
    """Kinds of assistant-proposed mutations."""

    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    CREATE_BOOKING = "create_booking"


class ActionStatus(str, Enum):
    """Lifecycle of a proposed action."""

    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    EXECUTING = "executing"  # Claimed by one execute call
    CANCELLED = "cancelled"  # Rejected by the user
    EXECUTED = "executed"
    FAILED = "failed"


class DayRateBookingStatus(str, Enum):
    """Status of a day-rate chair booking."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class UnavailableReason(str, Enum):
    """Why a day-rate date cannot be booked."""

    NOT_OFFERED = "not_offered"
    BLACKOUT = "blackout"
    PAST = "past"
    FULLY_BOOKED = "fully_booked"


class SyncStatus(str, Enum):
    """Outcome of propagating one mutation to the POS."""

    APPLIED = "applied"
    DISABLED = "disabled"  # Write gate off for the tenant
    SKIPPED = "skipped"  # Nothing to mirror against
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    PENDING = "pending"  # Handed to a background task


# =============================================================================
# Time Types
# =============================================================================


@dataclass
class TimeRange:
    """A half-open time range within a day."""

    start_time: time
    end_time: time

    def __post_init__(self):
        if self.start_time >= self.end_time:
            raise InvalidTimeRange(
                f"Start time {self.start_time.isoformat()} must be before "
                f"end time {self.end_time.isoformat()}"
            )

    @property
    def duration(self) -> timedelta:
        return _as_delta(self.end_time) - _as_delta(self.start_time)

    @property
    def duration_minutes(self) -> int:
        """Get duration in minutes."""
        return int(self.duration.total_seconds() // 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if ranges overlap. Abutting ranges do not."""
        return self.start_time < other.end_time and other.start_time < self.end_time

    def shifted_to(self, new_start: time) -> "TimeRange":
        """
        Same duration starting at ``new_start``.

        Raises:
            InvalidTimeRange: If the shifted range would cross midnight
        """
        end = _as_delta(new_start) + self.duration
        if end >= timedelta(days=1):
            raise InvalidTimeRange(
                f"An appointment of {self.duration_minutes} minutes cannot start "
                f"at {new_start.strftime('%H:%M')}: it would end after midnight"
            )
        return TimeRange(new_start, (datetime.min + end).time())

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary."""
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
        }


def _as_delta(t: time) -> timedelta:
    return timedelta(
        hours=t.hour, minutes=t.minute, seconds=t.second, microseconds=t.microsecond
    )


def add_months(anchor: date, months: int) -> date:
    """Add calendar months, clamping to the target month's last day."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor.day, last_day))


# =============================================================================
# Recurrence Types
# =============================================================================


@dataclass(frozen=True)
class RecurrenceRule:
    """Cadence plus total occurrence count (anchor included)."""

    frequency: RecurrenceFrequency
    occurrences: int

    def __post_init__(self):
        if isinstance(self.occurrences, bool) or not isinstance(self.occurrences, int):
            raise InvalidRecurrenceRule("Occurrences must be an integer")
        if self.occurrences < 2:
            raise InvalidRecurrenceRule(
                f"A recurring series needs at least 2 occurrences, got {self.occurrences}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"frequency": self.frequency.value, "occurrences": self.occurrences}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecurrenceRule":
        try:
            frequency = RecurrenceFrequency(data["frequency"])
        except KeyError:
            raise InvalidRecurrenceRule("Recurrence rule is missing a frequency")
        except ValueError:
            raise InvalidRecurrenceRule(f"Unknown frequency: {data['frequency']}")
        if "occurrences" not in data:
            raise InvalidRecurrenceRule("Recurrence rule is missing occurrences")
        return cls(frequency=frequency, occurrences=data["occurrences"])


@dataclass(frozen=True)
class SkippedDate:
    """A generated date that was not booked."""

    date: date
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"date": self.date.isoformat(), "reason": self.reason}


@dataclass(frozen=True)
class RecurrenceResult:
    """Outcome of expanding an anchor into a recurring series."""

    group_id: str
    anchor: Appointment
    created: Tuple[Appointment, ...] = ()
    skipped: Tuple[SkippedDate, ...] = ()

    @property
    def created_count(self) -> int:
        """Appointments in the series, anchor included."""
        return len(self.created) + 1

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped)

    def with_created(self, appointment: Appointment) -> "RecurrenceResult":
        return RecurrenceResult(
            self.group_id, self.anchor, self.created + (appointment,), self.skipped
        )

    def with_skipped(self, skipped: SkippedDate) -> "RecurrenceResult":
        return RecurrenceResult(
            self.group_id, self.anchor, self.created, self.skipped + (skipped,)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recurrence_group_id": self.group_id,
            "created_count": self.created_count,
            "created": [a.id for a in self.created],
            "skipped": [s.to_dict() for s in self.skipped],
        }


# =============================================================================
# Mutation Outcomes
# =============================================================================


@dataclass(frozen=True)
class RemoteSyncOutcome:
    """Result of mirroring one mutation to the POS."""

    status: SyncStatus
    external_id: Optional[str] = None
    error: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    @property
    def applied_remotely(self) -> bool:
        return self.status == SyncStatus.APPLIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "applied_remotely": self.applied_remotely,
            "external_id": self.external_id,
            "error": self.error,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class LocalResult:
    """The committed, authoritative part of a mutation."""

    appointments: Tuple[Appointment, ...]
    recurrence: Optional[RecurrenceResult] = None

    @property
    def appointment(self) -> Appointment:
        return self.appointments[0]


@dataclass(frozen=True)
class MutationOutcome:
    """Local result plus the remote outcomes attached after commit."""

    local: LocalResult
    remote: Tuple[RemoteSyncOutcome, ...] = ()

    @property
    def success(self) -> bool:
        return True

    @property
    def applied_remotely(self) -> bool:
        return bool(self.remote) and all(r.applied_remotely for r in self.remote)

    @property
    def appointment(self) -> Appointment:
        return self.local.appointment

    @property
    def warnings(self) -> List[str]:
        return [w for r in self.remote for w in r.warnings]

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing shape."""
        recurrence = self.local.recurrence
        return {
            "success": self.success,
            "applied_remotely": self.applied_remotely,
            "appointment": self.appointment.to_dict(),
            "created_count": (
                recurrence.created_count if recurrence else len(self.local.appointments)
            ),
            "skipped": [s.to_dict() for s in recurrence.skipped] if recurrence else [],
            "recurrence_group_id": recurrence.group_id if recurrence else None,
            "remote": [r.to_dict() for r in self.remote],
            "warnings": self.warnings,
            "error_reason": None,
        }


# =============================================================================
# Day-Rate Capacity Types
# =============================================================================


@dataclass(frozen=True)
class BookableUnitDay:
    """Derived day-rate capacity for one location/date."""

    date: date
    total_units: int
    booked_units: int
    blackout: bool = False
    past: bool = False

    @property
    def available_units(self) -> int:
        return max(self.total_units - self.booked_units, 0)

    @property
    def fully_booked(self) -> bool:
        return self.available_units == 0

    @property
    def available(self) -> bool:
        return self.available_units > 0 and not self.blackout and not self.past

    @property
    def unavailable_reason(self) -> Optional[UnavailableReason]:
        if self.blackout:
            return UnavailableReason.BLACKOUT
        if self.past:
            return UnavailableReason.PAST
        if self.fully_booked:
            return UnavailableReason.FULLY_BOOKED
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "total_units": self.total_units,
            "booked_units": self.booked_units,
            "available_units": self.available_units,
            "blackout": self.blackout,
            "fully_booked": self.fully_booked,
            "past": self.past,
            "available": self.available,
        }


@dataclass(frozen=True)
class DateCheck:
    """Whether a single day-rate date can be booked."""

    available: bool
    reason: Optional[UnavailableReason] = None
    available_units: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "reason": self.reason.value if self.reason else None,
            "available_units": self.available_units,
        }


# =============================================================================
# Action Workflow Types
# =============================================================================


@dataclass(frozen=True)
class ActionExecutionResult:
    """Terminal outcome of executing a confirmed action."""

    action_id: str
    status: ActionStatus
    message: Optional[str] = None
    error_reason: Optional[str] = None
    outcome: Optional[MutationOutcome] = None

    @property
    def success(self) -> bool:
        return self.status == ActionStatus.EXECUTED

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "action_id": self.action_id,
            "status": self.status.value,
            "success": self.success,
            "message": self.message,
            "error_reason": self.error_reason,
            "applied_remotely": self.outcome.applied_remotely if self.outcome else False,
        }
        if self.outcome is not None:
            result["created_count"] = self.outcome.to_dict()["created_count"]
            result["skipped"] = self.outcome.to_dict()["skipped"]
        return result


# =============================================================================
# Transactions
# =============================================================================


@asynccontextmanager
async def storage_transaction(db: DatabaseManager) -> AsyncGenerator[AsyncSession, None]:
    """
    One check-then-write transaction.

    Store faults surface as the retryable ``StorageError``; scheduling errors
    raised inside the block roll back and propagate unchanged.
    """
    try:
        async with db.session() as session:
            yield session
    except SQLAlchemyError as e:
        raise StorageError(f"Storage failure: {e}") from e


# =============================================================================
# Exports
# =============================================================================


__all__ = [
    # Enums
    "AppointmentStatus",
    "RecurrenceFrequency",
    "ActionKind",
    "ActionStatus",
    "DayRateBookingStatus",
    "UnavailableReason",
    "SyncStatus",
    # Time
    "TimeRange",
    "add_months",
    # Recurrence
    "RecurrenceRule",
    "SkippedDate",
    "RecurrenceResult",
    # Outcomes
    "RemoteSyncOutcome",
    "LocalResult",
    "MutationOutcome",
    # Capacity
    "BookableUnitDay",
    "DateCheck",
    # Workflow
    "ActionExecutionResult",
    "storage_transaction",
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
    "PosValidationError",
    "PosConflictError",
    "PosTransportError",
]
