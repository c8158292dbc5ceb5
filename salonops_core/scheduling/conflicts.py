"""
Interval Conflict Checker

Decides whether a staff member already holds a non-cancelled booking that
overlaps a proposed half-open ``[start, end)`` slot on a given date.
"""

from datetime import date, time
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..database.models import Appointment
from ..database.repositories import AppointmentRepository
from .base import StorageError


logger = structlog.get_logger(__name__)


def intervals_overlap(s1: time, e1: time, s2: time, e2: time) -> bool:
    """Half-open overlap test. Back-to-back intervals do not overlap."""
    return s1 < e2 and s2 < e1


def describe_appointment(appointment: Appointment) -> str:
    """Short human label used in conflict and skip reasons."""
    who = appointment.client_name or "another booking"
    return (
        f"{who} ({appointment.start_time.strftime('%H:%M')}-"
        f"{appointment.end_time.strftime('%H:%M')})"
    )


class ConflictChecker:
    """Conflict queries against one session's view of the appointment store."""

    def __init__(self, appointments: AppointmentRepository):
        self.appointments = appointments

    async def find_conflict(
        self,
        resource_id: Optional[str],
        day: date,
        start: time,
        end: time,
        exclude_appointment_id: Optional[str] = None,
    ) -> Optional[Appointment]:
        """
        Return the first booking that collides with the slot, if any.

        Args:
            resource_id: Staff member; ``None`` (unassigned) never conflicts
            day: Calendar date
            start: Slot start (inclusive)
            end: Slot end (exclusive)
            exclude_appointment_id: Booking to leave out (the one being moved)

        Raises:
            StorageError: If the store could not be queried
        """
        if resource_id is None:
            return None

        try:
            existing = await self.appointments.list_active_for_resource_day(
                resource_id, day, exclude_id=exclude_appointment_id
            )
        except SQLAlchemyError as e:
            logger.error(
                "conflict_query_failed",
                resource_id=resource_id,
                day=day.isoformat(),
                error=str(e),
            )
            raise StorageError(f"Could not check conflicts: {e}") from e

        for appointment in existing:
            if intervals_overlap(start, end, appointment.start_time, appointment.end_time):
                return appointment
        return None

    async def has_conflict(
        self,
        resource_id: Optional[str],
        day: date,
        start: time,
        end: time,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        conflict = await self.find_conflict(
            resource_id, day, start, end, exclude_appointment_id
        )
        return conflict is not None


__all__ = [
    "intervals_overlap",
    "describe_appointment",
    "ConflictChecker",
]
