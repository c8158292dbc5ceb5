"""
Recurrence Expander

Turns an anchor appointment and a recurrence rule into a series of concrete
appointments. Dates are processed in order inside the caller's transaction,
so each conflict check sees the instances created before it in the batch.
"""

import uuid
from datetime import date, timedelta
from typing import List

import structlog

from ..database.models import Appointment
from ..database.repositories import AppointmentRepository
from .base import (
    AppointmentStatus,
    InvalidRecurrenceRule,
    RecurrenceFrequency,
    RecurrenceResult,
    RecurrenceRule,
    SkippedDate,
    add_months,
)
from .conflicts import ConflictChecker, describe_appointment


logger = structlog.get_logger(__name__)

DEFAULT_MAX_OCCURRENCES = 52

# Descriptive fields an instance inherits from its anchor
_COPIED_FIELDS = (
    "organization_id",
    "location_id",
    "staff_user_id",
    "staff_name",
    "external_staff_id",
    "client_id",
    "client_name",
    "client_phone",
    "client_external_id",
    "service_id",
    "service_name",
    "external_service_id",
    "start_time",
    "end_time",
    "total_price",
    "notes",
)


def generate_recurrence_dates(anchor_date: date, rule: RecurrenceRule) -> List[date]:
    """
    Future dates of a series, anchor excluded.

    Fixed cadences add ``cadence_days * i``. The monthly cadence adds ``i``
    calendar months to the anchor and clamps to the month's last day, so a
    series anchored on Jan 31 lands on Feb 28/29, then Mar 31.
    """
    cadence = rule.frequency.cadence_days
    dates = []
    for i in range(1, rule.occurrences):
        if rule.frequency == RecurrenceFrequency.MONTHLY:
            dates.append(add_months(anchor_date, i))
        else:
            dates.append(anchor_date + timedelta(days=cadence * i))
    return dates


class RecurrenceExpander:
    """Materializes recurring series within one session."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    ):
        self.appointments = appointments
        self.conflicts = ConflictChecker(appointments)
        self.max_occurrences = max_occurrences

    def validate(self, anchor: Appointment, rule: RecurrenceRule) -> None:
        """
        Raises:
            InvalidRecurrenceRule: Too many occurrences, or the anchor can
                not start a series
        """
        if rule.occurrences > self.max_occurrences:
            raise InvalidRecurrenceRule(
                f"At most {self.max_occurrences} occurrences are allowed, "
                f"got {rule.occurrences}"
            )
        if anchor.status == AppointmentStatus.CANCELLED.value:
            raise InvalidRecurrenceRule(
                f"Appointment {anchor.id} is cancelled and cannot anchor a series"
            )
        if anchor.recurrence_group_id is not None:
            raise InvalidRecurrenceRule(
                f"Appointment {anchor.id} already belongs to series "
                f"{anchor.recurrence_group_id}"
            )

    async def expand(self, anchor: Appointment, rule: RecurrenceRule) -> RecurrenceResult:
        """
        Expand ``anchor`` into ``rule.occurrences`` appointments.

        Conflicting dates are skipped and reported, never failing the batch.
        Anchors with no staff assigned skip conflict checking.
        """
        self.validate(anchor, rule)

        group_id = str(uuid.uuid4())
        anchor.recurrence_group_id = group_id
        anchor.recurrence_index = 0
        anchor.recurrence_rule = rule.to_dict()
        await self.appointments.session.flush()

        result = RecurrenceResult(group_id=group_id, anchor=anchor)
        for index, day in enumerate(generate_recurrence_dates(anchor.appointment_date, rule), start=1):
            result = await self._step(result, index, day)

        logger.info(
            "recurrence_expanded",
            anchor_id=anchor.id,
            group_id=group_id,
            frequency=rule.frequency.value,
            created_count=result.created_count,
            skipped_count=len(result.skipped),
        )
        return result

    async def _step(
        self,
        result: RecurrenceResult,
        index: int,
        day: date,
    ) -> RecurrenceResult:
        anchor = result.anchor

        if anchor.staff_user_id is not None:
            await self.appointments.lock_resource_day(anchor.staff_user_id, day)
            conflict = await self.conflicts.find_conflict(
                anchor.staff_user_id, day, anchor.start_time, anchor.end_time
            )
            if conflict is not None:
                logger.debug(
                    "recurrence_date_skipped",
                    group_id=result.group_id,
                    day=day.isoformat(),
                    conflicting_appointment_id=conflict.id,
                )
                return result.with_skipped(
                    SkippedDate(day, f"Conflicts with {describe_appointment(conflict)}")
                )

        fields = {name: getattr(anchor, name) for name in _COPIED_FIELDS}
        instance = await self.appointments.create(
            **fields,
            appointment_date=day,
            status=AppointmentStatus.BOOKED.value,
            recurrence_group_id=result.group_id,
            recurrence_index=index,
        )
        return result.with_created(instance)


__all__ = [
    "DEFAULT_MAX_OCCURRENCES",
    "generate_recurrence_dates",
    "RecurrenceExpander",
]
