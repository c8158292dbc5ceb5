"""
Appointment Action Engine

Create, reschedule, cancel and recurrence-expansion mutations. Each mutation
runs its conflict check and write in one local transaction; the External
Sync Gate runs only after that transaction has committed, and its outcome is
attached to the result without ever undoing the local change.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from ..database.base import DatabaseManager
from ..database.models import Appointment
from ..database.repositories import AppointmentRepository, ClientRepository
from ..notifications.base import (
    EventSeverity,
    LoggingNotifier,
    SchedulingEvent,
    SchedulingEventType,
    SchedulingNotifier,
)
from .base import (
    AlreadyCancelled,
    AppointmentStatus,
    InvalidRecurrenceRule,
    LocalResult,
    MutationOutcome,
    NotFound,
    RecurrenceResult,
    RecurrenceRule,
    RemoteSyncOutcome,
    SchedulingConflict,
    TimeRange,
    storage_transaction,
)
from .conflicts import ConflictChecker, describe_appointment
from .recurrence import DEFAULT_MAX_OCCURRENCES, RecurrenceExpander
from .sync import ExternalSyncGate, MutationKind, SyncMutation


logger = structlog.get_logger(__name__)


RuleInput = Union[RecurrenceRule, Dict[str, Any], None]


def _coerce_rule(rule: RuleInput) -> Optional[RecurrenceRule]:
    if rule is None or isinstance(rule, RecurrenceRule):
        return rule
    return RecurrenceRule.from_dict(rule)


class AppointmentActionEngine:
    """Validated appointment mutations with post-commit POS propagation."""

    def __init__(
        self,
        db: DatabaseManager,
        sync_gate: ExternalSyncGate,
        notifier: Optional[SchedulingNotifier] = None,
        max_recurrence_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    ):
        self.db = db
        self.sync_gate = sync_gate
        self.notifier = notifier or LoggingNotifier()
        self.max_recurrence_occurrences = max_recurrence_occurrences

    # =========================================================================
    # Create
    # =========================================================================

    async def create_booking(
        self,
        organization_id: str,
        appointment_date: date,
        start_time: time,
        end_time: time,
        staff_user_id: Optional[str] = None,
        staff_name: Optional[str] = None,
        location_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_name: Optional[str] = None,
        client_phone: Optional[str] = None,
        service_id: Optional[str] = None,
        service_name: Optional[str] = None,
        external_service_id: Optional[str] = None,
        total_price: Optional[Decimal] = None,
        notes: Optional[str] = None,
        recurrence_rule: RuleInput = None,
    ) -> MutationOutcome:
        """
        Book a new appointment, optionally as the anchor of a series.

        Raises:
            InvalidTimeRange: If start is not before end
            InvalidRecurrenceRule: If the rule is malformed or too long
            SchedulingConflict: If the staff member is busy in that slot
            NotFound: If ``client_id`` references no client of this tenant
            StorageError: On store failure (retryable)
        """
        slot = TimeRange(start_time, end_time)
        rule = _coerce_rule(recurrence_rule)

        async with storage_transaction(self.db) as session:
            appointments = AppointmentRepository(session)

            client_external_id = None
            if client_id is not None:
                client = await ClientRepository(session).get_by_id(client_id)
                if client is None or client.organization_id != organization_id:
                    raise NotFound("Client", client_id)
                client_name = client_name or client.full_name
                client_phone = client_phone or client.phone
                client_external_id = client.external_id

            if staff_user_id is not None:
                await appointments.lock_resource_day(staff_user_id, appointment_date)
                conflict = await ConflictChecker(appointments).find_conflict(
                    staff_user_id, appointment_date, slot.start_time, slot.end_time
                )
                if conflict is not None:
                    raise SchedulingConflict(conflict.id, describe_appointment(conflict))

            appointment = await appointments.create(
                organization_id=organization_id,
                location_id=location_id,
                staff_user_id=staff_user_id,
                staff_name=staff_name,
                client_id=client_id,
                client_name=client_name,
                client_phone=client_phone,
                client_external_id=client_external_id,
                service_id=service_id,
                service_name=service_name,
                external_service_id=external_service_id,
                appointment_date=appointment_date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                status=AppointmentStatus.BOOKED.value,
                total_price=total_price,
                notes=notes,
            )

            recurrence = None
            if rule is not None:
                recurrence = await self._expander(appointments).expand(appointment, rule)

        logger.info(
            "appointment_created",
            appointment_id=appointment.id,
            organization_id=organization_id,
            staff_user_id=staff_user_id,
            recurring=recurrence is not None,
        )

        created = (appointment,) + (recurrence.created if recurrence else ())
        if recurrence is not None:
            await self._report_partial(recurrence)
        remote = await self._propagate_all(MutationKind.CREATE_APPOINTMENT, created)
        return MutationOutcome(LocalResult(created, recurrence), remote)

    # =========================================================================
    # Reschedule
    # =========================================================================

    async def reschedule(
        self,
        appointment_id: str,
        new_date: date,
        new_time: time,
        new_resource_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> MutationOutcome:
        """
        Move an appointment, preserving its duration exactly.

        Every call is validated afresh, including repeats of an already
        applied move. When ``organization_id`` is given, appointments of
        other tenants are reported as not found.

        Raises:
            NotFound: If the appointment does not exist in this tenant
            AlreadyCancelled: If the appointment is cancelled
            InvalidTimeRange: If the moved appointment would cross midnight
            SchedulingConflict: If the destination is occupied; the
                appointment is left untouched
            StorageError: On store failure (retryable)
        """
        async with storage_transaction(self.db) as session:
            appointments = AppointmentRepository(session)
            appointment = await self._load_mutable(appointments, appointment_id, organization_id)

            target = TimeRange(appointment.start_time, appointment.end_time).shifted_to(new_time)
            resource_id = new_resource_id if new_resource_id is not None else appointment.staff_user_id

            if resource_id is not None:
                await appointments.lock_resource_day(resource_id, new_date)
                conflict = await ConflictChecker(appointments).find_conflict(
                    resource_id,
                    new_date,
                    target.start_time,
                    target.end_time,
                    exclude_appointment_id=appointment.id,
                )
                if conflict is not None:
                    logger.info(
                        "reschedule_conflict",
                        appointment_id=appointment.id,
                        conflicting_appointment_id=conflict.id,
                    )
                    raise SchedulingConflict(conflict.id, describe_appointment(conflict))

            previous = (appointment.appointment_date, appointment.start_time, appointment.staff_user_id)
            appointment.appointment_date = new_date
            appointment.start_time = target.start_time
            appointment.end_time = target.end_time
            if resource_id != appointment.staff_user_id:
                appointment.staff_user_id = resource_id
                appointment.staff_name = None
            await session.flush()

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment.id,
            from_date=previous[0].isoformat(),
            from_time=previous[1].isoformat(),
            to_date=new_date.isoformat(),
            to_time=target.start_time.isoformat(),
            staff_changed=previous[2] != resource_id,
        )

        remote = await self.sync_gate.propagate(
            SyncMutation(MutationKind.RESCHEDULE, appointment.organization_id, appointment.id)
        )
        return MutationOutcome(LocalResult((appointment,)), (remote,))

    # =========================================================================
    # Cancel
    # =========================================================================

    async def cancel(
        self,
        appointment_id: str,
        reason: str = "",
        organization_id: Optional[str] = None,
    ) -> MutationOutcome:
        """
        Cancel an appointment. The row is kept for history.

        Raises:
            NotFound: If the appointment does not exist (or belongs to
                another tenant than ``organization_id``)
            AlreadyCancelled: If it was cancelled before; nothing changes
            StorageError: On store failure (retryable)
        """
        async with storage_transaction(self.db) as session:
            appointments = AppointmentRepository(session)
            appointment = await self._load_mutable(appointments, appointment_id, organization_id)

            appointment.status = AppointmentStatus.CANCELLED.value
            appointment.cancelled_at = datetime.utcnow()
            appointment.cancellation_reason = reason or None
            await session.flush()

        logger.info("appointment_cancelled", appointment_id=appointment.id, reason=reason)

        remote = await self.sync_gate.propagate(
            SyncMutation(MutationKind.STATUS_CHANGE, appointment.organization_id, appointment.id)
        )
        return MutationOutcome(LocalResult((appointment,)), (remote,))

    # =========================================================================
    # Recurrence
    # =========================================================================

    async def expand_recurrence(self, anchor_id: str, rule: RuleInput) -> MutationOutcome:
        """
        Turn an existing appointment into the anchor of a series.

        Raises:
            NotFound: If the anchor does not exist
            InvalidRecurrenceRule: If the rule is invalid, or the anchor is
                cancelled or already part of a series
            StorageError: On store failure (retryable)
        """
        parsed = _coerce_rule(rule)
        if parsed is None:
            raise InvalidRecurrenceRule("A recurrence rule is required")

        async with storage_transaction(self.db) as session:
            appointments = AppointmentRepository(session)
            anchor = await appointments.get_for_update(anchor_id)
            if anchor is None:
                raise NotFound("Appointment", anchor_id)
            recurrence = await self._expander(appointments).expand(anchor, parsed)

        await self._report_partial(recurrence)
        remote = await self._propagate_all(MutationKind.CREATE_APPOINTMENT, recurrence.created)
        return MutationOutcome(LocalResult((anchor,) + recurrence.created, recurrence), remote)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _expander(self, appointments: AppointmentRepository) -> RecurrenceExpander:
        return RecurrenceExpander(appointments, max_occurrences=self.max_recurrence_occurrences)

    async def _load_mutable(
        self,
        appointments: AppointmentRepository,
        appointment_id: str,
        organization_id: Optional[str] = None,
    ) -> Appointment:
        appointment = await appointments.get_for_update(appointment_id)
        if appointment is None or (
            organization_id is not None and appointment.organization_id != organization_id
        ):
            raise NotFound("Appointment", appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise AlreadyCancelled("Appointment", appointment_id)
        return appointment

    async def _propagate_all(
        self,
        kind: MutationKind,
        appointments: Tuple[Appointment, ...],
    ) -> Tuple[RemoteSyncOutcome, ...]:
        outcomes: List[RemoteSyncOutcome] = []
        for appointment in appointments:
            outcomes.append(
                await self.sync_gate.propagate(
                    SyncMutation(kind, appointment.organization_id, appointment.id)
                )
            )
        return tuple(outcomes)

    async def _report_partial(self, recurrence: RecurrenceResult) -> None:
        if not recurrence.is_partial:
            return
        anchor = recurrence.anchor
        try:
            await self.notifier.notify(
                SchedulingEvent(
                    type=SchedulingEventType.RECURRENCE_PARTIAL,
                    organization_id=anchor.organization_id,
                    subject_id=anchor.id,
                    message=(
                        f"{len(recurrence.skipped)} of the recurring dates were skipped "
                        f"because of conflicts"
                    ),
                    severity=EventSeverity.WARNING,
                    details=recurrence.to_dict(),
                )
            )
        except Exception as e:
            logger.error("recurrence_notify_failed", anchor_id=anchor.id, error=str(e))


__all__ = ["AppointmentActionEngine"]
