"""
Action Confirmation Workflow

State machine for assistant-proposed scheduling mutations. An automated
agent can only propose; a human confirms or rejects; only a confirmed action
is executed through the Action Engine, and its terminal outcome is written
back onto the action record for audit.

    pending_confirmation -> confirmed -> executing -> executed | failed
    pending_confirmation -> cancelled
"""

from datetime import date, datetime, time
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..database.base import DatabaseManager
from ..database.models import Appointment, ScheduledAction
from ..database.repositories import AppointmentRepository, ScheduledActionRepository
from ..notifications.base import (
    EventSeverity,
    LoggingNotifier,
    SchedulingEvent,
    SchedulingEventType,
    SchedulingNotifier,
)
from .actions import AppointmentActionEngine
from .base import (
    ActionExecutionResult,
    ActionKind,
    ActionStatus,
    AlreadyCancelled,
    AppointmentStatus,
    InvalidActionState,
    MutationOutcome,
    NotFound,
    SchedulingError,
    SchedulingValidationError,
    StorageError,
    storage_transaction,
)


logger = structlog.get_logger(__name__)


# =============================================================================
# Transition Table
# =============================================================================


ACTION_TRANSITIONS: Mapping[ActionStatus, FrozenSet[ActionStatus]] = {
    ActionStatus.PENDING_CONFIRMATION: frozenset(
        {ActionStatus.CONFIRMED, ActionStatus.CANCELLED}
    ),
    ActionStatus.CONFIRMED: frozenset({ActionStatus.EXECUTING}),
    # Back to confirmed only when a storage failure leaves the mutation unapplied
    ActionStatus.EXECUTING: frozenset(
        {ActionStatus.EXECUTED, ActionStatus.FAILED, ActionStatus.CONFIRMED}
    ),
    ActionStatus.CANCELLED: frozenset(),
    ActionStatus.EXECUTED: frozenset(),
    ActionStatus.FAILED: frozenset(),
}

_missing = set(ActionStatus) - set(ACTION_TRANSITIONS)
if _missing:
    raise RuntimeError(
        f"Action transition table is missing {sorted(s.value for s in _missing)}"
    )
del _missing


def can_transition(current: ActionStatus, target: ActionStatus) -> bool:
    return target in ACTION_TRANSITIONS[current]


def ensure_transition(action_id: str, current: ActionStatus, target: ActionStatus) -> None:
    if not can_transition(current, target):
        raise InvalidActionState(action_id, current.value, target.value)


# =============================================================================
# Action Parameters
# =============================================================================


class RescheduleParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    appointment_id: str
    new_date: date
    new_time: time
    staff_user_id: Optional[str] = None


class CancelParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    appointment_id: str
    reason: str = ""


class CreateBookingParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    appointment_date: date
    start_time: time
    end_time: time
    staff_user_id: Optional[str] = None
    staff_name: Optional[str] = None
    location_id: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    service_id: Optional[str] = None
    service_name: Optional[str] = None
    notes: Optional[str] = None
    recurrence_rule: Optional[Dict[str, Any]] = Field(default=None)


_PARAM_MODELS = {
    ActionKind.RESCHEDULE: RescheduleParams,
    ActionKind.CANCEL: CancelParams,
    ActionKind.CREATE_BOOKING: CreateBookingParams,
}


def parse_params(kind: ActionKind, params: Dict[str, Any]) -> BaseModel:
    try:
        return _PARAM_MODELS[kind].model_validate(params)
    except PydanticValidationError as e:
        raise SchedulingValidationError(
            f"Invalid parameters for {kind.value}",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e


# =============================================================================
# Preview
# =============================================================================


def _slot_summary(
    day: Optional[date],
    start: Optional[time],
    client: Optional[str],
    service: Optional[str],
    stylist: Optional[str],
) -> Dict[str, Optional[str]]:
    return {
        "date": day.isoformat() if day else None,
        "time": start.strftime("%H:%M") if start else None,
        "client": client,
        "service": service,
        "stylist": stylist,
    }


def _appointment_summary(appointment: Appointment) -> Dict[str, Optional[str]]:
    return _slot_summary(
        appointment.appointment_date,
        appointment.start_time,
        appointment.client_name,
        appointment.service_name,
        appointment.staff_name,
    )


# =============================================================================
# Workflow
# =============================================================================


class ActionConfirmationWorkflow:
    """Propose, confirm, reject and execute assistant-initiated mutations."""

    def __init__(
        self,
        db: DatabaseManager,
        engine: AppointmentActionEngine,
        notifier: Optional[SchedulingNotifier] = None,
    ):
        self.db = db
        self.engine = engine
        self.notifier = notifier or LoggingNotifier()

    async def propose(
        self,
        organization_id: str,
        kind: ActionKind,
        params: Dict[str, Any],
        requested_by: Optional[str] = None,
    ) -> ScheduledAction:
        """
        Record a proposal with a before/after preview.

        Raises:
            SchedulingValidationError: If the parameters do not parse
            NotFound: If the target appointment does not exist
            AlreadyCancelled: If the target appointment is cancelled
        """
        try:
            kind = ActionKind(kind)
        except ValueError:
            raise SchedulingValidationError(f"Unknown action kind: {kind}")
        parsed = parse_params(kind, params)

        async with storage_transaction(self.db) as session:
            preview = await self._build_preview(
                AppointmentRepository(session), organization_id, kind, parsed
            )
            action = await ScheduledActionRepository(session).create(
                organization_id=organization_id,
                requested_by=requested_by,
                kind=kind.value,
                params=parsed.model_dump(mode="json"),
                status=ActionStatus.PENDING_CONFIRMATION.value,
                preview=preview,
            )

        logger.info(
            "action_proposed",
            action_id=action.id,
            organization_id=organization_id,
            kind=kind.value,
        )
        return action

    async def get(self, action_id: str) -> ScheduledAction:
        async with storage_transaction(self.db) as session:
            action = await ScheduledActionRepository(session).get_by_id(action_id)
        if action is None:
            raise NotFound("ScheduledAction", action_id)
        return action

    async def list_pending(self, organization_id: str) -> List[ScheduledAction]:
        """Proposals awaiting a human decision, oldest first."""
        async with storage_transaction(self.db) as session:
            return await ScheduledActionRepository(session).list_pending(organization_id)

    async def confirm(self, action_id: str) -> ScheduledAction:
        """Explicit user confirmation."""
        return await self._move(action_id, ActionStatus.CONFIRMED)

    async def reject(self, action_id: str) -> ScheduledAction:
        """Explicit user rejection. The action is never executed."""
        return await self._move(action_id, ActionStatus.CANCELLED)

    async def execute(self, action_id: str) -> ActionExecutionResult:
        """
        Run a confirmed action through the Action Engine.

        Scheduling errors (conflict, not found, already cancelled, invalid
        input) mark the action ``failed`` and are returned, not raised.
        ``StorageError`` propagates and leaves the action ``confirmed`` so the
        caller can retry.

        Raises:
            NotFound: If the action does not exist
            InvalidActionState: If the action is not ``confirmed``, including
                when a concurrent call has already claimed it
            StorageError: On store failure (retryable)
        """
        action = await self._claim(action_id)

        kind = ActionKind(action.kind)
        outcome: Optional[MutationOutcome] = None
        try:
            outcome = await self._dispatch(action, kind, parse_params(kind, action.params))
        except StorageError:
            await self._release(action_id)
            raise
        except SchedulingError as e:
            result = ActionExecutionResult(
                action_id=action_id,
                status=ActionStatus.FAILED,
                error_reason=e.message,
            )
        else:
            result = ActionExecutionResult(
                action_id=action_id,
                status=ActionStatus.EXECUTED,
                message=self._describe(kind, outcome),
                outcome=outcome,
            )

        async with storage_transaction(self.db) as session:
            written = await ScheduledActionRepository(session).finish(
                action_id,
                expected_status=ActionStatus.EXECUTING.value,
                status=result.status.value,
                result_message=result.message,
                error_reason=result.error_reason,
            )
        if not written:
            latest = await self.get(action_id)
            raise InvalidActionState(action_id, latest.status, result.status.value)

        logger.info(
            "action_executed" if result.success else "action_failed",
            action_id=action_id,
            kind=kind.value,
            error_reason=result.error_reason,
        )
        await self._report(action, result)
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _move(self, action_id: str, target: ActionStatus) -> ScheduledAction:
        async with storage_transaction(self.db) as session:
            action = await ScheduledActionRepository(session).get_for_update(action_id)
            if action is None:
                raise NotFound("ScheduledAction", action_id)
            ensure_transition(action_id, ActionStatus(action.status), target)

            action.status = target.value
            if target == ActionStatus.CONFIRMED:
                action.confirmed_at = datetime.utcnow()
            await session.flush()

        logger.info("action_transitioned", action_id=action_id, status=target.value)
        return action

    async def _claim(self, action_id: str) -> ScheduledAction:
        """Move ``confirmed -> executing`` so exactly one caller dispatches."""
        async with storage_transaction(self.db) as session:
            actions = ScheduledActionRepository(session)
            action = await actions.get_by_id(action_id)
            if action is None:
                raise NotFound("ScheduledAction", action_id)
            ensure_transition(action_id, ActionStatus(action.status), ActionStatus.EXECUTING)
            claimed = await actions.transition(
                action_id,
                expected_status=ActionStatus.CONFIRMED.value,
                status=ActionStatus.EXECUTING.value,
            )
        if not claimed:
            latest = await self.get(action_id)
            raise InvalidActionState(action_id, latest.status, ActionStatus.EXECUTING.value)
        return action

    async def _release(self, action_id: str) -> None:
        async with storage_transaction(self.db) as session:
            await ScheduledActionRepository(session).transition(
                action_id,
                expected_status=ActionStatus.EXECUTING.value,
                status=ActionStatus.CONFIRMED.value,
            )
        logger.warning("action_released", action_id=action_id)

    async def _dispatch(
        self,
        action: ScheduledAction,
        kind: ActionKind,
        params: BaseModel,
    ) -> MutationOutcome:
        if kind == ActionKind.RESCHEDULE:
            return await self.engine.reschedule(
                params.appointment_id,
                params.new_date,
                params.new_time,
                new_resource_id=params.staff_user_id,
                organization_id=action.organization_id,
            )
        if kind == ActionKind.CANCEL:
            return await self.engine.cancel(
                params.appointment_id,
                reason=params.reason,
                organization_id=action.organization_id,
            )
        return await self.engine.create_booking(
            organization_id=action.organization_id,
            **params.model_dump(),
        )

    async def _build_preview(
        self,
        appointments: AppointmentRepository,
        organization_id: str,
        kind: ActionKind,
        params: BaseModel,
    ) -> Dict[str, Any]:
        if kind == ActionKind.CREATE_BOOKING:
            after = _slot_summary(
                params.appointment_date,
                params.start_time,
                params.client_name,
                params.service_name,
                params.staff_name,
            )
            return {
                "title": "Book appointment",
                "description": f"Book {params.client_name or 'a client'} on "
                f"{after['date']} at {after['time']}",
                "before": None,
                "after": after,
            }

        appointment = await appointments.get_by_id(params.appointment_id)
        if appointment is None or appointment.organization_id != organization_id:
            raise NotFound("Appointment", params.appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise AlreadyCancelled("Appointment", params.appointment_id)
        before = _appointment_summary(appointment)

        if kind == ActionKind.CANCEL:
            return {
                "title": "Cancel appointment",
                "description": f"Cancel the appointment for {before['client'] or 'this client'} "
                f"on {before['date']} at {before['time']}",
                "before": before,
                "after": None,
            }

        after = dict(before, date=params.new_date.isoformat(), time=params.new_time.strftime("%H:%M"))
        if params.staff_user_id and params.staff_user_id != appointment.staff_user_id:
            after["stylist"] = params.staff_user_id
        return {
            "title": "Reschedule appointment",
            "description": f"Move {before['client'] or 'appointment'} from "
            f"{before['date']} {before['time']} to {after['date']} {after['time']}",
            "before": before,
            "after": after,
        }

    def _describe(self, kind: ActionKind, outcome: MutationOutcome) -> str:
        appointment = outcome.appointment
        when = (
            f"{appointment.appointment_date.isoformat()} at "
            f"{appointment.start_time.strftime('%H:%M')}"
        )
        who = appointment.client_name or "appointment"
        if kind == ActionKind.RESCHEDULE:
            return f"Rescheduled {who} to {when}"
        if kind == ActionKind.CANCEL:
            return f"Cancelled {who} on {when}"

        recurrence = outcome.local.recurrence
        if recurrence is None:
            return f"Booked {who} on {when}"
        return (
            f"Booked {who} on {when} with {recurrence.created_count} appointments "
            f"in the series ({len(recurrence.skipped)} skipped)"
        )

    async def _report(self, action: ScheduledAction, result: ActionExecutionResult) -> None:
        try:
            await self.notifier.notify(
                SchedulingEvent(
                    type=(
                        SchedulingEventType.ACTION_EXECUTED
                        if result.success
                        else SchedulingEventType.ACTION_FAILED
                    ),
                    organization_id=action.organization_id,
                    subject_id=action.id,
                    message=result.message or result.error_reason or "",
                    severity=EventSeverity.INFO if result.success else EventSeverity.WARNING,
                    details={"kind": action.kind},
                )
            )
        except Exception as e:
            logger.error("action_notify_failed", action_id=action.id, error=str(e))


__all__ = [
    "ACTION_TRANSITIONS",
    "can_transition",
    "ensure_transition",
    "RescheduleParams",
    "CancelParams",
    "CreateBookingParams",
    "parse_params",
    "ActionConfirmationWorkflow",
]
