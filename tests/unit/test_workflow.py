"""
Unit Tests for the Action Confirmation Workflow

Tests for proposing, confirming, rejecting and executing assistant actions.
"""

from datetime import date, time
from unittest.mock import AsyncMock

import pytest

from salonops_core.database import Organization
from salonops_core.database.repositories import ScheduledActionRepository
from salonops_core.notifications import SchedulingEventType
from salonops_core.scheduling import (
    ACTION_TRANSITIONS,
    ActionKind,
    ActionStatus,
    AlreadyCancelled,
    AppointmentStatus,
    InvalidActionState,
    NotFound,
    SchedulingValidationError,
    StorageError,
)
from salonops_core.scheduling.workflow import can_transition

from tests.conftest import STYLIST_ID


DAY = date(2030, 3, 4)


async def book(service, organization, location, start=time(10, 0), end=time(11, 0), **kwargs):
    fields = dict(
        organization_id=organization.id,
        appointment_date=DAY,
        start_time=start,
        end_time=end,
        staff_user_id=STYLIST_ID,
        staff_name="Ana",
        location_id=location.id,
        client_name="Jordan Lee",
        service_name="Cut & Colour",
    )
    fields.update(kwargs)
    outcome = await service.actions.create_booking(**fields)
    return outcome.appointment


# =============================================================================
# Transition Table Tests
# =============================================================================


class TestTransitions:
    """Tests for the action state machine."""

    def test_every_status_has_an_entry(self):
        assert set(ACTION_TRANSITIONS) == set(ActionStatus)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ActionStatus.PENDING_CONFIRMATION, ActionStatus.CONFIRMED),
            (ActionStatus.PENDING_CONFIRMATION, ActionStatus.CANCELLED),
            (ActionStatus.CONFIRMED, ActionStatus.EXECUTING),
            (ActionStatus.EXECUTING, ActionStatus.EXECUTED),
            (ActionStatus.EXECUTING, ActionStatus.FAILED),
            (ActionStatus.EXECUTING, ActionStatus.CONFIRMED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ActionStatus.PENDING_CONFIRMATION, ActionStatus.EXECUTED),
            (ActionStatus.CONFIRMED, ActionStatus.EXECUTED),
            (ActionStatus.EXECUTING, ActionStatus.EXECUTING),
            (ActionStatus.CANCELLED, ActionStatus.CONFIRMED),
            (ActionStatus.EXECUTED, ActionStatus.EXECUTED),
            (ActionStatus.FAILED, ActionStatus.CONFIRMED),
        ],
    )
    def test_refused(self, current, target):
        assert not can_transition(current, target)


# =============================================================================
# Proposal Tests
# =============================================================================


class TestPropose:
    """Tests for recording proposals."""

    @pytest.mark.asyncio
    async def test_reschedule_preview(self, service, organization, location):
        """Test that a reschedule proposal shows before and after."""
        appointment = await book(service, organization, location)

        action = await service.workflow.propose(
            organization.id,
            ActionKind.RESCHEDULE,
            {"appointment_id": appointment.id, "new_date": "2030-03-05", "new_time": "14:00"},
            requested_by="assistant",
        )

        assert action.status == ActionStatus.PENDING_CONFIRMATION.value
        assert action.preview["title"] == "Reschedule appointment"
        assert action.preview["before"]["date"] == "2030-03-04"
        assert action.preview["before"]["time"] == "10:00"
        assert action.preview["after"]["date"] == "2030-03-05"
        assert action.preview["after"]["time"] == "14:00"
        assert action.preview["after"]["client"] == "Jordan Lee"
        assert action.params["new_time"] == "14:00:00"

        # Nothing moves until the action is confirmed and executed
        stored = await service.get_appointment(appointment.id)
        assert stored.start_time == time(10, 0)

    @pytest.mark.asyncio
    async def test_cancel_preview(self, service, organization, location):
        appointment = await book(service, organization, location)

        action = await service.workflow.propose(
            organization.id, "cancel", {"appointment_id": appointment.id}
        )

        assert action.kind == ActionKind.CANCEL.value
        assert action.preview["after"] is None
        assert "Jordan Lee" in action.preview["description"]

    @pytest.mark.asyncio
    async def test_create_preview(self, service, organization):
        action = await service.workflow.propose(
            organization.id,
            ActionKind.CREATE_BOOKING,
            {
                "appointment_date": "2030-03-06",
                "start_time": "09:00",
                "end_time": "10:00",
                "client_name": "Riley Chen",
            },
        )

        assert action.preview["before"] is None
        assert action.preview["description"] == "Book Riley Chen on 2030-03-06 at 09:00"

    @pytest.mark.asyncio
    async def test_unknown_kind(self, service, organization):
        with pytest.raises(SchedulingValidationError):
            await service.workflow.propose(organization.id, "refund", {})

    @pytest.mark.asyncio
    async def test_invalid_params(self, service, organization):
        with pytest.raises(SchedulingValidationError) as exc_info:
            await service.workflow.propose(
                organization.id, ActionKind.RESCHEDULE, {"appointment_id": "a", "new_date": "soon"}
            )

        assert exc_info.value.details["errors"]

    @pytest.mark.asyncio
    async def test_missing_appointment(self, service, organization):
        with pytest.raises(NotFound):
            await service.workflow.propose(
                organization.id, ActionKind.CANCEL, {"appointment_id": "missing"}
            )

    @pytest.mark.asyncio
    async def test_list_pending(self, service, organization, location):
        appointment = await book(service, organization, location)
        first = await service.workflow.propose(
            organization.id, ActionKind.CANCEL, {"appointment_id": appointment.id}
        )
        second = await service.workflow.propose(
            organization.id, ActionKind.CANCEL, {"appointment_id": appointment.id}
        )
        await service.workflow.confirm(first.id)

        pending = await service.workflow.list_pending(organization.id)

        assert [a.id for a in pending] == [second.id]
        assert await service.workflow.list_pending("other-org") == []

    @pytest.mark.asyncio
    async def test_cancelled_appointment(self, service, organization, location):
        appointment = await book(service, organization, location)
        await service.actions.cancel(appointment.id)

        with pytest.raises(AlreadyCancelled):
            await service.workflow.propose(
                organization.id, ActionKind.CANCEL, {"appointment_id": appointment.id}
            )


# =============================================================================
# Execution Tests
# =============================================================================


class TestExecute:
    """Tests for the confirm-then-execute path."""

    @pytest.mark.asyncio
    async def test_confirmed_reschedule_executes(self, service, organization, location, notifier):
        appointment = await book(service, organization, location)
        action = await service.workflow.propose(
            organization.id,
            ActionKind.RESCHEDULE,
            {"appointment_id": appointment.id, "new_date": "2030-03-05", "new_time": "14:00"},
        )

        confirmed = await service.workflow.confirm(action.id)
        assert confirmed.status == ActionStatus.CONFIRMED.value
        assert confirmed.confirmed_at is not None

        result = await service.workflow.execute(action.id)

        assert result.success is True
        assert result.status == ActionStatus.EXECUTED
        assert result.message == "Rescheduled Jordan Lee to 2030-03-05 at 14:00"
        assert result.to_dict()["applied_remotely"] is True

        stored = await service.get_appointment(appointment.id)
        assert stored.appointment_date == date(2030, 3, 5)
        assert stored.start_time == time(14, 0)
        assert stored.end_time == time(15, 0)

        recorded = await service.workflow.get(action.id)
        assert recorded.status == ActionStatus.EXECUTED.value
        assert recorded.result_message == result.message
        assert recorded.executed_at is not None
        assert notifier.of_type(SchedulingEventType.ACTION_EXECUTED)

    @pytest.mark.asyncio
    async def test_execute_twice(self, service, organization, location):
        """Test that an executed action is never executed again."""
        appointment = await book(service, organization, location)
        action = await service.workflow.propose(
            organization.id, ActionKind.CANCEL, {"appointment_id": appointment.id}
        )
        await service.workflow.confirm(action.id)
        await service.workflow.execute(action.id)

        with pytest.raises(InvalidActionState):
            await service.workflow.execute(action.id)

    @pytest.mark.asyncio
    async def test_execute_before_confirmation(self, service, organization, location):
        appointment = await book(service, organization, location)
        action = await service.workflow.propose(
            organization.id, ActionKind.CANCEL, {"appointment_id": appointment.id}
        )

        with pytest.raises(InvalidActionState):
            await service.workflow.execute(action.id)

        stored = await service.get_appointment(appointment.id)
        assert stored.status == AppointmentStatus.BOOKED.value

    @pytest.mark.asyncio
    async def test_rejected_action_never_executes(self, service, organization, location):
        appointment = await book(service, organization, location)
        action = await service.workflow.propose(
            organization.id, ActionKind.CANCEL, {"appointment_id": appointment.id}
        )

        rejected = await service.workflow.reject(action.id)
        assert rejected.status == ActionStatus.CANCELLED.value

        with pytest.raises(InvalidActionState):
            await service.workflow.confirm(action.id)
        with pytest.raises(InvalidActionState):
            await service.workflow.execute(action.id)

        stored = await service.get_appointment(appointment.id)
        assert stored.status == AppointmentStatus.BOOKED.value

    @pytest.mark.asyncio
    async def test_conflict_marks_action_failed(self, service, organization, location, notifier):
        """Test that a slot taken after proposal fails the action with a reason."""
        appointment = await book(service, organization, location)
        action = await service.workflow.propose(
            organization.id,
            ActionKind.RESCHEDULE,
            {"appointment_id": appointment.id, "new_date": "2030-03-04", "new_time": "15:00"},
        )
        await service.workflow.confirm(action.id)
        await book(
            service, organization, location, time(15, 30), time(16, 30),
            client_name="Sam Park",
        )

        result = await service.workflow.execute(action.id)

        assert result.success is False
        assert result.status == ActionStatus.FAILED
        assert "Sam Park" in result.error_reason

        recorded = await service.workflow.get(action.id)
        assert recorded.status == ActionStatus.FAILED.value
        assert recorded.error_reason == result.error_reason
        assert notifier.of_type(SchedulingEventType.ACTION_FAILED)

        stored = await service.get_appointment(appointment.id)
        assert stored.start_time == time(10, 0)

        with pytest.raises(InvalidActionState):
            await service.workflow.execute(action.id)

    @pytest.mark.asyncio
    async def test_confirmed_create_booking(self, service, organization, location):
        action = await service.workflow.propose(
            organization.id,
            ActionKind.CREATE_BOOKING,
            {
                "appointment_date": "2030-03-04",
                "start_time": "12:00",
                "end_time": "13:00",
                "staff_user_id": STYLIST_ID,
                "location_id": location.id,
                "client_name": "Riley Chen",
                "recurrence_rule": {"frequency": "weekly", "occurrences": 3},
            },
        )
        await service.workflow.confirm(action.id)

        result = await service.workflow.execute(action.id)

        assert result.success is True
        assert result.to_dict()["created_count"] == 3
        assert result.to_dict()["skipped"] == []
        assert "3 appointments" in result.message

    @pytest.mark.asyncio
    async def test_missing_action(self, service):
        with pytest.raises(NotFound):
            await service.workflow.execute("missing")
        with pytest.raises(NotFound):
            await service.workflow.confirm("missing")

    @pytest.mark.asyncio
    async def test_storage_failure_leaves_action_retryable(
        self, service, organization, location, monkeypatch
    ):
        """Test that a store fault hands the action back as confirmed."""
        appointment = await book(service, organization, location)
        action = await service.workflow.propose(
            organization.id, ActionKind.CANCEL, {"appointment_id": appointment.id}
        )
        await service.workflow.confirm(action.id)
        real_cancel = service.actions.cancel
        monkeypatch.setattr(
            service.actions, "cancel", AsyncMock(side_effect=StorageError("disk full"))
        )

        with pytest.raises(StorageError):
            await service.workflow.execute(action.id)
        assert (await service.workflow.get(action.id)).status == ActionStatus.CONFIRMED.value

        monkeypatch.setattr(service.actions, "cancel", real_cancel)
        result = await service.workflow.execute(action.id)
        assert result.success is True


# =============================================================================
# Tenant Scope Tests
# =============================================================================


async def other_tenant(db) -> Organization:
    async with db.session() as session:
        org = Organization(name="Studio South", pos_write_enabled=True)
        session.add(org)
    return org


class TestTenantScope:
    """Tests that actions only ever touch their own tenant's bookings."""

    @pytest.mark.asyncio
    async def test_propose_against_other_tenant(self, db, service, organization, location):
        appointment = await book(service, organization, location, client_name="Victim")
        other = await other_tenant(db)

        for kind, params in (
            (ActionKind.CANCEL, {"appointment_id": appointment.id}),
            (
                ActionKind.RESCHEDULE,
                {"appointment_id": appointment.id, "new_date": "2030-03-05", "new_time": "14:00"},
            ),
        ):
            with pytest.raises(NotFound):
                await service.workflow.propose(other.id, kind, params)

        assert await service.workflow.list_pending(other.id) == []

    @pytest.mark.asyncio
    async def test_execute_rechecks_tenant(self, db, service, organization, location):
        """Test that a stored action naming a foreign appointment fails on execute."""
        appointment = await book(service, organization, location)
        other = await other_tenant(db)
        async with db.session() as session:
            action = await ScheduledActionRepository(session).create(
                organization_id=other.id,
                kind=ActionKind.CANCEL.value,
                params={"appointment_id": appointment.id, "reason": ""},
                status=ActionStatus.CONFIRMED.value,
            )

        result = await service.workflow.execute(action.id)

        assert result.success is False
        assert result.status == ActionStatus.FAILED
        assert appointment.id in result.error_reason

        stored = await service.get_appointment(appointment.id)
        assert stored.status == AppointmentStatus.BOOKED.value

    @pytest.mark.asyncio
    async def test_booking_with_other_tenants_client(self, db, service, organization, location):
        other = await other_tenant(db)
        created = await service.create_client(other.id, "Riley", "Chen", phone="+15555550199")

        with pytest.raises(NotFound):
            await book(service, organization, location, client_id=created.client.id)
