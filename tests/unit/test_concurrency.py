"""
Concurrency Tests

Concurrent callers racing for the same slot, chair or action. These run
against a file-backed SQLite database so every session gets its own
connection and its own transaction.
"""

import asyncio
from datetime import date, time
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from salonops_core.database import Appointment, DatabaseManager
from salonops_core.scheduling import (
    ActionExecutionResult,
    ActionKind,
    ActionStatus,
    CapacityExhausted,
    InvalidActionState,
    MutationOutcome,
    SchedulingConflict,
)

from tests.conftest import STYLIST_ID, future_date, stylist_details


DAY = date(2030, 3, 4)


@pytest_asyncio.fixture
async def db(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """File-backed schema shared by independent connections."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


def split(results, success_type):
    successes = [r for r in results if isinstance(r, success_type)]
    failures = [r for r in results if not isinstance(r, success_type)]
    return successes, failures


async def count_appointments(db: DatabaseManager, organization_id: str) -> int:
    async with db.session() as session:
        result = await session.execute(
            select(func.count())
            .select_from(Appointment)
            .where(Appointment.organization_id == organization_id)
        )
        return result.scalar_one()


class TestConcurrentExecute:
    """Tests for racing executions of one confirmed action."""

    @pytest.mark.asyncio
    async def test_action_runs_once(self, db, service, organization):
        action = await service.workflow.propose(
            organization.id,
            ActionKind.CREATE_BOOKING,
            {
                "appointment_date": DAY.isoformat(),
                "start_time": "09:00",
                "end_time": "10:00",
                "client_name": "Riley Chen",
            },
        )
        await service.workflow.confirm(action.id)

        results = await asyncio.gather(
            service.workflow.execute(action.id),
            service.workflow.execute(action.id),
            return_exceptions=True,
        )

        successes, failures = split(results, ActionExecutionResult)
        assert len(successes) == 1
        assert successes[0].success is True
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidActionState)

        assert await count_appointments(db, organization.id) == 1
        recorded = await service.workflow.get(action.id)
        assert recorded.status == ActionStatus.EXECUTED.value


class TestConcurrentReschedule:
    """Tests for two moves into the same slot."""

    @pytest.mark.asyncio
    async def test_only_one_move_wins(self, service, organization, location):
        appointments = []
        for start, end in ((time(10, 0), time(11, 0)), (time(12, 0), time(13, 0))):
            outcome = await service.actions.create_booking(
                organization_id=organization.id,
                appointment_date=DAY,
                start_time=start,
                end_time=end,
                staff_user_id=STYLIST_ID,
                location_id=location.id,
            )
            appointments.append(outcome.appointment)

        results = await asyncio.gather(
            *(service.actions.reschedule(a.id, DAY, time(15, 0)) for a in appointments),
            return_exceptions=True,
        )

        successes, failures = split(results, MutationOutcome)
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], SchedulingConflict)

        moved = [await service.get_appointment(a.id) for a in appointments]
        assert [a.start_time for a in moved].count(time(15, 0)) == 1


class TestConcurrentDayRate:
    """Tests for two renters racing for the last chair."""

    @pytest.mark.asyncio
    async def test_last_chair_goes_to_one_renter(self, service, location):
        day = future_date()
        for name in ("Casey Rivera", "Morgan Diaz"):
            await service.capacity.book(location.id, day, **stylist_details(name))

        results = await asyncio.gather(
            service.capacity.book(location.id, day, **stylist_details("Jamie Fox")),
            service.capacity.book(location.id, day, **stylist_details("Alex Kim")),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        bookings = [r for r in results if not isinstance(r, BaseException)]
        assert len(bookings) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], CapacityExhausted)

        check = await service.capacity.check_date(location.id, day)
        assert check.available is False
