"""Shared pytest fixtures for testing."""

import os
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from salonops_core.config import SchedulingConfig
from salonops_core.database import (
    DatabaseManager,
    DayRateChair,
    Location,
    Organization,
    StaffMapping,
)
from salonops_core.integrations.base import PosClient
from salonops_core.notifications import InMemoryNotifier
from salonops_core.scheduling import SchedulingService

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

STYLIST_ID = "stylist-ana"
OTHER_STYLIST_ID = "stylist-ben"
BRANCH_ID = "branch-001"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[DatabaseManager, None]:
    """Fresh schema per test."""
    manager = DatabaseManager(TEST_DATABASE_URL)
    await manager.create_all()
    yield manager
    await manager.drop_all()
    await manager.close()


@pytest_asyncio.fixture
async def organization(db: DatabaseManager) -> Organization:
    """Tenant with the POS write gate on."""
    async with db.session() as session:
        org = Organization(name="Studio North", pos_write_enabled=True)
        session.add(org)
    return org


@pytest_asyncio.fixture
async def location(db: DatabaseManager, organization: Organization) -> Location:
    """Location linked to a POS branch and renting three chairs."""
    async with db.session() as session:
        loc = Location(
            organization_id=organization.id,
            name="Downtown",
            external_branch_id=BRANCH_ID,
            day_rate_enabled=True,
            day_rate_default_price=Decimal("150.00"),
            day_rate_blackout_dates=[blackout_date().isoformat()],
        )
        session.add(loc)
        await session.flush()
        for number in (1, 2, 3):
            session.add(DayRateChair(location_id=loc.id, chair_number=number))
        session.add(
            StaffMapping(
                organization_id=organization.id,
                user_id=STYLIST_ID,
                external_staff_id="phx-staff-ana",
            )
        )
    return loc


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def pos_client() -> AsyncMock:
    """POS client double returning fixed external ids."""
    client = AsyncMock(spec=PosClient)
    client.create_appointment.return_value = "phx-appt-1"
    client.create_client.return_value = "phx-client-1"
    client.update_appointment.return_value = None
    client.cancel_appointment.return_value = None
    return client


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def config() -> SchedulingConfig:
    return SchedulingConfig(database_url=TEST_DATABASE_URL, remote_timeout_seconds=0.5)


@pytest_asyncio.fixture
async def service(
    db: DatabaseManager,
    config: SchedulingConfig,
    pos_client: AsyncMock,
    notifier: InMemoryNotifier,
) -> AsyncGenerator[SchedulingService, None]:
    svc = SchedulingService(db, config=config, pos_client=pos_client, notifier=notifier)
    yield svc
    await svc.sync.drain()


# =============================================================================
# Test Data Helpers
# =============================================================================


def future_date(days: int = 30) -> date:
    """A date safely in the future for day-rate bookings."""
    return date.today() + timedelta(days=days)


def blackout_date() -> date:
    return future_date(45)


def stylist_details(name: str = "Casey Rivera") -> dict:
    """Renter fields for a day-rate booking."""
    return {
        "stylist_name": name,
        "stylist_email": f"{name.split()[0].lower()}@example.com",
        "stylist_phone": "+15555550100",
        "license_number": "CA-123456",
        "license_state": "CA",
    }
