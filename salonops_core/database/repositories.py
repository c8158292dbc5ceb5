"""
Database Repositories

Repository pattern implementation for data access.
"""

from collections import defaultdict
from datetime import date, datetime
from typing import Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import and_, func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from .base import Base
from .models import (
    Appointment,
    Client,
    DayRateBooking,
    DayRateChair,
    Location,
    Organization,
    ScheduledAction,
    StaffMapping,
)


# =============================================================================
# Generic Type Variable
# =============================================================================


ModelType = TypeVar("ModelType", bound=Base)


# =============================================================================
# Base Repository
# =============================================================================


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations."""

    model: Type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get entity by ID."""
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, id: str) -> Optional[ModelType]:
        """Get entity by ID and lock its row until the transaction ends."""
        result = await self.session.execute(
            select(self.model)
            .where(self.model.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs) -> ModelType:
        """Create a new entity."""
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def update(self, id: str, **kwargs) -> Optional[ModelType]:
        """Update an entity."""
        instance = await self.get_by_id(id)
        if not instance:
            return None

        for key, value in kwargs.items():
            if hasattr(instance, key):
                setattr(instance, key, value)

        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def _advisory_lock(self, key: str) -> None:
        # Transaction-scoped; released on commit or rollback. File-backed
        # SQLite transactions hold the database write lock from BEGIN.
        if self.session.get_bind().dialect.name != "postgresql":
            return
        await self.session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": key},
        )


# =============================================================================
# Tenant Repositories
# =============================================================================


class OrganizationRepository(BaseRepository[Organization]):
    """Repository for Organization entities."""

    model = Organization

    async def is_write_enabled(self, id: str) -> bool:
        """Read the POS write gate for a tenant (disabled when unknown)."""
        result = await self.session.execute(
            select(Organization.pos_write_enabled).where(Organization.id == id)
        )
        return bool(result.scalar_one_or_none())


class LocationRepository(BaseRepository[Location]):
    """Repository for Location entities."""

    model = Location


class ClientRepository(BaseRepository[Client]):
    """Repository for Client entities."""

    model = Client

    async def set_external_id(self, id: str, external_id: str) -> None:
        await self.session.execute(
            update(Client).where(Client.id == id).values(external_id=external_id)
        )


class StaffMappingRepository(BaseRepository[StaffMapping]):
    """Repository for internal/POS staff identity links."""

    model = StaffMapping

    async def get_external_staff_id(
        self,
        organization_id: str,
        user_id: str,
    ) -> Optional[str]:
        """Resolve an internal staff member to the POS staff id."""
        result = await self.session.execute(
            select(StaffMapping.external_staff_id).where(
                and_(
                    StaffMapping.organization_id == organization_id,
                    StaffMapping.user_id == user_id,
                    StaffMapping.is_active == True,
                )
            )
        )
        return result.scalar_one_or_none()


# =============================================================================
# Appointment Repositories
# =============================================================================


class AppointmentRepository(BaseRepository[Appointment]):
    """Repository for Appointment entities."""

    model = Appointment

    async def lock_resource_day(self, resource_id: str, day: date) -> None:
        """Serialize check-then-write for one staff member's day."""
        await self._advisory_lock(f"appointments:{resource_id}:{day.isoformat()}")

    async def list_active_for_resource_day(
        self,
        resource_id: str,
        day: date,
        exclude_id: Optional[str] = None,
    ) -> List[Appointment]:
        """List non-cancelled appointments for a resource on a date."""
        conditions = [
            Appointment.staff_user_id == resource_id,
            Appointment.appointment_date == day,
            Appointment.status != "cancelled",
        ]
        if exclude_id:
            conditions.append(Appointment.id != exclude_id)

        result = await self.session.execute(
            select(Appointment)
            .where(and_(*conditions))
            .order_by(Appointment.start_time)
        )
        return list(result.scalars().all())

    async def list_by_group(self, group_id: str) -> List[Appointment]:
        """List a recurrence group ordered by index."""
        result = await self.session.execute(
            select(Appointment)
            .where(Appointment.recurrence_group_id == group_id)
            .order_by(Appointment.recurrence_index)
        )
        return list(result.scalars().all())

    async def set_external_id(self, id: str, external_id: str) -> None:
        await self.session.execute(
            update(Appointment)
            .where(Appointment.id == id)
            .values(external_id=external_id)
        )


class ScheduledActionRepository(BaseRepository[ScheduledAction]):
    """Repository for assistant-proposed actions."""

    model = ScheduledAction

    async def list_pending(self, organization_id: str) -> List[ScheduledAction]:
        """List actions still waiting for a human decision."""
        result = await self.session.execute(
            select(ScheduledAction)
            .where(
                and_(
                    ScheduledAction.organization_id == organization_id,
                    ScheduledAction.status == "pending_confirmation",
                )
            )
            .order_by(ScheduledAction.created_at)
        )
        return list(result.scalars().all())

    async def transition(self, id: str, expected_status: str, status: str) -> bool:
        """Change status only if the action is still in ``expected_status``."""
        result = await self.session.execute(
            update(ScheduledAction)
            .where(
                and_(
                    ScheduledAction.id == id,
                    ScheduledAction.status == expected_status,
                )
            )
            .values(status=status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def finish(
        self,
        id: str,
        expected_status: str,
        status: str,
        result_message: Optional[str] = None,
        error_reason: Optional[str] = None,
    ) -> bool:
        """Write a terminal outcome only if the action is still in ``expected_status``."""
        result = await self.session.execute(
            update(ScheduledAction)
            .where(
                and_(
                    ScheduledAction.id == id,
                    ScheduledAction.status == expected_status,
                )
            )
            .values(
                status=status,
                result_message=result_message,
                error_reason=error_reason,
                executed_at=datetime.utcnow(),
                updated_at=datetime.utcnow(),
            )
        )
        return result.rowcount == 1


# =============================================================================
# Day-Rate Repositories
# =============================================================================


class DayRateChairRepository(BaseRepository[DayRateChair]):
    """Repository for rentable chairs."""

    model = DayRateChair

    async def list_active(self, location_id: str) -> List[DayRateChair]:
        """List chairs flagged available, lowest chair number first."""
        result = await self.session.execute(
            select(DayRateChair)
            .where(
                and_(
                    DayRateChair.location_id == location_id,
                    DayRateChair.is_available == True,
                )
            )
            .order_by(DayRateChair.chair_number)
        )
        return list(result.scalars().all())


class DayRateBookingRepository(BaseRepository[DayRateBooking]):
    """Repository for day-rate chair bookings."""

    model = DayRateBooking

    async def lock_location_day(self, location_id: str, day: date) -> None:
        """Serialize capacity re-checks for one location/date."""
        await self._advisory_lock(f"day_rate:{location_id}:{day.isoformat()}")

    async def count_active_by_date(
        self,
        location_id: str,
        start_date: date,
        end_date: date,
    ) -> Dict[date, int]:
        """Count non-cancelled bookings per date in an inclusive range."""
        result = await self.session.execute(
            select(DayRateBooking.booking_date, func.count())
            .where(
                and_(
                    DayRateBooking.location_id == location_id,
                    DayRateBooking.booking_date >= start_date,
                    DayRateBooking.booking_date <= end_date,
                    DayRateBooking.status != "cancelled",
                )
            )
            .group_by(DayRateBooking.booking_date)
        )
        counts: Dict[date, int] = defaultdict(int)
        for booking_date, count in result.all():
            counts[booking_date] = count
        return counts

    async def list_active_for_day(
        self,
        location_id: str,
        day: date,
    ) -> List[DayRateBooking]:
        """List non-cancelled bookings at a location on a date."""
        result = await self.session.execute(
            select(DayRateBooking).where(
                and_(
                    DayRateBooking.location_id == location_id,
                    DayRateBooking.booking_date == day,
                    DayRateBooking.status != "cancelled",
                )
            )
        )
        return list(result.scalars().all())


__all__ = [
    "BaseRepository",
    "OrganizationRepository",
    "LocationRepository",
    "ClientRepository",
    "StaffMappingRepository",
    "AppointmentRepository",
    "ScheduledActionRepository",
    "DayRateChairRepository",
    "DayRateBookingRepository",
]
