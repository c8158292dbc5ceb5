"""
Day-Rate Capacity Allocator

Finite-pool availability for rentable chairs at a location. Capacity per
date is derived on every query (active chairs minus non-cancelled bookings);
nothing is cached, so a cancellation frees its chair on the next read.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

import structlog

from ..database.base import DatabaseManager
from ..database.models import DayRateBooking, Location
from ..database.repositories import (
    DayRateBookingRepository,
    DayRateChairRepository,
    LocationRepository,
)
from .base import (
    AlreadyCancelled,
    BookableUnitDay,
    CapacityExhausted,
    DateCheck,
    DateNotBookable,
    DayRateBookingStatus,
    NotFound,
    SchedulingValidationError,
    UnavailableReason,
    storage_transaction,
)


logger = structlog.get_logger(__name__)

MAX_RANGE_DAYS = 366


class CapacityAllocator:
    """Availability queries and race-free booking for day-rate chairs."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def availability(
        self,
        location_id: str,
        start_date: date,
        end_date: date,
        today: Optional[date] = None,
    ) -> List[BookableUnitDay]:
        """
        Per-date capacity for an inclusive date range.

        Returns an empty list when the location does not offer day-rate
        booking, which is distinct from a range with zero capacity.

        Raises:
            NotFound: If the location does not exist
            SchedulingValidationError: If the range is inverted or too long
        """
        if end_date < start_date:
            raise SchedulingValidationError("End date must not be before start date")
        if (end_date - start_date).days >= MAX_RANGE_DAYS:
            raise SchedulingValidationError(
                f"Availability ranges are limited to {MAX_RANGE_DAYS} days"
            )
        today = today or date.today()

        async with storage_transaction(self.db) as session:
            location = await self._get_location(LocationRepository(session), location_id)
            if not _offers_day_rate(location):
                return []

            total = len(await DayRateChairRepository(session).list_active(location_id))
            booked = await DayRateBookingRepository(session).count_active_by_date(
                location_id, start_date, end_date
            )

        blackouts = location.blackout_dates
        days = []
        current = start_date
        while current <= end_date:
            days.append(
                BookableUnitDay(
                    date=current,
                    total_units=total,
                    booked_units=booked[current],
                    blackout=current in blackouts,
                    past=current < today,
                )
            )
            current += timedelta(days=1)
        return days

    async def check_date(
        self,
        location_id: str,
        day: date,
        today: Optional[date] = None,
    ) -> DateCheck:
        """Whether ``day`` can be booked, and why not."""
        days = await self.availability(location_id, day, day, today=today)
        if not days:
            return DateCheck(available=False, reason=UnavailableReason.NOT_OFFERED)

        unit_day = days[0]
        return DateCheck(
            available=unit_day.available,
            reason=unit_day.unavailable_reason,
            available_units=unit_day.available_units,
        )

    async def book(
        self,
        location_id: str,
        booking_date: date,
        stylist_name: str,
        stylist_email: str,
        stylist_phone: str,
        license_number: str,
        license_state: str,
        business_name: Optional[str] = None,
        notes: Optional[str] = None,
        amount_paid: Optional[Decimal] = None,
        today: Optional[date] = None,
    ) -> DayRateBooking:
        """
        Book a chair, re-validating capacity inside the insert transaction.

        The lowest-numbered free active chair is assigned.

        Raises:
            NotFound: If the location does not exist
            DateNotBookable: Not offered, blackout, or past date
            CapacityExhausted: Every active chair is taken
        """
        today = today or date.today()

        async with storage_transaction(self.db) as session:
            location = await self._get_location(LocationRepository(session), location_id)
            if not _offers_day_rate(location):
                raise DateNotBookable(
                    "Day-rate booking is not offered at this location",
                    UnavailableReason.NOT_OFFERED.value,
                )
            if booking_date in location.blackout_dates:
                raise DateNotBookable(
                    f"{booking_date.isoformat()} is not available for booking",
                    UnavailableReason.BLACKOUT.value,
                )
            if booking_date < today:
                raise DateNotBookable(
                    f"{booking_date.isoformat()} is in the past",
                    UnavailableReason.PAST.value,
                )

            bookings = DayRateBookingRepository(session)
            await bookings.lock_location_day(location_id, booking_date)

            chairs = await DayRateChairRepository(session).list_active(location_id)
            existing = await bookings.list_active_for_day(location_id, booking_date)
            taken = {b.chair_id for b in existing}
            free = [chair for chair in chairs if chair.id not in taken]

            if len(existing) >= len(chairs) or not free:
                logger.info(
                    "day_rate_capacity_exhausted",
                    location_id=location_id,
                    booking_date=booking_date.isoformat(),
                    total_units=len(chairs),
                )
                raise CapacityExhausted(
                    f"All chairs are booked on {booking_date.isoformat()}",
                    {"location_id": location_id, "date": booking_date.isoformat()},
                )

            chair = free[0]
            if amount_paid is None:
                amount_paid = chair.daily_rate or location.day_rate_default_price

            booking = await bookings.create(
                location_id=location_id,
                chair_id=chair.id,
                booking_date=booking_date,
                status=DayRateBookingStatus.CONFIRMED.value,
                stylist_name=stylist_name,
                stylist_email=stylist_email,
                stylist_phone=stylist_phone,
                license_number=license_number,
                license_state=license_state,
                business_name=business_name,
                amount_paid=amount_paid,
                notes=notes,
            )

        logger.info(
            "day_rate_booked",
            booking_id=booking.id,
            location_id=location_id,
            booking_date=booking_date.isoformat(),
            chair_number=chair.chair_number,
        )
        return booking

    async def cancel_booking(self, booking_id: str) -> DayRateBooking:
        """
        Raises:
            NotFound: If the booking does not exist
            AlreadyCancelled: If it was cancelled before
        """
        async with storage_transaction(self.db) as session:
            booking = await DayRateBookingRepository(session).get_for_update(booking_id)
            if booking is None:
                raise NotFound("DayRateBooking", booking_id)
            if booking.status == DayRateBookingStatus.CANCELLED.value:
                raise AlreadyCancelled("DayRateBooking", booking_id)
            booking.status = DayRateBookingStatus.CANCELLED.value
            await session.flush()

        logger.info("day_rate_booking_cancelled", booking_id=booking_id)
        return booking

    async def _get_location(self, locations: LocationRepository, location_id: str) -> Location:
        location = await locations.get_by_id(location_id)
        if location is None:
            raise NotFound("Location", location_id)
        return location


def _offers_day_rate(location: Location) -> bool:
    return location.is_active and location.day_rate_enabled


__all__ = ["MAX_RANGE_DAYS", "CapacityAllocator"]
