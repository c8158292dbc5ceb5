"""
Unit Tests for Day-Rate Capacity

Tests for derived chair availability and booking against a finite pool.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from salonops_core.database import DayRateChairRepository, LocationRepository
from salonops_core.scheduling import (
    AlreadyCancelled,
    CapacityExhausted,
    DateNotBookable,
    DayRateBookingStatus,
    NotFound,
    SchedulingValidationError,
    UnavailableReason,
)

from tests.conftest import blackout_date, future_date, stylist_details


async def book_chair(service, location, day, name="Casey Rivera", **kwargs):
    return await service.capacity.book(location.id, day, **stylist_details(name), **kwargs)


# =============================================================================
# Availability Tests
# =============================================================================


class TestAvailability:
    """Tests for per-date capacity queries."""

    @pytest.mark.asyncio
    async def test_capacity_is_derived_from_bookings(self, service, location):
        """Test that two bookings on three chairs leave one free."""
        day = future_date()
        await book_chair(service, location, day, "Casey Rivera")
        second = await book_chair(service, location, day, "Morgan Diaz")

        [unit_day] = await service.capacity.availability(location.id, day, day)
        assert unit_day.total_units == 3
        assert unit_day.booked_units == 2
        assert unit_day.available_units == 1
        assert unit_day.available is True

        await service.capacity.cancel_booking(second.id)

        [unit_day] = await service.capacity.availability(location.id, day, day)
        assert unit_day.available_units == 2

    @pytest.mark.asyncio
    async def test_range_covers_every_date(self, service, location):
        start = future_date()
        days = await service.capacity.availability(location.id, start, start + timedelta(days=6))

        assert [d.date for d in days] == [start + timedelta(days=i) for i in range(7)]
        assert all(d.available_units == 3 for d in days)

    @pytest.mark.asyncio
    async def test_blackout_with_free_chairs_is_unavailable(self, service, location):
        """Test that a blackout date is never available, even with free chairs."""
        day = blackout_date()

        [unit_day] = await service.capacity.availability(location.id, day, day)

        assert unit_day.available_units == 3
        assert unit_day.blackout is True
        assert unit_day.available is False
        assert unit_day.unavailable_reason == UnavailableReason.BLACKOUT

    @pytest.mark.asyncio
    async def test_past_date_is_unavailable(self, service, location):
        day = future_date()

        check = await service.capacity.check_date(
            location.id, day, today=day + timedelta(days=1)
        )

        assert check.available is False
        assert check.reason == UnavailableReason.PAST

    @pytest.mark.asyncio
    async def test_not_offered_is_empty(self, db, service, location):
        """Test that a location without day-rate booking returns no dates."""
        async with db.session() as session:
            await LocationRepository(session).update(location.id, day_rate_enabled=False)

        day = future_date()
        assert await service.capacity.availability(location.id, day, day) == []

        check = await service.capacity.check_date(location.id, day)
        assert check.available is False
        assert check.reason == UnavailableReason.NOT_OFFERED
        assert check.to_dict()["reason"] == "not_offered"

    @pytest.mark.asyncio
    async def test_inverted_range(self, service, location):
        day = future_date()
        with pytest.raises(SchedulingValidationError):
            await service.capacity.availability(location.id, day, day - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_unknown_location(self, service):
        day = future_date()
        with pytest.raises(NotFound):
            await service.capacity.availability("missing", day, day)


# =============================================================================
# Booking Tests
# =============================================================================


class TestBooking:
    """Tests for reserving chairs."""

    @pytest.mark.asyncio
    async def test_assigns_lowest_free_chair(self, db, service, location):
        """Test chair assignment order and the default price."""
        day = future_date()

        first = await book_chair(service, location, day, "Casey Rivera")
        second = await book_chair(service, location, day, "Morgan Diaz")

        async with db.session() as session:
            chairs = DayRateChairRepository(session)
            assert (await chairs.get_by_id(first.chair_id)).chair_number == 1
            assert (await chairs.get_by_id(second.chair_id)).chair_number == 2

        assert first.status == DayRateBookingStatus.CONFIRMED.value
        assert first.amount_paid == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_explicit_amount(self, service, location):
        booking = await book_chair(service, location, future_date(), amount_paid=Decimal("120.00"))
        assert booking.amount_paid == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_full_capacity(self, service, location):
        """Test that booking beyond the pool raises and stores nothing."""
        day = future_date()
        for name in ("Casey Rivera", "Morgan Diaz", "Avery Stone"):
            await book_chair(service, location, day, name)

        with pytest.raises(CapacityExhausted):
            await book_chair(service, location, day, "Quinn Hale")

        [unit_day] = await service.capacity.availability(location.id, day, day)
        assert unit_day.booked_units == 3
        assert unit_day.unavailable_reason == UnavailableReason.FULLY_BOOKED

    @pytest.mark.asyncio
    async def test_cancelled_booking_frees_chair(self, service, location):
        day = future_date()
        bookings = [
            await book_chair(service, location, day, name)
            for name in ("Casey Rivera", "Morgan Diaz", "Avery Stone")
        ]

        await service.capacity.cancel_booking(bookings[0].id)
        replacement = await book_chair(service, location, day, "Quinn Hale")

        assert replacement.chair_id == bookings[0].chair_id

    @pytest.mark.asyncio
    async def test_blackout_date(self, service, location):
        with pytest.raises(DateNotBookable) as exc_info:
            await book_chair(service, location, blackout_date())

        assert exc_info.value.reason == UnavailableReason.BLACKOUT.value

    @pytest.mark.asyncio
    async def test_past_date(self, service, location):
        day = future_date()
        with pytest.raises(DateNotBookable) as exc_info:
            await book_chair(service, location, day, today=day + timedelta(days=1))

        assert exc_info.value.reason == UnavailableReason.PAST.value

    @pytest.mark.asyncio
    async def test_not_offered(self, db, service, location):
        async with db.session() as session:
            await LocationRepository(session).update(location.id, day_rate_enabled=False)

        with pytest.raises(DateNotBookable) as exc_info:
            await book_chair(service, location, future_date())

        assert exc_info.value.reason == UnavailableReason.NOT_OFFERED.value


# =============================================================================
# Cancellation Tests
# =============================================================================


class TestCancelBooking:
    """Tests for cancelling day-rate bookings."""

    @pytest.mark.asyncio
    async def test_cancel_twice(self, service, location):
        booking = await book_chair(service, location, future_date())

        cancelled = await service.capacity.cancel_booking(booking.id)
        assert cancelled.status == DayRateBookingStatus.CANCELLED.value

        with pytest.raises(AlreadyCancelled):
            await service.capacity.cancel_booking(booking.id)

    @pytest.mark.asyncio
    async def test_cancel_missing(self, service):
        with pytest.raises(NotFound):
            await service.capacity.cancel_booking("missing")
