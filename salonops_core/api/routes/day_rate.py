"""
Day-Rate API Routes

This module provides REST API endpoints for day-rate chair availability
and bookings by visiting stylists.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from ...scheduling.service import SchedulingService
from ..base import success_response
from ..dependencies import get_scheduling_service


router = APIRouter(prefix="/day-rate", tags=["Day Rate"])


# =============================================================================
# Request/Response Models
# =============================================================================


class DayRateBookingRequest(BaseModel):
    """Request to rent a chair for a day."""

    booking_date: date = Field(..., description="Date of the rental")
    stylist_name: str = Field(..., min_length=1, description="Renting stylist")
    stylist_email: str = Field(..., description="Contact email")
    stylist_phone: str = Field(..., description="Contact phone")
    license_number: str = Field(..., description="Cosmetology license number")
    license_state: str = Field(..., description="Issuing state")
    business_name: Optional[str] = Field(default=None, description="Stylist's business")
    notes: Optional[str] = Field(default=None, description="Free-form notes")
    amount_paid: Optional[Decimal] = Field(default=None, description="Override the chair rate")


# =============================================================================
# Routes
# =============================================================================


@router.get(
    "/{location_id}/availability",
    summary="Chair Availability",
    description="Per-date chair capacity for an inclusive date range.",
)
async def get_availability(
    location_id: str = Path(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """List per-date availability. Empty when the location does not rent chairs."""
    days = await service.capacity.availability(location_id, start_date, end_date)
    return success_response(
        [day.to_dict() for day in days],
        meta={"day_rate_offered": bool(days)},
    )


@router.get(
    "/{location_id}/check",
    summary="Check Date",
)
async def check_date(
    location_id: str = Path(...),
    day: date = Query(..., alias="date"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Check whether a single date can be booked."""
    check = await service.capacity.check_date(location_id, day)
    return success_response(check.to_dict())


@router.post(
    "/{location_id}/bookings",
    status_code=201,
    summary="Book Chair",
)
async def create_booking(
    request: DayRateBookingRequest,
    location_id: str = Path(...),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Book a chair on a date, assigning the lowest free chair."""
    booking = await service.capacity.book(
        location_id,
        request.booking_date,
        stylist_name=request.stylist_name,
        stylist_email=request.stylist_email,
        stylist_phone=request.stylist_phone,
        license_number=request.license_number,
        license_state=request.license_state,
        business_name=request.business_name,
        notes=request.notes,
        amount_paid=request.amount_paid,
    )
    return success_response(booking.to_dict())


@router.post(
    "/bookings/{booking_id}/cancel",
    summary="Cancel Chair Booking",
)
async def cancel_booking(
    booking_id: str = Path(...),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Cancel a day-rate booking, releasing its chair."""
    booking = await service.capacity.cancel_booking(booking_id)
    return success_response(booking.to_dict())
