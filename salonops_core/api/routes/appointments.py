"""
Appointment API Routes

This module provides REST API endpoints for booking, moving and
cancelling appointments, and for recurring series.
"""

from datetime import date, time
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from ...scheduling.base import NotFound, RecurrenceFrequency
from ...scheduling.service import SchedulingService
from ..base import success_response
from ..dependencies import get_organization_id, get_scheduling_service


router = APIRouter(prefix="/appointments", tags=["Appointments"])


# =============================================================================
# Request/Response Models
# =============================================================================


class RecurrenceRuleRequest(BaseModel):
    """Recurring series definition."""

    frequency: RecurrenceFrequency = Field(..., description="Series cadence")
    occurrences: int = Field(..., description="Total appointments including the first")

    def to_rule_dict(self) -> dict:
        return {"frequency": self.frequency.value, "occurrences": self.occurrences}


class AppointmentCreateRequest(BaseModel):
    """Request to book an appointment."""

    appointment_date: date = Field(..., description="Calendar date of the visit")
    start_time: time = Field(..., description="Local start time")
    end_time: time = Field(..., description="Local end time")
    staff_user_id: Optional[str] = Field(default=None, description="Stylist performing the service")
    staff_name: Optional[str] = Field(default=None, description="Stylist display name")
    location_id: Optional[str] = Field(default=None, description="Salon location")
    client_id: Optional[str] = Field(default=None, description="Existing client record")
    client_name: Optional[str] = Field(default=None, description="Client display name")
    client_phone: Optional[str] = Field(default=None, description="Client phone number")
    service_id: Optional[str] = Field(default=None, description="Service catalogue id")
    service_name: Optional[str] = Field(default=None, description="Service display name")
    external_service_id: Optional[str] = Field(default=None, description="POS service id")
    total_price: Optional[Decimal] = Field(default=None, description="Quoted price")
    notes: Optional[str] = Field(default=None, description="Free-form notes")
    recurrence_rule: Optional[RecurrenceRuleRequest] = Field(
        default=None,
        description="Book a recurring series anchored on this appointment",
    )


class RescheduleRequest(BaseModel):
    """Request to move an appointment."""

    new_date: date = Field(..., description="Destination date")
    new_time: time = Field(..., description="Destination start time")
    staff_user_id: Optional[str] = Field(default=None, description="Move to another stylist")


class CancelRequest(BaseModel):
    """Request to cancel an appointment."""

    reason: str = Field(default="", description="Cancellation reason")


# =============================================================================
# Helper Functions
# =============================================================================


async def _get_for_tenant(
    service: SchedulingService,
    appointment_id: str,
    organization_id: str,
):
    appointment = await service.get_appointment(appointment_id)
    if appointment.organization_id != organization_id:
        raise NotFound("Appointment", appointment_id)
    return appointment


# =============================================================================
# Routes
# =============================================================================


@router.post(
    "",
    status_code=201,
    summary="Book Appointment",
    description="Book an appointment, optionally as the first of a recurring series.",
)
async def create_appointment(
    request: AppointmentCreateRequest,
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Book an appointment and mirror it to the POS."""
    outcome = await service.actions.create_booking(
        organization_id=organization_id,
        appointment_date=request.appointment_date,
        start_time=request.start_time,
        end_time=request.end_time,
        staff_user_id=request.staff_user_id,
        staff_name=request.staff_name,
        location_id=request.location_id,
        client_id=request.client_id,
        client_name=request.client_name,
        client_phone=request.client_phone,
        service_id=request.service_id,
        service_name=request.service_name,
        external_service_id=request.external_service_id,
        total_price=request.total_price,
        notes=request.notes,
        recurrence_rule=(
            request.recurrence_rule.to_rule_dict() if request.recurrence_rule else None
        ),
    )
    return success_response(outcome.to_dict())


@router.get(
    "/conflicts",
    summary="Check Slot",
    description="Report the booking that would collide with a slot, if any.",
)
async def check_conflict(
    staff_user_id: str = Query(..., description="Stylist to check"),
    day: date = Query(..., alias="date", description="Date to check"),
    start_time: time = Query(...),
    end_time: time = Query(...),
    exclude_appointment_id: Optional[str] = Query(None),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Check a slot for conflicts."""
    conflict = await service.find_conflict(
        staff_user_id,
        day,
        start_time,
        end_time,
        exclude_appointment_id=exclude_appointment_id,
    )
    return success_response({
        "has_conflict": conflict is not None,
        "conflicting_appointment_id": conflict.id if conflict else None,
    })


@router.get(
    "/{appointment_id}",
    summary="Get Appointment",
)
async def get_appointment(
    appointment_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Get appointment by ID."""
    appointment = await _get_for_tenant(service, appointment_id, organization_id)
    return success_response(appointment.to_dict())


@router.post(
    "/{appointment_id}/reschedule",
    summary="Reschedule Appointment",
    description="Move an appointment to a new date and start time, keeping its duration.",
)
async def reschedule_appointment(
    request: RescheduleRequest,
    appointment_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Reschedule an appointment."""
    outcome = await service.actions.reschedule(
        appointment_id,
        request.new_date,
        request.new_time,
        new_resource_id=request.staff_user_id,
        organization_id=organization_id,
    )
    return success_response(outcome.to_dict())


@router.post(
    "/{appointment_id}/cancel",
    summary="Cancel Appointment",
)
async def cancel_appointment(
    request: Optional[CancelRequest] = None,
    appointment_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Cancel an appointment."""
    outcome = await service.actions.cancel(
        appointment_id,
        reason=request.reason if request else "",
        organization_id=organization_id,
    )
    return success_response(outcome.to_dict())


@router.post(
    "/{appointment_id}/recurrence",
    status_code=201,
    summary="Expand Recurring Series",
    description="Turn an existing appointment into the anchor of a recurring series.",
)
async def expand_recurrence(
    request: RecurrenceRuleRequest,
    appointment_id: str = Path(...),
    organization_id: str = Depends(get_organization_id),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Expand an appointment into a recurring series."""
    await _get_for_tenant(service, appointment_id, organization_id)
    outcome = await service.actions.expand_recurrence(appointment_id, request.to_rule_dict())
    return success_response(outcome.to_dict())
