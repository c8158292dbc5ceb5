"""
Database Models

SQLAlchemy ORM models for tenants, locations, clients, appointments,
assistant-proposed actions, and day-rate chair inventory.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# Tenant Models
# =============================================================================


class Organization(Base, TimestampMixin):
    """A tenant (salon business)."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Write gate: mirror locally-originated writes to the POS
    pos_write_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    settings: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    locations = relationship("Location", back_populates="organization")


class Location(Base, TimestampMixin):
    """A salon location."""

    __tablename__ = "locations"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    external_branch_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Day-rate chair rental
    day_rate_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    day_rate_default_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    day_rate_blackout_dates: Mapped[Optional[List[str]]] = mapped_column(JSONType, nullable=True)

    organization = relationship("Organization", back_populates="locations")

    @property
    def blackout_dates(self) -> set:
        return {date.fromisoformat(d) for d in (self.day_rate_blackout_dates or [])}

    __table_args__ = (
        Index("ix_locations_organization_id", "organization_id"),
        Index("ix_locations_external_branch_id", "external_branch_id"),
    )


class StaffMapping(Base, TimestampMixin):
    """Link between an internal staff member and the POS staff identity."""

    __tablename__ = "staff_mappings"

    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    external_staff_id: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_staff_mappings_org_user"),
        Index("ix_staff_mappings_external_staff_id", "external_staff_id"),
    )


class Client(Base, TimestampMixin):
    """A salon client."""

    __tablename__ = "clients"

    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    location_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    __table_args__ = (
        Index("ix_clients_organization_id", "organization_id"),
    )


# =============================================================================
# Appointment Models
# =============================================================================


class Appointment(Base, TimestampMixin):
    """One scheduled service occurrence."""

    __tablename__ = "appointments"

    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    location_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Resource (nullable until a stylist is assigned)
    staff_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    staff_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_staff_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Client
    client_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    client_external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Service
    service_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    service_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_service_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Time
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(String(20), default="booked", nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    total_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Recurrence
    recurrence_rule: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    recurrence_group_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    recurrence_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Set once mirrored to the POS
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appointments_time_order"),
        UniqueConstraint(
            "recurrence_group_id",
            "recurrence_index",
            name="uq_appointments_recurrence_slot",
        ),
        Index("ix_appointments_staff_date", "staff_user_id", "appointment_date"),
        Index("ix_appointments_organization_id", "organization_id"),
        Index("ix_appointments_recurrence_group_id", "recurrence_group_id"),
    )


class ScheduledAction(Base, TimestampMixin):
    """An assistant-proposed scheduling mutation awaiting confirmation."""

    __tablename__ = "scheduled_actions"

    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    requested_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    params: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="pending_confirmation", nullable=False)
    preview: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    # Terminal outcome, kept for audit
    result_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_scheduled_actions_organization_status", "organization_id", "status"),
    )


# =============================================================================
# Day-Rate Models
# =============================================================================


class DayRateChair(Base, TimestampMixin):
    """A rentable chair at a location."""

    __tablename__ = "day_rate_chairs"

    location_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    chair_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    daily_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("location_id", "chair_number", name="uq_day_rate_chairs_number"),
    )


class DayRateBooking(Base, TimestampMixin):
    """A day-rate chair rental by a visiting stylist."""

    __tablename__ = "day_rate_bookings"

    location_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    chair_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("day_rate_chairs.id", ondelete="SET NULL"),
        nullable=True,
    )
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="confirmed", nullable=False)

    # Renter
    stylist_name: Mapped[str] = mapped_column(String(255), nullable=False)
    stylist_email: Mapped[str] = mapped_column(String(255), nullable=False)
    stylist_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    license_number: Mapped[str] = mapped_column(String(100), nullable=False)
    license_state: Mapped[str] = mapped_column(String(20), nullable=False)
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    amount_paid: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_day_rate_bookings_location_date", "location_id", "booking_date"),
    )


__all__ = [
    "JSONType",
    "Organization",
    "Location",
    "StaffMapping",
    "Client",
    "Appointment",
    "ScheduledAction",
    "DayRateChair",
    "DayRateBooking",
]
