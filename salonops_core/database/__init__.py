"""
Database Module

SQLAlchemy async models, session management and typed repositories.
"""

from .base import (
    Base,
    DatabaseManager,
    TimestampMixin,
    close_database,
    get_database,
    init_database,
)
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
from .repositories import (
    AppointmentRepository,
    BaseRepository,
    ClientRepository,
    DayRateBookingRepository,
    DayRateChairRepository,
    LocationRepository,
    OrganizationRepository,
    ScheduledActionRepository,
    StaffMappingRepository,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "DatabaseManager",
    "get_database",
    "init_database",
    "close_database",
    "Organization",
    "Location",
    "StaffMapping",
    "Client",
    "Appointment",
    "ScheduledAction",
    "DayRateChair",
    "DayRateBooking",
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
