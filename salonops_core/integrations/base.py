"""
POS Integration Base Types

Interface the scheduling core uses to mirror locally-originated writes into
the external point-of-sale system of record.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, time
from typing import List, Optional

from ..exceptions import (
    PosConflictError,
    PosTransportError,
    PosValidationError,
    RemoteSyncFailure,
)


# =============================================================================
# Payloads
# =============================================================================


@dataclass
class PosAppointment:
    """Appointment fields sent to the POS."""

    branch_id: str
    appointment_date: date
    start_time: time
    client_id: Optional[str] = None
    staff_id: Optional[str] = None
    service_ids: List[str] = field(default_factory=list)
    notes: Optional[str] = None

    @property
    def start_iso(self) -> str:
        return f"{self.appointment_date.isoformat()}T{self.start_time.strftime('%H:%M:%S')}"


@dataclass
class PosClientRecord:
    """Client fields sent to the POS."""

    branch_id: str
    first_name: str
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


# =============================================================================
# Client Interface
# =============================================================================


class PosClient(ABC):
    """
    Abstract external POS client.

    Implementations raise ``PosValidationError`` for rejected payloads,
    ``PosConflictError`` when the POS refuses a slot, and
    ``PosTransportError`` for network faults and unexpected responses.
    """

    PROVIDER_NAME = "pos"

    @abstractmethod
    async def create_appointment(self, appointment: PosAppointment) -> str:
        """Create an appointment and return its external id."""

    @abstractmethod
    async def update_appointment(
        self,
        external_id: str,
        appointment: PosAppointment,
    ) -> None:
        """Move an existing appointment to new time bounds or staff."""

    @abstractmethod
    async def cancel_appointment(self, branch_id: str, external_id: str) -> None:
        """Cancel an existing appointment."""

    @abstractmethod
    async def create_client(self, client: PosClientRecord) -> str:
        """Create a client record and return its external id."""

    async def close(self) -> None:
        """Release any held connections."""


__all__ = [
    "PosAppointment",
    "PosClientRecord",
    "PosClient",
    "RemoteSyncFailure",
    "PosValidationError",
    "PosConflictError",
    "PosTransportError",
]
