"""
Scheduling Service

Unified entry point wiring the conflict checker, action engine, sync gate,
capacity allocator and confirmation workflow over one database.
"""

from dataclasses import dataclass
from datetime import date, time
from typing import Any, Dict, List, Optional

import structlog

from ..config import SchedulingConfig
from ..database.base import DatabaseManager
from ..database.models import Appointment, Client
from ..database.repositories import AppointmentRepository, ClientRepository
from ..integrations.base import PosClient
from ..notifications.base import LoggingNotifier, SchedulingNotifier
from .actions import AppointmentActionEngine
from .base import (
    NotFound,
    RemoteSyncOutcome,
    SchedulingValidationError,
    TimeRange,
    storage_transaction,
)
from .capacity import CapacityAllocator
from .conflicts import ConflictChecker
from .sync import ExternalSyncGate, MutationKind, SyncMutation, WritePolicy
from .workflow import ActionConfirmationWorkflow


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClientCreation:
    """A committed client record and its POS outcome."""

    client: Client
    remote: RemoteSyncOutcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "client": self.client.to_dict(),
            "applied_remotely": self.remote.applied_remotely,
            "remote": self.remote.to_dict(),
        }


class SchedulingService:
    """
    Unified scheduling service.

    Provides:
    - Slot conflict checks
    - Booking, reschedule, cancel and recurring series (``actions``)
    - Day-rate chair capacity (``capacity``)
    - Assistant action confirmation (``workflow``)
    - POS propagation (``sync``)
    """

    def __init__(
        self,
        db: DatabaseManager,
        config: Optional[SchedulingConfig] = None,
        pos_client: Optional[PosClient] = None,
        policy: Optional[WritePolicy] = None,
        notifier: Optional[SchedulingNotifier] = None,
    ):
        self.db = db
        self.config = config or SchedulingConfig()
        self.pos_client = pos_client
        self.notifier = notifier or LoggingNotifier()

        self.sync = ExternalSyncGate(
            db,
            pos_client=pos_client,
            policy=policy,
            notifier=self.notifier,
            timeout_seconds=self.config.remote_timeout_seconds,
            mode=self.config.sync_mode,
        )
        self.actions = AppointmentActionEngine(
            db,
            self.sync,
            notifier=self.notifier,
            max_recurrence_occurrences=self.config.max_recurrence_occurrences,
        )
        self.capacity = CapacityAllocator(db)
        self.workflow = ActionConfirmationWorkflow(db, self.actions, notifier=self.notifier)

    async def find_conflict(
        self,
        staff_user_id: Optional[str],
        day: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: Optional[str] = None,
    ) -> Optional[Appointment]:
        """The booking that would collide with the slot, if any."""
        slot = TimeRange(start_time, end_time)
        async with storage_transaction(self.db) as session:
            return await ConflictChecker(AppointmentRepository(session)).find_conflict(
                staff_user_id,
                day,
                slot.start_time,
                slot.end_time,
                exclude_appointment_id=exclude_appointment_id,
            )

    async def get_appointment(self, appointment_id: str) -> Appointment:
        async with storage_transaction(self.db) as session:
            appointment = await AppointmentRepository(session).get_by_id(appointment_id)
        if appointment is None:
            raise NotFound("Appointment", appointment_id)
        return appointment

    async def list_series(self, group_id: str) -> List[Appointment]:
        async with storage_transaction(self.db) as session:
            return await AppointmentRepository(session).list_by_group(group_id)

    async def create_client(
        self,
        organization_id: str,
        first_name: str,
        last_name: str = "",
        email: Optional[str] = None,
        phone: Optional[str] = None,
        location_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ClientCreation:
        """Create a client locally, then mirror it through the write gate."""
        if not first_name.strip():
            raise SchedulingValidationError("Client first name is required")

        async with storage_transaction(self.db) as session:
            client = await ClientRepository(session).create(
                organization_id=organization_id,
                location_id=location_id,
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                email=email,
                phone=phone,
                notes=notes,
            )

        logger.info("client_created", client_id=client.id, organization_id=organization_id)

        remote = await self.sync.propagate(
            SyncMutation(MutationKind.CREATE_CLIENT, organization_id, client.id)
        )
        return ClientCreation(client=client, remote=remote)

    async def close(self) -> None:
        """Finish background propagation and release the POS client."""
        await self.sync.drain()
        if self.pos_client is not None:
            await self.pos_client.close()


__all__ = ["ClientCreation", "SchedulingService"]
