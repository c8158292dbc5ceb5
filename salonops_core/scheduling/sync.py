"""
External Sync Gate

Decides, per tenant, whether a committed local mutation is mirrored to the
external POS, and runs that remote write with a bounded timeout. Local state
is always authoritative: remote failures are logged, reported to the
notifier, and returned as a ``RemoteSyncOutcome``. They are never raised.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import SyncMode
from ..database.base import DatabaseManager
from ..database.repositories import (
    AppointmentRepository,
    ClientRepository,
    LocationRepository,
    OrganizationRepository,
    StaffMappingRepository,
)
from ..integrations.base import PosAppointment, PosClient, PosClientRecord
from ..notifications.base import (
    EventSeverity,
    LoggingNotifier,
    SchedulingEvent,
    SchedulingEventType,
    SchedulingNotifier,
)
from .base import AppointmentStatus, RemoteSyncFailure, RemoteSyncOutcome, SyncStatus


logger = structlog.get_logger(__name__)


# =============================================================================
# Mutations
# =============================================================================


class MutationKind(str, Enum):
    """Locally-originated writes that may be mirrored outward."""

    CREATE_APPOINTMENT = "create_appointment"
    RESCHEDULE = "reschedule"
    STATUS_CHANGE = "status_change"
    CREATE_CLIENT = "create_client"


@dataclass(frozen=True)
class SyncMutation:
    """A committed local change, identified by the record it touched."""

    kind: MutationKind
    organization_id: str
    subject_id: str  # Appointment id, or client id for CREATE_CLIENT


# =============================================================================
# Policy and Staff Mapping
# =============================================================================


class WritePolicy(ABC):
    """Per-tenant write gate."""

    @abstractmethod
    async def is_write_enabled(self, organization_id: str) -> bool:
        """Whether locally-originated writes are pushed to the POS."""


class DatabaseWritePolicy(WritePolicy):
    """Reads ``Organization.pos_write_enabled``; unknown tenants are disabled."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def is_write_enabled(self, organization_id: str) -> bool:
        async with self.db.session() as session:
            return await OrganizationRepository(session).is_write_enabled(organization_id)


class StaticWritePolicy(WritePolicy):
    """Same answer for every tenant."""

    def __init__(self, enabled: bool):
        self.enabled = enabled

    async def is_write_enabled(self, organization_id: str) -> bool:
        return self.enabled


class StaffMapper:
    """Resolves internal staff identities to POS staff ids."""

    def __init__(self, mappings: StaffMappingRepository):
        self.mappings = mappings

    async def to_external(self, organization_id: str, user_id: Optional[str]) -> Optional[str]:
        if user_id is None:
            return None
        return await self.mappings.get_external_staff_id(organization_id, user_id)


# =============================================================================
# Gate
# =============================================================================


@dataclass
class _RemoteCall:
    """A prepared remote write, built before any network I/O."""

    invoke: Callable[[], Awaitable[Optional[str]]]
    write_back: Optional[Callable[[AsyncSession, str], Awaitable[None]]] = None
    warnings: List[str] = field(default_factory=list)


class ExternalSyncGate:
    """
    Mirrors committed mutations to the POS, best effort.

    In ``SyncMode.INLINE`` the caller awaits the bounded remote call and gets
    its outcome. In ``SyncMode.BACKGROUND`` the call runs as a task and the
    outcome is ``pending``; use ``drain()`` to wait for outstanding tasks.
    """

    def __init__(
        self,
        db: DatabaseManager,
        pos_client: Optional[PosClient] = None,
        policy: Optional[WritePolicy] = None,
        notifier: Optional[SchedulingNotifier] = None,
        timeout_seconds: float = 10.0,
        mode: SyncMode = SyncMode.INLINE,
    ):
        self.db = db
        self.pos_client = pos_client
        self.policy = policy or DatabaseWritePolicy(db)
        self.notifier = notifier or LoggingNotifier()
        self.timeout_seconds = timeout_seconds
        self.mode = mode
        self._tasks: Set[asyncio.Task] = set()

    async def propagate(self, mutation: SyncMutation) -> RemoteSyncOutcome:
        """Decide on and run outward propagation. Never raises."""
        log = logger.bind(
            kind=mutation.kind.value,
            organization_id=mutation.organization_id,
            subject_id=mutation.subject_id,
        )

        try:
            enabled = await self.policy.is_write_enabled(mutation.organization_id)
        except Exception as e:
            log.error("sync_policy_unavailable", error=str(e))
            return RemoteSyncOutcome(SyncStatus.FAILED, error=f"Write policy unavailable: {e}")

        if not enabled:
            log.debug("sync_disabled")
            return RemoteSyncOutcome(SyncStatus.DISABLED)

        if self.pos_client is None:
            log.warning("sync_skipped", reason="no POS client configured")
            return RemoteSyncOutcome(SyncStatus.SKIPPED, error="No POS client configured")

        try:
            prepared = await self._prepare(mutation)
        except Exception as e:
            log.error("sync_prepare_failed", error=str(e))
            return RemoteSyncOutcome(SyncStatus.FAILED, error=str(e))

        if isinstance(prepared, RemoteSyncOutcome):
            log.info("sync_skipped", reason=prepared.error)
            return prepared

        if self.mode == SyncMode.BACKGROUND:
            task = asyncio.create_task(self._run(mutation, prepared))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return RemoteSyncOutcome(SyncStatus.PENDING, warnings=tuple(prepared.warnings))

        return await self._run(mutation, prepared)

    async def drain(self) -> None:
        """Wait for background propagation tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, mutation: SyncMutation, call: _RemoteCall) -> RemoteSyncOutcome:
        log = logger.bind(
            kind=mutation.kind.value,
            organization_id=mutation.organization_id,
            subject_id=mutation.subject_id,
        )
        warnings = tuple(call.warnings)

        try:
            external_id = await asyncio.wait_for(call.invoke(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            message = f"POS did not respond within {self.timeout_seconds}s"
            log.warning("sync_timed_out", timeout_seconds=self.timeout_seconds)
            await self._report(mutation, SchedulingEventType.REMOTE_SYNC_TIMED_OUT, message)
            return RemoteSyncOutcome(SyncStatus.TIMED_OUT, error=message, warnings=warnings)
        except RemoteSyncFailure as e:
            log.warning("sync_failed", error_code=e.code, error=e.message)
            await self._report(mutation, SchedulingEventType.REMOTE_SYNC_FAILED, e.message)
            return RemoteSyncOutcome(SyncStatus.FAILED, error=e.message, warnings=warnings)
        except Exception as e:
            log.exception("sync_failed_unexpectedly")
            await self._report(mutation, SchedulingEventType.REMOTE_SYNC_FAILED, str(e))
            return RemoteSyncOutcome(SyncStatus.FAILED, error=str(e), warnings=warnings)

        if external_id and call.write_back is not None:
            try:
                async with self.db.session() as session:
                    await call.write_back(session, external_id)
            except Exception as e:
                log.error("sync_write_back_failed", external_id=external_id, error=str(e))
                warnings += (f"Stored POS id {external_id} could not be saved locally: {e}",)

        log.info("sync_applied", external_id=external_id)
        return RemoteSyncOutcome(SyncStatus.APPLIED, external_id=external_id, warnings=warnings)

    async def _report(
        self,
        mutation: SyncMutation,
        event_type: SchedulingEventType,
        message: str,
    ) -> None:
        try:
            await self.notifier.notify(
                SchedulingEvent(
                    type=event_type,
                    organization_id=mutation.organization_id,
                    subject_id=mutation.subject_id,
                    message=message,
                    severity=EventSeverity.ALERT,
                    details={"kind": mutation.kind.value},
                )
            )
        except Exception as e:
            logger.error("sync_notify_failed", error=str(e))

    # =========================================================================
    # Preparation
    # =========================================================================

    async def _prepare(self, mutation: SyncMutation) -> Union[_RemoteCall, RemoteSyncOutcome]:
        """Read what the remote call needs in a short, separate session."""
        async with self.db.session() as session:
            if mutation.kind == MutationKind.CREATE_CLIENT:
                return await self._prepare_client(session, mutation)
            return await self._prepare_appointment(session, mutation)

    async def _prepare_appointment(
        self,
        session: AsyncSession,
        mutation: SyncMutation,
    ) -> Union[_RemoteCall, RemoteSyncOutcome]:
        pos = self.pos_client
        appointment = await AppointmentRepository(session).get_by_id(mutation.subject_id)
        if appointment is None:
            return _skipped(f"Appointment {mutation.subject_id} no longer exists")

        location = (
            await LocationRepository(session).get_by_id(appointment.location_id)
            if appointment.location_id
            else None
        )
        if location is None or not location.external_branch_id:
            return _skipped("Location is not linked to a POS branch")
        branch_id = location.external_branch_id

        if mutation.kind == MutationKind.STATUS_CHANGE:
            if not appointment.external_id:
                return _skipped("Appointment was never mirrored to the POS")
            if appointment.status != AppointmentStatus.CANCELLED.value:
                return _skipped(f"Status {appointment.status} is not mirrored")
            external_id = appointment.external_id
            return _RemoteCall(invoke=lambda: _none(pos.cancel_appointment(branch_id, external_id)))

        if mutation.kind == MutationKind.CREATE_APPOINTMENT and appointment.external_id:
            return _skipped("Appointment is already mirrored to the POS")
        if mutation.kind == MutationKind.RESCHEDULE and not appointment.external_id:
            return _skipped("Appointment was never mirrored to the POS")

        warnings: List[str] = []
        staff_id = appointment.external_staff_id
        if appointment.staff_user_id is not None:
            mapped = await StaffMapper(StaffMappingRepository(session)).to_external(
                appointment.organization_id, appointment.staff_user_id
            )
            if mapped is not None:
                staff_id = mapped
            else:
                warnings.append(
                    f"No POS staff mapping for staff {appointment.staff_user_id}; "
                    f"kept POS staff id {staff_id or 'unset'}"
                )
                logger.warning(
                    "staff_mapping_missing",
                    appointment_id=appointment.id,
                    staff_user_id=appointment.staff_user_id,
                    kept_external_staff_id=staff_id,
                )

        payload = PosAppointment(
            branch_id=branch_id,
            appointment_date=appointment.appointment_date,
            start_time=appointment.start_time,
            client_id=appointment.client_external_id,
            staff_id=staff_id,
            service_ids=[appointment.external_service_id] if appointment.external_service_id else [],
            notes=appointment.notes,
        )
        appointment_id = appointment.id

        if mutation.kind == MutationKind.RESCHEDULE:
            external_id = appointment.external_id

            async def store_staff(session: AsyncSession, _: str) -> None:
                await AppointmentRepository(session).update(
                    appointment_id, external_staff_id=staff_id
                )

            async def invoke_update() -> Optional[str]:
                await pos.update_appointment(external_id, payload)
                return external_id

            return _RemoteCall(invoke=invoke_update, write_back=store_staff, warnings=warnings)

        async def store_id(session: AsyncSession, external_id: str) -> None:
            await AppointmentRepository(session).set_external_id(appointment_id, external_id)

        return _RemoteCall(
            invoke=lambda: pos.create_appointment(payload),
            write_back=store_id,
            warnings=warnings,
        )

    async def _prepare_client(
        self,
        session: AsyncSession,
        mutation: SyncMutation,
    ) -> Union[_RemoteCall, RemoteSyncOutcome]:
        pos = self.pos_client
        client = await ClientRepository(session).get_by_id(mutation.subject_id)
        if client is None:
            return _skipped(f"Client {mutation.subject_id} no longer exists")
        if client.external_id:
            return _skipped("Client is already mirrored to the POS")

        location = (
            await LocationRepository(session).get_by_id(client.location_id)
            if client.location_id
            else None
        )
        if location is None or not location.external_branch_id:
            return _skipped("Location is not linked to a POS branch")

        record = PosClientRecord(
            branch_id=location.external_branch_id,
            first_name=client.first_name,
            last_name=client.last_name,
            email=client.email,
            phone=client.phone,
            notes=client.notes,
        )
        client_id = client.id

        async def store_id(session: AsyncSession, external_id: str) -> None:
            await ClientRepository(session).set_external_id(client_id, external_id)

        return _RemoteCall(invoke=lambda: pos.create_client(record), write_back=store_id)


def _skipped(reason: str) -> RemoteSyncOutcome:
    return RemoteSyncOutcome(SyncStatus.SKIPPED, error=reason)


async def _none(awaitable: Awaitable[None]) -> Optional[str]:
    await awaitable
    return None


__all__ = [
    "MutationKind",
    "SyncMutation",
    "WritePolicy",
    "DatabaseWritePolicy",
    "StaticWritePolicy",
    "StaffMapper",
    "ExternalSyncGate",
]
