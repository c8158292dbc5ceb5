"""
Phorest POS Integration

HTTP client for the Phorest third-party API, used to mirror locally-created
bookings, reschedules, cancellations and new clients into Phorest.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import structlog

from ..base import (
    PosAppointment,
    PosClient,
    PosClientRecord,
    PosConflictError,
    PosTransportError,
    PosValidationError,
)


logger = structlog.get_logger(__name__)


DEFAULT_BASE_URL = "https://platform.phorest.com/third-party-api-server/api"

# Phorest error codes that mean the slot itself was refused
CONFLICT_ERROR_CODES = {
    "STAFF_DOUBLE_BOOKED": "This time slot is already booked for the selected stylist.",
    "CLIENT_ALREADY_BOOKED": "This client already has an appointment at this time.",
}
VALIDATION_ERROR_CODES = {
    "STAFF_UNQUALIFIED": "The selected stylist is not qualified to perform this service.",
    "BRANCH_CLOSED": "The salon is closed at the requested time.",
}


@dataclass
class PhorestConfig:
    """Phorest API credentials."""

    business_id: str
    username: str
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 30.0

    @property
    def auth_username(self) -> str:
        # Phorest expects the global/ prefix on API users
        if self.username.startswith("global/"):
            return self.username
        return f"global/{self.username}"

    @classmethod
    def from_env(cls) -> "PhorestConfig":
        """Load configuration from environment variables."""
        return cls(
            business_id=os.environ["PHOREST_BUSINESS_ID"],
            username=os.environ["PHOREST_USERNAME"],
            api_key=os.environ["PHOREST_API_KEY"],
            base_url=os.getenv("PHOREST_BASE_URL", DEFAULT_BASE_URL),
            timeout_seconds=float(os.getenv("PHOREST_TIMEOUT_SECONDS", "30")),
        )


class PhorestClient(PosClient):
    """Phorest implementation of the POS client."""

    PROVIDER_NAME = "phorest"

    def __init__(
        self,
        config: PhorestConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
                auth=aiohttp.BasicAuth(self.config.auth_username, self.config.api_key),
                headers={"Accept": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated request against the business.

        Raises:
            PosConflictError: Phorest refused the slot
            PosValidationError: Phorest rejected the payload
            PosTransportError: Network fault or unexpected response
        """
        session = await self._get_session()
        url = f"{self.config.base_url}/business/{self.config.business_id}{endpoint}"

        try:
            async with session.request(method, url, json=json_data) as response:
                if response.status >= 400:
                    await self._raise_for_error(response)
                if response.status == 204:
                    return {}
                body = await response.text()
        except aiohttp.ClientError as e:
            raise PosTransportError(f"Phorest network error: {e}") from e

        if not body:
            return {}
        try:
            return _parse_json(body)
        except ValueError as e:
            raise PosTransportError(f"Phorest returned invalid JSON: {e}") from e

    async def _raise_for_error(self, response: aiohttp.ClientResponse) -> None:
        text = await response.text()
        logger.warning(
            "phorest_request_rejected",
            status=response.status,
            url=str(response.url),
            body=text[:500],
        )

        try:
            payload = _parse_json(text) if text else {}
        except ValueError:
            payload = {}

        error_code = payload.get("errorCode") or payload.get("code")
        details = {"status": response.status, "error_code": error_code}

        if error_code in CONFLICT_ERROR_CODES:
            raise PosConflictError(CONFLICT_ERROR_CODES[error_code], details)
        if error_code in VALIDATION_ERROR_CODES:
            raise PosValidationError(VALIDATION_ERROR_CODES[error_code], details)

        message = payload.get("message") or f"Phorest API error: {response.status}"
        if response.status == 409:
            raise PosConflictError(message, details)
        if 400 <= response.status < 500:
            raise PosValidationError(message, details)
        raise PosTransportError(message, details)

    # =========================================================================
    # Appointments
    # =========================================================================

    def _appointment_body(self, appointment: PosAppointment) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "clientId": appointment.client_id,
            "staffId": appointment.staff_id,
            "startTime": appointment.start_iso,
            "services": [{"serviceId": sid} for sid in appointment.service_ids],
            "status": "CONFIRMED",
        }
        if appointment.notes:
            body["notes"] = appointment.notes
        return body

    async def create_appointment(self, appointment: PosAppointment) -> str:
        data = await self._request(
            "POST",
            f"/branch/{appointment.branch_id}/appointment",
            self._appointment_body(appointment),
        )
        external_id = data.get("appointmentId") or data.get("id")
        if not external_id:
            raise PosTransportError("Phorest response did not include an appointment id")

        logger.info(
            "phorest_appointment_created",
            branch_id=appointment.branch_id,
            external_id=external_id,
        )
        return str(external_id)

    async def update_appointment(
        self,
        external_id: str,
        appointment: PosAppointment,
    ) -> None:
        await self._request(
            "PUT",
            f"/branch/{appointment.branch_id}/appointment/{external_id}",
            self._appointment_body(appointment),
        )
        logger.info("phorest_appointment_updated", external_id=external_id)

    async def cancel_appointment(self, branch_id: str, external_id: str) -> None:
        await self._request(
            "POST",
            f"/branch/{branch_id}/appointment/{external_id}/cancel",
        )
        logger.info("phorest_appointment_cancelled", external_id=external_id)

    # =========================================================================
    # Clients
    # =========================================================================

    async def create_client(self, client: PosClientRecord) -> str:
        body = {
            "firstName": client.first_name,
            "lastName": client.last_name,
            "email": client.email,
            "mobile": client.phone,
            "notes": client.notes,
            "creatingBranchId": client.branch_id,
        }
        data = await self._request(
            "POST",
            "/client",
            {k: v for k, v in body.items() if v is not None},
        )
        external_id = data.get("clientId") or data.get("id")
        if not external_id:
            raise PosTransportError("Phorest response did not include a client id")
        return str(external_id)


def _parse_json(text: str) -> Dict[str, Any]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


__all__ = [
    "DEFAULT_BASE_URL",
    "PhorestConfig",
    "PhorestClient",
]
