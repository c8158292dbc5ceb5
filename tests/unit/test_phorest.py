"""
Unit Tests for the Phorest POS Client

Tests for request shaping and error mapping, with the HTTP session mocked.
"""

import json
from datetime import date, time
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from salonops_core.exceptions import PosConflictError, PosTransportError, PosValidationError
from salonops_core.integrations.base import PosAppointment, PosClientRecord
from salonops_core.integrations.pos import PhorestClient, PhorestConfig


BASE = "https://phorest.test/api"


def make_response(status: int, body="") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.url = f"{BASE}/business/biz-1/branch/branch-001/appointment"
    response.text = AsyncMock(return_value=body if isinstance(body, str) else json.dumps(body))
    return response


def make_client(response: MagicMock) -> PhorestClient:
    session = MagicMock()
    session.closed = False
    session.request.return_value.__aenter__.return_value = response
    config = PhorestConfig(business_id="biz-1", username="api-user", api_key="secret", base_url=BASE)
    return PhorestClient(config, session=session)


@pytest.fixture
def appointment() -> PosAppointment:
    return PosAppointment(
        branch_id="branch-001",
        appointment_date=date(2030, 3, 4),
        start_time=time(9, 30),
        client_id="phx-client-1",
        staff_id="phx-staff-ana",
        service_ids=["svc-cut"],
    )


# =============================================================================
# Config Tests
# =============================================================================


class TestPhorestConfig:
    """Tests for PhorestConfig."""

    def test_auth_username_prefix(self):
        config = PhorestConfig(business_id="b", username="api-user", api_key="k")
        assert config.auth_username == "global/api-user"

    def test_auth_username_already_prefixed(self):
        config = PhorestConfig(business_id="b", username="global/api-user", api_key="k")
        assert config.auth_username == "global/api-user"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PHOREST_BUSINESS_ID", "biz-9")
        monkeypatch.setenv("PHOREST_USERNAME", "ops")
        monkeypatch.setenv("PHOREST_API_KEY", "key")
        monkeypatch.setenv("PHOREST_TIMEOUT_SECONDS", "12")

        config = PhorestConfig.from_env()

        assert config.business_id == "biz-9"
        assert config.timeout_seconds == 12.0


# =============================================================================
# Request Tests
# =============================================================================


class TestPhorestRequests:
    """Tests for request paths and bodies."""

    @pytest.mark.asyncio
    async def test_create_appointment(self, appointment):
        client = make_client(make_response(201, {"appointmentId": "phx-appt-7"}))

        external_id = await client.create_appointment(appointment)

        assert external_id == "phx-appt-7"
        method, url = client._session.request.call_args.args
        assert method == "POST"
        assert url == f"{BASE}/business/biz-1/branch/branch-001/appointment"
        body = client._session.request.call_args.kwargs["json"]
        assert body == {
            "clientId": "phx-client-1",
            "staffId": "phx-staff-ana",
            "startTime": "2030-03-04T09:30:00",
            "services": [{"serviceId": "svc-cut"}],
            "status": "CONFIRMED",
        }

    @pytest.mark.asyncio
    async def test_create_appointment_without_id(self, appointment):
        client = make_client(make_response(200, {"status": "ok"}))

        with pytest.raises(PosTransportError):
            await client.create_appointment(appointment)

    @pytest.mark.asyncio
    async def test_cancel_appointment(self):
        client = make_client(make_response(204))

        await client.cancel_appointment("branch-001", "phx-appt-7")

        method, url = client._session.request.call_args.args
        assert method == "POST"
        assert url.endswith("/branch/branch-001/appointment/phx-appt-7/cancel")

    @pytest.mark.asyncio
    async def test_create_client_drops_empty_fields(self):
        client = make_client(make_response(201, {"clientId": "phx-client-9"}))

        external_id = await client.create_client(
            PosClientRecord(branch_id="branch-001", first_name="Riley", last_name="Chen")
        )

        assert external_id == "phx-client-9"
        assert client._session.request.call_args.kwargs["json"] == {
            "firstName": "Riley",
            "lastName": "Chen",
            "creatingBranchId": "branch-001",
        }

    @pytest.mark.asyncio
    async def test_network_error(self, appointment):
        client = make_client(make_response(200))
        client._session.request.side_effect = aiohttp.ClientConnectionError("reset")

        with pytest.raises(PosTransportError):
            await client.create_appointment(appointment)

    @pytest.mark.asyncio
    async def test_invalid_json(self, appointment):
        client = make_client(make_response(200, "<html>"))

        with pytest.raises(PosTransportError):
            await client.create_appointment(appointment)


# =============================================================================
# Error Mapping Tests
# =============================================================================


class TestPhorestErrors:
    """Tests for mapping Phorest rejections to POS errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,body,error_type",
        [
            (400, {"errorCode": "STAFF_DOUBLE_BOOKED"}, PosConflictError),
            (400, {"errorCode": "BRANCH_CLOSED"}, PosValidationError),
            (409, {"message": "Slot taken"}, PosConflictError),
            (422, {"message": "Bad service"}, PosValidationError),
            (503, "", PosTransportError),
        ],
    )
    async def test_error_mapping(self, appointment, status, body, error_type):
        client = make_client(make_response(status, body))

        with pytest.raises(error_type) as exc_info:
            await client.create_appointment(appointment)

        assert exc_info.value.details["status"] == status

    @pytest.mark.asyncio
    async def test_known_code_message(self, appointment):
        client = make_client(make_response(400, {"errorCode": "STAFF_DOUBLE_BOOKED"}))

        with pytest.raises(PosConflictError) as exc_info:
            await client.update_appointment("phx-appt-7", appointment)

        assert exc_info.value.message == (
            "This time slot is already booked for the selected stylist."
        )
        assert exc_info.value.details["error_code"] == "STAFF_DOUBLE_BOOKED"
