import httpx
import pytest
import respx
from conftest import BASE
from medapp_portal.client import ApiClient
from medapp_portal.errors import (
    AuthenticationExpired,
    NetworkFailure,
    PatientLinkageMissing,
    RequestTimeout,
    ResourceNotFound,
    ServerFault,
    SlotUnavailable,
    ValidationRejected,
)
from medapp_portal.session import SessionStore


@pytest.mark.asyncio
async def test_bearer_token_attached(api):
    with respx.mock(base_url=BASE) as m:
        route = m.get("/doctor/specializations").respond(200, json={"specializations": ["Kardiologia"]})

        res = await api.get("/doctor/specializations")
        assert res == {"specializations": ["Kardiologia"]}
        assert route.calls.last.request.headers["Authorization"] == "Bearer tok-123"


@pytest.mark.asyncio
async def test_no_authorization_header_without_token():
    async with ApiClient(base_url=BASE, session_store=SessionStore()) as api:
        with respx.mock(base_url=BASE) as m:
            route = m.post("/auth/login").respond(200, json={"token": "t"})

            await api.post("/auth/login", {"email": "a@b.pl", "password": "secret1"})
            assert "Authorization" not in route.calls.last.request.headers


@pytest.mark.asyncio
async def test_token_read_at_every_request(api, store):
    with respx.mock(base_url=BASE) as m:
        route = m.get("/auth/me").respond(200, json={"user": {"id": 15}})

        await api.get("/auth/me")
        store.clear()
        await api.get("/auth/me")
        assert "Authorization" in route.calls[0].request.headers
        assert "Authorization" not in route.calls[1].request.headers


@pytest.mark.asyncio
async def test_non_json_success_body_is_none(api):
    with respx.mock(base_url=BASE) as m:
        m.patch("/appointment/9/complete").respond(200, text="OK")

        assert await api.patch("/appointment/9/complete") is None


@pytest.mark.asyncio
async def test_error_prefers_payload_message(api):
    with respx.mock(base_url=BASE) as m:
        m.post("/appointment/").respond(400, json={"message": "Reason is required"})

        with pytest.raises(ValidationRejected) as exc:
            await api.post("/appointment/", {"doctor_id": 1})
        assert exc.value.status == 400
        assert exc.value.message == "Reason is required"
        assert exc.value.payload == {"message": "Reason is required"}


@pytest.mark.asyncio
async def test_error_falls_back_to_status_text(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/patient/3").respond(404, text="nope")

        with pytest.raises(ResourceNotFound) as exc:
            await api.get("/patient/3")
        assert exc.value.message == "Not Found"
        assert exc.value.payload is None


@pytest.mark.asyncio
async def test_error_generic_message_when_nothing_else(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/patient/3").respond(599)

        with pytest.raises(ServerFault) as exc:
            await api.get("/patient/3")
        assert exc.value.message == "Request failed"


@pytest.mark.asyncio
@pytest.mark.parametrize("status,body,expected", [
    (400, {"message": "Missing patient_id"}, PatientLinkageMissing),
    (400, {"message": "Slot already booked"}, SlotUnavailable),
    (401, {"message": "Token expired"}, AuthenticationExpired),
    (409, {"message": "Conflict"}, SlotUnavailable),
    (403, {"message": "Forbidden"}, ServerFault),
    (503, None, ServerFault),
])
async def test_error_classification(api, status, body, expected):
    with respx.mock(base_url=BASE) as m:
        m.post("/appointment/").respond(status, json=body)

        with pytest.raises(expected):
            await api.post("/appointment/", {"doctor_id": 1})


@pytest.mark.asyncio
async def test_timeout_raises_request_timeout(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/doctor/specializations").mock(side_effect=httpx.ReadTimeout("stalled"))

        with pytest.raises(RequestTimeout):
            await api.get("/doctor/specializations")


@pytest.mark.asyncio
async def test_connection_error_raises_network_failure(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/doctor/specializations").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(NetworkFailure) as exc:
            await api.get("/doctor/specializations")
        assert exc.value.status is None


@pytest.mark.asyncio
async def test_client_requires_context_manager():
    api = ApiClient(base_url=BASE)
    with pytest.raises(RuntimeError):
        await api.get("/doctor/specializations")
