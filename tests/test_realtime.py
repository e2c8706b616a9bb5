"""
WebSocket channel tests.

Driven through Starlette's ``TestClient``, which runs the app on its own
event loop; pooled connections are released before and after so that loop
opens its own.
"""

import uuid

import pytest
import pytest_asyncio
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from meditransport.api import dependencies
from meditransport.api.app import create_app
from meditransport.infrastructure.broadcast import InMemoryBroadcaster
from meditransport.infrastructure.database import engine
from tests.helpers import PASSWORD, auth, future_date

POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011


class FailingStream(InMemoryBroadcaster):
    async def subscribe(self, ride_id):
        raise ConnectionError("pub/sub connection lost")
        yield


@pytest_asyncio.fixture
async def released_pool(tables):
    await engine.dispose()


def _socket_client(broadcaster):
    app = create_app()
    app.dependency_overrides[dependencies.get_broadcaster] = lambda: broadcaster
    return TestClient(app)


@pytest.fixture
def ws(released_pool, broadcaster):
    with _socket_client(broadcaster) as tc:
        yield tc
        tc.portal.call(engine.dispose)


def _register(tc, role="patient"):
    suffix = uuid.uuid4().hex[:8]
    body = {
        "name": f"Socket {role.title()}",
        "email": f"{role}-{suffix}@example.com",
        "password": PASSWORD,
        "role": role,
    }
    if role == "driver":
        body["licenseNumber"] = f"LIC-{suffix}"
        body["vehicleType"] = "car"
    resp = tc.post("/api/v1/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["tokens"]["accessToken"]


def _book(tc, token):
    resp = tc.post(
        "/api/v1/rides",
        json={
            "startLocation": "4 Elm Ave",
            "endLocation": "Riverside Dialysis Center",
            "rideDate": future_date(),
        },
        headers=auth(token),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["ride"]["id"]


def _assign(tc, admin, ride_id, driver):
    profile = tc.get("/api/v1/users/profile", headers=auth(driver)).json()
    resp = tc.post(
        f"/api/v1/rides/{ride_id}/assign",
        json={"driverId": profile["user"]["driverInfo"]["id"]},
        headers=auth(admin),
    )
    assert resp.status_code == 200, resp.text


@pytest.fixture
def assigned(ws):
    """(ride_id, patient, driver, admin) for a ride with a driver."""
    admin = _register(ws, "admin")
    patient = _register(ws)
    driver = _register(ws, "driver")
    ride_id = _book(ws, patient)
    _assign(ws, admin, ride_id, driver)
    return ride_id, patient, driver, admin


def _rejected_code(tc, url):
    with pytest.raises(WebSocketDisconnect) as exc:
        with tc.websocket_connect(url) as socket:
            socket.receive_json()
    return exc.value.code


class TestJoin:
    def test_bad_token_is_closed(self, ws):
        ride_id = _book(ws, _register(ws))
        code = _rejected_code(ws, f"/ws/rides/{ride_id}?token=not-a-jwt")
        assert code == POLICY_VIOLATION

    def test_missing_token_is_closed(self, ws):
        ride_id = _book(ws, _register(ws))
        assert _rejected_code(ws, f"/ws/rides/{ride_id}") == POLICY_VIOLATION

    def test_stranger_is_closed(self, ws):
        ride_id = _book(ws, _register(ws))
        stranger = _register(ws)
        code = _rejected_code(ws, f"/ws/rides/{ride_id}?token={stranger}")
        assert code == POLICY_VIOLATION

    def test_missing_ride_is_closed(self, ws):
        patient = _register(ws)
        assert _rejected_code(ws, f"/ws/rides/999999?token={patient}") == POLICY_VIOLATION

    def test_requester_is_subscribed(self, ws):
        patient = _register(ws)
        ride_id = _book(ws, patient)
        with ws.websocket_connect(f"/ws/rides/{ride_id}?token={patient}") as socket:
            assert socket.receive_json() == {"type": "subscribed", "rideId": ride_id}


class TestEvents:
    def test_requester_receives_status_updates(self, ws):
        admin = _register(ws, "admin")
        patient = _register(ws)
        driver = _register(ws, "driver")
        ride_id = _book(ws, patient)
        with ws.websocket_connect(f"/ws/rides/{ride_id}?token={patient}") as socket:
            socket.receive_json()
            _assign(ws, admin, ride_id, driver)
            event = socket.receive_json()
        assert event["type"] == "status-update"
        assert event["rideId"] == ride_id
        assert event["status"] == "accepted"

    def test_driver_push_is_recorded_and_broadcast(self, ws, assigned):
        ride_id, patient, driver, _ = assigned
        with ws.websocket_connect(f"/ws/rides/{ride_id}?token={driver}") as socket:
            socket.receive_json()
            socket.send_json(
                {"type": "location-update", "latitude": 40.71, "longitude": -74.0, "speed": 25}
            )
            event = socket.receive_json()
        assert event["type"] == "location-update"
        assert event["latitude"] == 40.71
        assert event["speed"] == 25

        resp = ws.get(f"/api/v1/rides/{ride_id}/tracking", headers=auth(patient))
        samples = resp.json()["tracking"]
        assert len(samples) == 1
        assert samples[0]["longitude"] == -74.0

    def test_push_from_requester_is_refused(self, ws, assigned):
        ride_id, patient, _, _ = assigned
        with ws.websocket_connect(f"/ws/rides/{ride_id}?token={patient}") as socket:
            socket.receive_json()
            socket.send_json({"type": "location-update", "latitude": 1.0, "longitude": 2.0})
            reply = socket.receive_json()
        assert reply == {"type": "error", "error": "Required role: driver"}

        resp = ws.get(f"/api/v1/rides/{ride_id}/tracking", headers=auth(patient))
        assert resp.json()["tracking"] == []

    def test_out_of_range_push_is_a_validation_error(self, ws, assigned):
        ride_id, _, driver, _ = assigned
        with ws.websocket_connect(f"/ws/rides/{ride_id}?token={driver}") as socket:
            socket.receive_json()
            socket.send_json({"type": "location-update", "latitude": 91, "longitude": 0})
            reply = socket.receive_json()
        assert reply["type"] == "error"
        assert reply["error"] == "Validation Error"
        assert reply["details"][0]["loc"] == ["latitude"]

    def test_malformed_frame(self, ws, assigned):
        ride_id, _, driver, _ = assigned
        with ws.websocket_connect(f"/ws/rides/{ride_id}?token={driver}") as socket:
            socket.receive_json()
            socket.send_text("{not json")
            assert socket.receive_json() == {"type": "error", "error": "Malformed message"}
            socket.send_text("[1, 2]")
            assert socket.receive_json() == {"type": "error", "error": "Malformed message"}


class TestStreamFailure:
    def test_socket_is_closed_when_event_stream_fails(self, released_pool):
        with _socket_client(FailingStream()) as tc:
            patient = _register(tc)
            ride_id = _book(tc, patient)
            with tc.websocket_connect(f"/ws/rides/{ride_id}?token={patient}") as socket:
                assert socket.receive_json()["type"] == "subscribed"
                with pytest.raises(WebSocketDisconnect) as exc:
                    socket.receive_json()
            assert exc.value.code == INTERNAL_ERROR
            tc.portal.call(engine.dispose)
