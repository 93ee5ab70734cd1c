import pytest
from fastapi.testclient import TestClient

from conftest import TOPICS, connect, guess

from coordinator.app import create_app


@pytest.fixture
def client(coordinator):
    return TestClient(create_app(coordinator))


def test_get_devices(client, coordinator):
    session = connect(coordinator)
    guess(coordinator, session, session.pending_challenge_value)

    res = client.get("/devices")

    assert res.status_code == 200
    (dev,) = res.json()
    assert dev["device_id"] == "D1"
    assert dev["name"] == "Device 1"
    assert dev["correct"] == 1
    assert dev["round"] == 1
    assert dev["sequence"] == 2
    assert dev["state"] == "awaiting_response"


def test_get_device(client, coordinator):
    connect(coordinator)

    assert client.get("/devices/D1").json()["hp"] == 5
    assert client.get("/devices/ghost").status_code == 404


def test_post_restart(client, coordinator, transport, clock):
    session = connect(coordinator)
    guess(coordinator, session, 1 if session.pending_challenge_value != 1 else 2)
    clock.advance(2)

    res = client.post("/devices/D1/restart")

    assert res.status_code == 200
    assert res.json() == {"ok": True}
    assert session.health_points == 5
    assert session.current_round == 0
    assert transport.challenges("D1")[-1]["round"] == 1


def test_post_restart_errors(client, coordinator):
    connect(coordinator)
    coordinator.handle_message(TOPICS.disconnect, {"id": "D1"})

    assert client.post("/devices/D1/restart").status_code == 409
    assert client.post("/devices/ghost/restart").status_code == 404


def test_post_restart_right_after_connect(client, coordinator, transport):
    connect(coordinator)

    assert client.post("/devices/D1/restart").status_code == 200
    assert len(transport.challenges("D1")) == 2
