import threading

import pytest

from coordinator.errors import DuplicateDeviceError, UnknownDeviceError


def test_create_subscribes_response_topic(coordinator, transport):
    session = coordinator.registry.create("aa:bb", "Board", 5)

    assert session.health_points == 5
    assert session.state == "idle"
    assert session.sequence == 0
    assert session.last_acknowledged_sequence == -1
    assert "esp32/aa:bb/response" in transport.subscribed
    assert coordinator.registry.lookup("aa:bb") is session


def test_create_uses_configured_hp_when_missing(coordinator, config):
    session = coordinator.registry.create("D9", "Board")
    assert session.health_points == session.initial_health_points == config.starting_hp


def test_create_live_duplicate_raises(coordinator):
    coordinator.registry.create("D1", "Board")
    with pytest.raises(DuplicateDeviceError):
        coordinator.registry.create("D1", "Board again")


def test_lookup_miss(coordinator):
    assert coordinator.registry.lookup("nope") is None
    with pytest.raises(UnknownDeviceError):
        coordinator.registry.require("nope")


def test_remove_terminates_but_keeps_scores(coordinator, transport):
    session = coordinator.registry.create("D1", "Board")
    coordinator.machine.begin_game(session)
    coordinator.machine.receive_guess(session, session.pending_challenge_value, session.sequence)
    coordinator.scheduler.schedule_restart(session)

    removed = coordinator.registry.remove("D1")

    assert removed is session
    assert session.is_terminated
    assert session.state == "terminated"
    assert session.pending_timer is None
    assert session.correct_count == 1
    assert "esp32/D1/response" in transport.unsubscribed
    assert coordinator.registry.lookup("D1") is session


def test_remove_unknown_raises(coordinator):
    with pytest.raises(UnknownDeviceError):
        coordinator.registry.remove("ghost")


def test_remove_twice_unsubscribes_once(coordinator, transport):
    coordinator.registry.create("D1", "Board")
    coordinator.registry.remove("D1")
    coordinator.registry.remove("D1")

    assert transport.unsubscribed == ["esp32/D1/response"]


def test_terminated_session_replaced_on_reconnect(coordinator):
    old = coordinator.registry.create("D1", "Board")
    coordinator.registry.remove("D1")

    new = coordinator.registry.create("D1", "Board v2", 3)

    assert new is not old
    assert not new.is_terminated
    assert new.health_points == 3
    assert coordinator.registry.lookup("D1") is new


def test_concurrent_creates(coordinator):
    errors = []

    def create(idx):
        try:
            coordinator.registry.create(f"dev-{idx}", f"Board {idx}")
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=create, args=(i,)) for i in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(coordinator.registry.sessions()) == 50


def test_concurrent_duplicate_creates_admit_one(coordinator):
    outcomes = []
    barrier = threading.Barrier(20)

    def create():
        barrier.wait()
        try:
            coordinator.registry.create("same", "Board")
            outcomes.append("created")
        except DuplicateDeviceError:
            outcomes.append("duplicate")

    threads = [threading.Thread(target=create) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("created") == 1
    assert outcomes.count("duplicate") == 19
