import random

from conftest import TOPICS, LoopbackBus

from coordinator.coordinator import Coordinator
from coordinator.fake_device import FakeDevice


def make_game(timers, clock, seed=7, hp=None):
    bus = LoopbackBus()

    coord_client = bus.client()
    coordinator = Coordinator(coord_client, topics=TOPICS, timer_factory=timers, rng=random.Random(1), clock=clock)
    coord_client.handler = coordinator.handle_message
    coordinator.start()

    dev_client = bus.client()
    device = FakeDevice(dev_client, device_id="esp-01", name="Fake", topics=TOPICS, hp=hp, rng=random.Random(seed))
    dev_client.handler = device.handle_message
    dev_client.subscribe(device.subscriptions())
    return bus, coordinator, device


def test_fake_device_plays_until_game_over(timers, clock):
    bus, coordinator, device = make_game(timers, clock)

    device.connect()
    bus.drain()

    session = coordinator.registry.lookup("esp-01")
    assert session.state == "game_over"
    assert session.last_acknowledged_sequence == session.sequence
    assert device.view.sequence == session.sequence
    assert device.view.outcomes.count("nice") == session.correct_count
    assert device.view.outcomes.count("nope") == session.incorrect_count
    assert len(device.view.outcomes) == session.current_round
    assert session.health_points == 0 or session.current_round == 10
    assert device.view.games_over == 0

    timers.fire_next()
    bus.drain()
    assert device.view.games_over == 1
    assert device.view.hp == session.health_points

    # Auto-restart: a whole new game is played out
    first_game = len(device.view.outcomes)
    timers.fire_next()
    bus.drain()
    assert session.state == "game_over"
    assert len(device.view.outcomes) == first_game + session.current_round
    assert device.view.sequence == session.sequence


def test_fake_device_disconnect_stops_play(timers, clock):
    bus, coordinator, device = make_game(timers, clock, hp=3)

    device.connect()
    device.disconnect()
    bus.drain()

    session = coordinator.registry.lookup("esp-01")
    assert session.is_terminated
    assert session.initial_health_points == 3
    assert timers.active() == []
