import random
import threading
import time

from conftest import TOPICS, RecordingTransport

from coordinator.config import GameConfig
from coordinator.coordinator import Coordinator

DEVICES = ("D1", "D2")


def games_over(transport, device_id):
    return sum(1 for r in list(transport.results(device_id)) if r.get("gameOver"))


def play(coordinator, transport, device_id, seed, deadline):
    session = coordinator.registry.require(device_id)
    rng = random.Random(seed)
    while time.monotonic() < deadline and games_over(transport, device_id) < 2:
        with session.lock:
            seq = session.sequence
            secret = session.pending_challenge_value
        value = secret if secret is not None and rng.random() < 0.5 else rng.choice((1, 2, 3))
        coordinator.handle_message(TOPICS.response(device_id), {"guess": value, "sequence": seq})


def test_parallel_devices_with_real_timers():
    transport = RecordingTransport()
    config = GameConfig(max_rounds=3, settle_delay=0.001, restart_delay=0.001)
    coordinator = Coordinator(transport, config=config, topics=TOPICS, rng=random.Random(5))
    coordinator.start()
    for device_id in DEVICES:
        coordinator.handle_message(TOPICS.connect, {"id": device_id})

    # Two threads per device: same-session contention plus cross-device parallelism
    deadline = time.monotonic() + 10
    threads = [
        threading.Thread(target=play, args=(coordinator, transport, device_id, f"{device_id}-{n}", deadline))
        for device_id in DEVICES
        for n in range(2)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    coordinator.shutdown()

    for device_id in DEVICES:
        session = coordinator.registry.require(device_id)
        snap = session.snapshot()
        assert games_over(transport, device_id) >= 2
        assert snap["correct"] + snap["incorrect"] == snap["round"] <= config.max_rounds
        assert snap["hp"] == config.starting_hp - snap["incorrect"]

        # Challenges went out in sequence order with no gaps
        assert [c["sequence"] for c in transport.challenges(device_id)] == list(range(1, snap["sequence"] + 1))

        # Each game-over follows exactly one complete game
        results = transport.results(device_id)
        for i, r in enumerate(results):
            if not r.get("gameOver"):
                continue
            game = results[i - config.max_rounds : i]
            assert all("result" in g for g in game)
            hp = config.starting_hp
            for g in game:
                hp -= g["result"] == "nope"
                assert g["hp"] == hp
            assert r["hp"] == hp
