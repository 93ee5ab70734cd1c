import json
import random
from collections import defaultdict, deque

import pytest

from coordinator.config import GameConfig
from coordinator.coordinator import Coordinator
from coordinator.topics import Topics

TOPICS = Topics("esp32")


class RecordingTransport:
    """In-memory transport that just records what the coordinator does."""

    def __init__(self):
        self.published = []
        self.subscribed = []
        self.unsubscribed = []

    def subscribe(self, topics):
        self.subscribed.extend(topics)

    def unsubscribe(self, topic):
        self.unsubscribed.append(topic)

    def publish(self, topic, payload):
        self.published.append((topic, dict(payload)))

    def on(self, topic):
        return [payload for t, payload in self.published if t == topic]

    def challenges(self, device_id):
        return self.on(TOPICS.challenge(device_id))

    def results(self, device_id):
        return self.on(TOPICS.result(device_id))


class ManualTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        # Runs even when cancelled, like a threading.Timer that already woke up
        self.fired = True
        self.function()


class ManualTimers:
    """Timer factory whose timers only fire when a test says so."""

    def __init__(self):
        self.created = []

    def __call__(self, interval, function):
        timer = ManualTimer(interval, function)
        self.created.append(timer)
        return timer

    def active(self):
        return [t for t in self.created if t.started and not t.cancelled and not t.fired]

    def fire_next(self):
        active = self.active()
        assert len(active) == 1, f"expected exactly one active timer, got {len(active)}"
        active[0].fire()
        return active[0]


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, secs):
        self.now += secs


class LoopbackBus:
    """Broker stand-in: queues publishes and delivers them on drain()."""

    def __init__(self):
        self.subscribers = defaultdict(list)
        self.queue = deque()

    def client(self):
        return LoopbackClient(self)

    def drain(self, limit=10_000):
        delivered = 0
        while self.queue:
            topic, payload = self.queue.popleft()
            for client in list(self.subscribers[topic]):
                client.handler(topic, payload)
            delivered += 1
            assert delivered < limit, "message storm"
        return delivered


class LoopbackClient:
    def __init__(self, bus):
        self.bus = bus
        self.handler = None

    def subscribe(self, topics):
        for topic in topics:
            self.bus.subscribers[topic].append(self)

    def unsubscribe(self, topic):
        if self in self.bus.subscribers[topic]:
            self.bus.subscribers[topic].remove(self)

    def publish(self, topic, payload):
        # Round-trip through JSON like the real transport does
        self.bus.queue.append((topic, json.loads(json.dumps(payload))))


def wrong_guess(secret):
    return next(c for c in (1, 2, 3) if c != secret)


def connect(coordinator, device_id="D1", name="Device 1", hp=5, **extra):
    coordinator.handle_message(TOPICS.connect, {"id": device_id, "name": name, "hp": hp, **extra})
    return coordinator.registry.lookup(device_id)


def guess(coordinator, session, value, sequence=None):
    seq = session.sequence if sequence is None else sequence
    coordinator.handle_message(TOPICS.response(session.device_id), {"guess": value, "sequence": seq})


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return GameConfig()


@pytest.fixture
def coordinator(transport, timers, clock, config):
    coord = Coordinator(
        transport,
        config=config,
        topics=TOPICS,
        timer_factory=timers,
        rng=random.Random(1234),
        clock=clock,
    )
    coord.start()
    return coord
