"""
Simulated device that plays the guessing game against a running coordinator.

Usage:
    guess-fake-device [--device-id ID] [--name NAME] [--broker BROKER] [--port PORT]
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import random
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .misc import init_logging
from .topics import Topics
from .transport import MqttTransport

if TYPE_CHECKING:
    from .transport import Transport


@dataclass
class DeviceView:
    """What the device knows about its own game (everything the coordinator tells it)."""

    hp: int | None = None
    round: int = 0
    sequence: int = 0
    outcomes: list[str] = field(default_factory=list)
    games_over: int = 0


class FakeDevice:
    """Device side of the protocol: ack every challenge, then guess at random."""

    def __init__(
        self,
        transport: Transport,
        *,
        device_id: str,
        name: str,
        topics: Topics | None = None,
        hp: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.transport = transport
        self.device_id = device_id
        self.name = name
        self.topics = topics or Topics()
        self.hp = hp
        self.view = DeviceView()

        self._rng = rng or random.Random()
        self._log = logging.getLogger("FakeDevice")

    def subscriptions(self) -> list[str]:
        return [self.topics.challenge(self.device_id), self.topics.result(self.device_id)]

    def connect(self, *, restart: bool = False) -> None:
        payload: dict[str, Any] = {"id": self.device_id, "name": self.name}
        if self.hp is not None:
            payload["hp"] = self.hp
        if restart:
            payload["restart"] = True
        self._log.info("Announcing %s", "restart" if restart else "connect")
        self.transport.publish(self.topics.connect, payload)

    def disconnect(self) -> None:
        self._log.info("Announcing disconnect")
        self.transport.publish(self.topics.disconnect, {"id": self.device_id})

    def handle_message(self, topic: str, data: Any) -> None:  # noqa: ANN401
        if topic == self.topics.challenge(self.device_id):
            self._on_challenge(data)
        elif topic == self.topics.result(self.device_id):
            self._on_result(data)

    def _on_challenge(self, data: dict[str, Any]) -> None:
        self.view.hp = data["hp"]
        self.view.round = data["round"]
        self.view.sequence = data["sequence"]

        guess = self._rng.choice(data["choices"])
        self._log.info("Round %d (hp=%d, seq=%d): guessing %d", self.view.round, self.view.hp, self.view.sequence, guess)

        response = self.topics.response(self.device_id)
        self.transport.publish(response, {"ack": self.view.sequence})
        self.transport.publish(response, {"guess": guess, "sequence": self.view.sequence})

    def _on_result(self, data: dict[str, Any]) -> None:
        self.view.hp = data["hp"]
        if data.get("gameOver"):
            self.view.games_over += 1
            self._log.info("[bold]GAME OVER[/] (hp=%d)", self.view.hp)
            return

        self.view.outcomes.append(data["result"])
        symbol = "✓" if data["result"] == "nice" else "✗"
        self._log.info("%s %s (hp=%d)", symbol, data["result"].upper(), self.view.hp)


def main() -> None:
    parser = argparse.ArgumentParser(description="Fake device for coordinator testing")
    parser.add_argument("--device-id", default="fake-esp32-01", help="Device ID to simulate")
    parser.add_argument("--name", default="Fake ESP32", help="Display name")
    parser.add_argument("--hp", type=int, default=None, help="Starting HP to announce")
    parser.add_argument("--broker", default="localhost", help="MQTT broker host")
    parser.add_argument("--port", type=int, default=1883, help="MQTT broker port")
    parser.add_argument("--namespace", default="esp32", help="Topic namespace")
    args = parser.parse_args()

    init_logging(logging.INFO)

    transport = MqttTransport(broker=args.broker, port=args.port, client_name=f"device-{args.device_id}")
    device = FakeDevice(
        transport,
        device_id=args.device_id,
        name=args.name,
        topics=Topics(args.namespace),
        hp=args.hp,
    )
    transport.on_message = device.handle_message
    # Announce only once our own topics are subscribed (and again after a reconnect)
    transport.on_ready = device.connect
    transport.subscribe(device.subscriptions())

    if not transport.connect():
        return

    try:
        with contextlib.suppress(KeyboardInterrupt):
            threading.Event().wait()
    finally:
        device.disconnect()
        transport.disconnect()


if __name__ == "__main__":
    main()
