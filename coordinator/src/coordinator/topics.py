"""MQTT topic scheme.

    <ns>/connect            device -> coordinator   fleet-wide connect
    <ns>/disconnect         device -> coordinator   fleet-wide disconnect
    <ns>/<id>/random        coordinator -> device   challenge
    <ns>/<id>/response      device -> coordinator   ack or guess
    <ns>/<id>/result        coordinator -> device   scored result or game-over
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Topics:
    namespace: str = "esp32"

    @property
    def connect(self) -> str:
        return f"{self.namespace}/connect"

    @property
    def disconnect(self) -> str:
        return f"{self.namespace}/disconnect"

    def challenge(self, device_id: str) -> str:
        return f"{self.namespace}/{device_id}/random"

    def response(self, device_id: str) -> str:
        return f"{self.namespace}/{device_id}/response"

    def result(self, device_id: str) -> str:
        return f"{self.namespace}/{device_id}/result"

    def response_device(self, topic: str) -> str | None:
        """Return the device id of a response topic, or None for any other topic."""
        parts = topic.split("/")
        if len(parts) != 3 or parts[0] != self.namespace or parts[2] != "response" or not parts[1]:
            return None
        return parts[1]
