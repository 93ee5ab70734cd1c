"""Publish/subscribe transport.

The state machine only ever sees the `Transport` protocol; `MqttTransport` is
the paho-mqtt implementation used in production. Publishing is fire-and-forget:
failures are logged here and never raised into game logic.
"""

from __future__ import annotations

import json
import logging
import os
import socket
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from paho.mqtt.client import Client, ConnectFlags, DisconnectFlags, MQTTMessage
from paho.mqtt.enums import CallbackAPIVersion, MQTTErrorCode

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from logging import Logger

    from paho.mqtt.properties import Properties
    from paho.mqtt.reasoncodes import ReasonCode

    type MessageHandler = Callable[[str, Any], None]
    type ReadyHandler = Callable[[], None]


class Transport(Protocol):
    def subscribe(self, topics: Iterable[str]) -> None: ...

    def unsubscribe(self, topic: str) -> None: ...

    def publish(self, topic: str, payload: Mapping[str, Any]) -> None: ...


class MqttTransport:
    """Wrapper around paho-mqtt with connection management.

    Topics subscribed at runtime are remembered and re-subscribed whenever the
    client reconnects, so device response topics survive a broker restart.
    """

    KEEPALIVE: ClassVar = 30
    QOS: ClassVar = 1

    broker: str
    port: int
    client_name: str
    on_message: MessageHandler | None
    on_ready: ReadyHandler | None

    _log: Logger
    _client: Client
    _topics: set[str]

    def __init__(
        self,
        *,
        broker: str,
        port: int,
        on_message: MessageHandler | None = None,
        on_ready: ReadyHandler | None = None,
        client_name: str = "coordinator",
    ) -> None:
        self.broker = broker
        self.client_name = client_name
        self.port = port
        self.on_message = on_message
        self.on_ready = on_ready

        self._log = logging.getLogger("MqttTransport")
        self._topics = set()
        self._client = Client(
            client_id=f"{client_name}-{socket.gethostname()}-{os.getpid()}",
            callback_api_version=CallbackAPIVersion.VERSION2,
        )
        self._client.on_message = self._on_message
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.reconnect_delay_set(min_delay=1, max_delay=30)

    def connect(self) -> bool:
        """Connect to MQTT broker and start the network loop. Return True on success."""

        self._log.debug("Connecting to MQTT broker [bright_magenta]%s:%d[/]", self.broker, self.port)
        try:
            res1 = self._client.connect(self.broker, self.port, keepalive=MqttTransport.KEEPALIVE)
        except OSError as e:
            self._log.critical("MQTT connect failed: %s", e)
            return False

        if res1 != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.critical("MQTT connect failed with rc=%s", res1)
            return False

        if (res2 := self._client.loop_start()) != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.critical("MQTT connect (loop start) failed with rc=%s", res2)
            return False

        self._log.info("Connected to [bright_magenta]%s:%d[/]", self.broker, self.port)
        return True

    def disconnect(self) -> None:
        """Disconnect from MQTT broker and stop loop."""

        self._log.debug("Disconnecting from MQTT broker [bright_magenta]%s:%d[/]", self.broker, self.port)
        res1 = self._client.disconnect()

        if res1 != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.error("MQTT disconnect failed with rc=%s", res1)

        if (res2 := self._client.loop_stop()) != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.error("MQTT disconnect (loop stop) failed with rc=%s", res2)
            return

        self._log.info("Disconnected from [bright_magenta]%s:%d[/]", self.broker, self.port)

    # ==================== Transport ====================

    def subscribe(self, topics: Iterable[str]) -> None:
        for topic in topics:
            self._topics.add(topic)
            self._sub(topic)

    def unsubscribe(self, topic: str) -> None:
        self._topics.discard(topic)
        self._log.debug("Unsubscribing from topic: [bright_green]%s[/]", topic)
        res, _ = self._client.unsubscribe(topic)

        if res != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.error("MQTT unsubscribe from %s failed with rc=%s", topic, res)

    def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        body = json.dumps(payload)
        self._log.debug("[bright_white on grey30][%s -> MQTT][/] %s %s", self.client_name, topic, body)
        res = self._client.publish(topic, body, qos=MqttTransport.QOS)

        if res.rc != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.error("MQTT publish to %s failed with rc=%s", topic, res.rc)

    ################################################# Utility Methods ##################################################

    def _sub(self, topic: str) -> None:
        self._log.debug("Subscribing to topic: [bright_green]%s[/]", topic)
        res, _ = self._client.subscribe(topic, qos=MqttTransport.QOS)

        # Not connected yet: _on_connect subscribes everything in self._topics
        if res == MQTTErrorCode.MQTT_ERR_NO_CONN:
            return

        if res != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.error("MQTT subscribe to %s failed with rc=%s", topic, res)
            return

        self._log.info("Subscribed to topic: [bright_green]%s[/]", topic)

    ############################################### Paho MQTT Callbacks ################################################

    def _on_connect(
        self,
        client: Client,
        userdata: Any,  # noqa: ANN401
        connect_flags: ConnectFlags,
        reason_code: ReasonCode,
        properties: Properties | None = None,
    ) -> None:
        """Handle MQTT connection (also fires on every automatic reconnect)."""

        if reason_code.is_failure:
            self._log.warning("MQTT connect failed with rc=%s", reason_code)
            return

        for topic in sorted(self._topics):
            self._sub(topic)

        if self.on_ready is not None:
            self.on_ready()
        _ = client, userdata, connect_flags, properties

    def _on_disconnect(
        self,
        client: Client,
        userdata: Any,  # noqa: ANN401
        disconnect_flags: DisconnectFlags,
        reason_code: ReasonCode,
        properties: Properties | None = None,
    ) -> None:
        if reason_code.is_failure:
            self._log.warning("Disconnected unexpectedly (rc=%s), will reconnect", reason_code)

        _ = client, userdata, disconnect_flags, properties

    def _on_message(self, client: Client, userdata: Any, message: MQTTMessage) -> None:  # noqa: ANN401
        """Decode JSON payload and forward to the registered handler."""

        _ = client, userdata
        if self.on_message is None:
            self._log.warning("No handler registered, dropping message on %s", message.topic)
            return

        try:
            data = json.loads(message.payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self._log.warning(
                "[bright_yellow on grey30][IGNORING][/] Invalid JSON on %s: %r (error: %s)",
                message.topic,
                message.payload,
                e,
            )
            return

        self._log.debug("[bright_white on grey30][MQTT -> %s][/] %s %s", self.client_name, message.topic, data)
        try:
            self.on_message(message.topic, data)
        except Exception:
            self._log.exception("Error processing message on %s", message.topic)
