"""Routes inbound transport messages to the registry & state machine.

Topics:
    <ns>/connect        -> _handle_connect()     create, or restart if flagged
    <ns>/disconnect     -> _handle_disconnect()  terminate session
    <ns>/<id>/response  -> _handle_response()    ack or guess
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .config import GameConfig
from .errors import CoordinatorError, DuplicateDeviceError, UnknownDeviceError
from .misc import monotonic_s
from .models import AckMessage, GuessMessage, parse_connect, parse_disconnect, parse_response
from .registry import SessionRegistry
from .session import SessionMachine
from .topics import Topics

if TYPE_CHECKING:
    import random
    from collections.abc import Callable
    from logging import Logger

    from .models import ConnectMessage, DisconnectMessage, ResponseMessage
    from .scheduler import RoundScheduler, TimerFactory
    from .session import Session
    from .transport import Transport
    from .types import SessionSnapshot


class Coordinator:
    """Dispatch layer. Every recoverable error stops here."""

    topics: Topics
    machine: SessionMachine
    scheduler: RoundScheduler
    registry: SessionRegistry

    _log: Logger

    def __init__(
        self,
        transport: Transport,
        *,
        config: GameConfig | None = None,
        topics: Topics | None = None,
        timer_factory: TimerFactory = threading.Timer,
        rng: random.Random | None = None,
        clock: Callable[[], float] = monotonic_s,
    ) -> None:
        self.topics = topics or Topics()
        self.machine = SessionMachine(
            transport,
            self.topics,
            config or GameConfig(),
            timer_factory=timer_factory,
            rng=rng,
            clock=clock,
        )
        self.scheduler = self.machine.scheduler
        self.registry = SessionRegistry(self.machine)
        self._log = logging.getLogger("Coordinator")

    # ==================== Public API ====================

    def start(self) -> None:
        """Subscribe to the fleet-wide announcement topics."""
        self.machine.subscribe([self.topics.connect, self.topics.disconnect])

    def shutdown(self) -> None:
        self._log.info("Shutting down, cancelling timers")
        self.registry.close()

    def handle_message(self, topic: str, data: Any) -> None:  # noqa: ANN401
        """Route one decoded inbound message. Never raises for bad input."""
        try:
            if topic == self.topics.connect:
                self._handle_connect(parse_connect(data))
            elif topic == self.topics.disconnect:
                self._handle_disconnect(parse_disconnect(data))
            elif (device_id := self.topics.response_device(topic)) is not None:
                self._handle_response(device_id, parse_response(data))
            else:
                self._log.warning("No route for topic %s", topic)
        except ValidationError as e:
            self._log.warning(
                "[bright_yellow on grey30][IGNORING][/] Malformed payload on %s: %s (%d errors)",
                topic,
                data,
                e.error_count(),
            )
        except UnknownDeviceError as e:
            self._log.error("%s (topic %s), dropping message", e, topic)
        except CoordinatorError as e:
            self._log.error("Dropping message on %s: %s", topic, e)

    def restart_device(self, device_id: str) -> Session:
        """Operator-initiated restart.

        Raises:
            UnknownDeviceError: no session for `device_id`
        """
        session = self.registry.require(device_id)
        self._log.info("Operator restart for %s (id=%s)", session.display_name, device_id)
        self.scheduler.restart(session, force=True)
        return session

    def snapshot(self) -> list[SessionSnapshot]:
        return [s.snapshot() for s in self.registry.sessions()]

    # ==================== Handlers ====================

    def _handle_connect(self, msg: ConnectMessage) -> None:
        if msg.restart:
            self._log.info("Restart request from %s (id=%s)", msg.display_name, msg.id)
            session = self.registry.require(msg.id)
            if session.is_terminated:
                # Recreate rather than revive, so the response topic is subscribed again
                self.machine.begin_game(self.registry.create(msg.id, msg.display_name, msg.hp))
            else:
                self.scheduler.restart(session)
            return

        try:
            session = self.registry.create(msg.id, msg.display_name, msg.hp)
        except DuplicateDeviceError as e:
            self._log.warning("%s, treating as restart", e)
            session = self.registry.require(msg.id)
            with session.lock:
                session.display_name = msg.display_name
            self.scheduler.restart(session)
            return

        self.machine.begin_game(session)

    def _handle_disconnect(self, msg: DisconnectMessage) -> None:
        self.registry.remove(msg.id)

    def _handle_response(self, device_id: str, msg: ResponseMessage) -> None:
        session = self.registry.require(device_id)
        if session.is_terminated:
            self._log.warning("Dropping response from disconnected device %s", device_id)
            return

        match msg:
            case AckMessage(ack=ack):
                self.machine.receive_ack(session, ack)
            case GuessMessage(guess=guess, sequence=sequence):
                self.machine.receive_guess(session, guess, sequence)
