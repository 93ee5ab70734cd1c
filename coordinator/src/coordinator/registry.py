"""Which devices exist.

Thread Safety:
    The session map is guarded by its own lock. Lock order is always
    registry -> session; the registry lock is never taken while a session
    lock is held, and it is released before any session lock is taken.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .errors import DuplicateDeviceError, UnknownDeviceError
from .session import Session

if TYPE_CHECKING:
    from logging import Logger

    from .session import SessionMachine


class SessionRegistry:
    """Creates, finds and terminates sessions.

    Terminated sessions stay in the map so their final scores remain visible;
    a later connect from the same device replaces them.
    """

    _machine: SessionMachine
    _sessions: dict[str, Session]
    _lock: threading.Lock
    _log: Logger

    def __init__(self, machine: SessionMachine) -> None:
        self._machine = machine
        self._sessions = {}
        self._lock = threading.Lock()
        self._log = logging.getLogger("SessionRegistry")

    def create(self, device_id: str, display_name: str, health_points: int | None = None) -> Session:
        """Create a session and subscribe to the device's responses.

        Raises:
            DuplicateDeviceError: a live session already exists for `device_id`
        """
        hp = health_points if health_points is not None else self._machine.config.starting_hp

        with self._lock:
            existing = self._sessions.get(device_id)
            if existing is not None and not existing.is_terminated:
                raise DuplicateDeviceError(device_id)

            session = Session(device_id=device_id, display_name=display_name, initial_health_points=hp)
            self._sessions[device_id] = session

        verb = "reconnected" if existing is not None else "connected"
        self._log.info("Device %s: id=[bright_green]%s[/] name=%s hp=%d", verb, device_id, display_name, hp)
        self._machine.subscribe([self._machine.topics.response(device_id)])
        return session

    def lookup(self, device_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(device_id)

    def require(self, device_id: str) -> Session:
        """Like `lookup`, but a miss raises `UnknownDeviceError`."""
        if (session := self.lookup(device_id)) is None:
            raise UnknownDeviceError(device_id)
        return session

    def remove(self, device_id: str) -> Session:
        """Terminate a session: cancel its timer, unsubscribe, keep its scores.

        Raises:
            UnknownDeviceError: no session for `device_id`
        """
        session = self.require(device_id)

        with session.lock:
            if session.is_terminated:
                self._log.debug("Device %s already disconnected", device_id)
                return session

            self._machine.scheduler.cancel(session)
            session.is_terminated = True
            session.state = "terminated"
            session.pending_challenge_value = None

        self._log.info("Device disconnected: id=[bright_green]%s[/] name=%s", device_id, session.display_name)
        self._machine.unsubscribe(self._machine.topics.response(device_id))
        self._log.info("%s", session.scoreboard())
        return session

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def close(self) -> None:
        """Cancel every outstanding timer (process shutdown)."""
        self._machine.scheduler.shutdown()
        for session in self.sessions():
            self._machine.scheduler.cancel(session)
        self._log.debug("Cancelled all timers")
