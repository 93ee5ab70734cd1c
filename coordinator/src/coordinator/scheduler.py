"""Game-over, auto-restart & the one-shot timers behind them.

Each session owns at most one `TimerHandle` at a time. Arming a timer always
cancels the previous one under the session lock, and a firing timer re-checks
that it is still the session's current handle before acting, so a timer that
was cancelled or replaced while its thread was already waking up does nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger
    from typing import Literal

    from .session import Session, SessionMachine
    from .types import GameOverPayload

    type TimerKind = Literal["settle", "restart"]
    type TimerFactory = Callable[[float, Callable[[], None]], Timer]


class Timer(Protocol):
    """The part of `threading.Timer` the scheduler relies on."""

    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


@dataclass(eq=False)
class TimerHandle:
    kind: TimerKind
    delay: float
    timer: Timer | None = field(default=None, repr=False)

    def cancel(self) -> None:
        if self.timer is not None:
            self.timer.cancel()


class RoundScheduler:
    """Ends games, then restarts them after a delay."""

    _machine: SessionMachine
    _timer_factory: TimerFactory
    _log: Logger
    _closed: bool

    def __init__(self, machine: SessionMachine, *, timer_factory: TimerFactory) -> None:
        self._machine = machine
        self._timer_factory = timer_factory
        self._closed = False
        self._log = logging.getLogger("RoundScheduler")

    def game_over(self, session: Session) -> None:
        """End the game; the game-over message follows after the settle delay.

        The delay gives the device time to render the last scored result
        before the terminal message arrives.
        """
        with session.lock:
            if session.state == "game_over":
                self._log.debug("Game already over for %s", session.display_name)
                return

            session.state = "game_over"
            session.pending_challenge_value = None
            self._log.info("Game over for [bold]%s[/]", session.display_name)
            self._log.info("%s", session.scoreboard())
            self._arm(session, "settle", self._machine.config.settle_delay, self._send_game_over)

    def schedule_restart(self, session: Session) -> None:
        """Replace any pending timer with a one-shot auto-restart."""
        with session.lock:
            if session.is_terminated:
                return

            delay = self._machine.config.restart_delay
            self._log.info("Scheduling auto-restart for %s in %gs", session.display_name, delay)
            self._arm(session, "restart", delay, self.restart)

    def restart(self, session: Session, *, force: bool = False) -> None:
        """Reset the game and issue its first challenge immediately.

        A second restart within the debounce window of the previous one is
        ignored while that game is still untouched, so duplicate restart
        requests never produce duplicate challenges. `force` skips the
        debounce (exhausted retries, operator restarts).
        """
        with session.lock:
            if session.is_terminated:
                self._log.warning("Not restarting disconnected device %s", session.device_id)
                return

            now = self._machine.clock()
            if (
                not force
                and session.game_started_at is not None
                and now - session.game_started_at < self._machine.config.restart_debounce
                and session.is_untouched()
            ):
                self._log.debug("Ignoring duplicate restart for %s", session.display_name)
                return

            self.cancel(session)
            session.reset_game(self._machine.config.starting_hp)
            session.game_started_at = now
            self._log.info("Game restarted for [bold]%s[/] (id=%s)", session.display_name, session.device_id)
            self._machine.start_round(session)

    def cancel(self, session: Session) -> None:
        with session.lock:
            handle = session.pending_timer
            if handle is None:
                return

            session.pending_timer = None
            handle.cancel()
            self._log.debug("Cancelled %s timer for %s", handle.kind, session.display_name)

    def shutdown(self) -> None:
        """Refuse to arm new timers. Callers still cancel the ones already armed."""
        self._closed = True

    # ==================== Internals (caller holds session.lock) ====================

    def _send_game_over(self, session: Session) -> None:
        payload: GameOverPayload = {"gameOver": True, "hp": session.health_points}
        self._log.info("Game-over -> [bold]%s[/] hp=%d", session.display_name, session.health_points)
        self._machine.publish(self._machine.topics.result(session.device_id), payload)
        self.schedule_restart(session)

    def _arm(
        self,
        session: Session,
        kind: TimerKind,
        delay: float,
        action: Callable[[Session], None],
    ) -> None:
        self.cancel(session)
        if self._closed:
            self._log.debug("Shut down, not arming %s timer for %s", kind, session.display_name)
            return

        handle = TimerHandle(kind=kind, delay=delay)

        def fire() -> None:
            with session.lock:
                if self._closed or session.pending_timer is not handle:
                    self._log.debug("Stale %s timer for %s fired, ignoring", kind, session.display_name)
                    return

                session.pending_timer = None
                action(session)

        timer = self._timer_factory(delay, fire)
        timer.daemon = True
        handle.timer = timer
        session.pending_timer = handle
        timer.start()
