"""Per-device session state & the state machine that drives it.

States:
    idle -> awaiting_response -> (scored | retrying) -> awaiting_response
                              -> game_over -> (scheduled restart) -> idle
    terminated is reachable from any state (device disconnected)

Concurrency:
    Every mutation of a Session happens under `Session.lock`. The lock is
    re-entrant because scoring and restarting both nest `start_round`.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from .errors import MalformedGuessError, RetryExhaustedError, SequenceMismatchError
from .misc import monotonic_s
from .scheduler import RoundScheduler

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from logging import Logger

    from .config import GameConfig
    from .scheduler import TimerFactory, TimerHandle
    from .topics import Topics
    from .transport import Transport
    from .types import ChallengePayload, Outcome, ResultPayload, SessionSnapshot, SessionStatus

NO_ACK: Final = -1


@dataclass(eq=False)
class Session:
    """Mutable game state of one device (owned by the registry)."""

    device_id: str
    display_name: str
    initial_health_points: int  # HP the current game started with
    health_points: int = field(init=False)
    current_round: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    is_terminated: bool = False
    pending_challenge_value: int | None = None
    sequence: int = 0
    last_acknowledged_sequence: int = NO_ACK
    mismatch_retry_count: int = 0
    state: SessionStatus = "idle"
    pending_timer: TimerHandle | None = field(default=None, repr=False)
    game_started_at: float | None = field(default=None, repr=False)  # monotonic secs
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __post_init__(self) -> None:
        self.health_points = self.initial_health_points

    def reset_game(self, starting_hp: int) -> None:
        """Reset per-game fields. Sequence & last ack keep counting.

        The HP announced at connect only applies to the first game; every
        restarted game starts from `starting_hp`.
        """
        self.initial_health_points = starting_hp
        self.health_points = starting_hp
        self.current_round = 0
        self.correct_count = 0
        self.incorrect_count = 0
        self.mismatch_retry_count = 0
        self.pending_challenge_value = None
        self.state = "idle"

    def is_untouched(self) -> bool:
        """True while the current game has issued its first challenge and nothing else happened."""
        return (
            self.state == "awaiting_response"
            and self.current_round == 0
            and self.health_points == self.initial_health_points
            and self.correct_count == 0
            and self.incorrect_count == 0
            and self.mismatch_retry_count == 0
        )

    def scoreboard(self) -> str:
        with self.lock:
            return (
                f"\n--- Scoreboard for {self.display_name} ---\n"
                f"Correct: {self.correct_count}, Incorrect: {self.incorrect_count}, HP: {self.health_points}\n"
                f"{'-' * 35}\n"
            )

    def snapshot(self) -> SessionSnapshot:
        with self.lock:
            return {
                "device_id": self.device_id,
                "name": self.display_name,
                "state": self.state,
                "hp": self.health_points,
                "round": self.current_round,
                "correct": self.correct_count,
                "incorrect": self.incorrect_count,
                "sequence": self.sequence,
                "last_ack": self.last_acknowledged_sequence,
                "retries": self.mismatch_retry_count,
                "terminated": self.is_terminated,
                "restart_pending": self.pending_timer is not None,
            }


class SessionMachine:
    """Round progression, sequence correlation, retry & scoring for every session.

    The machine itself is stateless apart from its collaborators; all game
    state lives on the `Session` passed to each operation.
    """

    transport: Transport
    topics: Topics
    config: GameConfig
    scheduler: RoundScheduler
    clock: Callable[[], float]

    _log: Logger
    _rng: random.Random

    def __init__(
        self,
        transport: Transport,
        topics: Topics,
        config: GameConfig,
        *,
        timer_factory: TimerFactory = threading.Timer,
        rng: random.Random | None = None,
        clock: Callable[[], float] = monotonic_s,
    ) -> None:
        self.transport = transport
        self.topics = topics
        self.config = config
        self.clock = clock
        self.scheduler = RoundScheduler(self, timer_factory=timer_factory)

        self._log = logging.getLogger("SessionMachine")
        self._rng = rng or random.Random()

    # ==================== Operations ====================

    def begin_game(self, session: Session) -> None:
        """Issue the first challenge of a freshly created session."""
        with session.lock:
            session.game_started_at = self.clock()
            self.start_round(session)

    def start_round(self, session: Session) -> None:
        """Issue the next challenge, or end the game if HP or rounds ran out."""
        with session.lock:
            if session.is_terminated:
                self._log.debug("Not challenging disconnected device %s", session.device_id)
                return

            if session.health_points <= 0 or session.current_round >= self.config.max_rounds:
                self.scheduler.game_over(session)
                return

            session.pending_challenge_value = self._rng.choice(self.config.choices)
            session.sequence += 1
            session.state = "awaiting_response"

            payload: ChallengePayload = {
                "choices": list(self.config.choices),
                "hp": session.health_points,
                "round": session.current_round + 1,
                "sequence": session.sequence,
            }
            self._log.info(
                "Challenge -> [bold]%s[/] round=%d hp=%d seq=%d",
                session.display_name,
                payload["round"],
                payload["hp"],
                payload["sequence"],
            )
            self.publish(self.topics.challenge(session.device_id), payload)

    def receive_ack(self, session: Session, ack_sequence: int) -> None:
        """Record an acknowledgment. Purely observational."""
        with session.lock:
            session.last_acknowledged_sequence = ack_sequence
            self._log.debug("Received ACK for sequence %d from %s", ack_sequence, session.display_name)

    def receive_guess(self, session: Session, guess: int, msg_sequence: int) -> None:
        with session.lock:
            self._log.info(
                "Guess <- [bold]%s[/] guess=%d sent=%s seq=%d",
                session.display_name,
                guess,
                session.pending_challenge_value,
                msg_sequence,
            )

            if session.is_terminated or session.state in ("game_over", "terminated"):
                self._log.warning(
                    "Dropping guess from %s: no challenge outstanding (%s)",
                    session.display_name,
                    session.state,
                )
                return

            try:
                self._check_sequence(session, msg_sequence)
            except SequenceMismatchError as e:
                try:
                    self._resend(session, e)
                except RetryExhaustedError as exc:
                    self._log.error("%s, resetting game", exc)
                    self.scheduler.restart(session, force=True)
                return

            session.mismatch_retry_count = 0

            try:
                self._score(session, guess)
            except MalformedGuessError as e:
                self._log.warning("[bright_yellow on grey30][IGNORING][/] %s from %s", e, session.display_name)

    # ==================== Transport (fire-and-forget) ====================

    def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        try:
            self.transport.publish(topic, payload)
        except Exception:
            self._log.exception("Publish to %s failed", topic)

    def subscribe(self, topics: Iterable[str]) -> None:
        topics = list(topics)
        try:
            self.transport.subscribe(topics)
        except Exception:
            self._log.exception("Subscribe to %s failed", ", ".join(topics))

    def unsubscribe(self, topic: str) -> None:
        try:
            self.transport.unsubscribe(topic)
        except Exception:
            self._log.exception("Unsubscribe from %s failed", topic)

    # ==================== Internals (caller holds session.lock) ====================

    def _check_sequence(self, session: Session, msg_sequence: int) -> None:
        if msg_sequence != session.sequence:
            raise SequenceMismatchError(session.sequence, msg_sequence)

    def _resend(self, session: Session, mismatch: SequenceMismatchError) -> None:
        if session.mismatch_retry_count >= self.config.max_retries:
            raise RetryExhaustedError(session.device_id, session.mismatch_retry_count)

        session.mismatch_retry_count += 1
        self._log.warning(
            "Sequence mismatch for %s (%s), resending (retry %d/%d)",
            session.display_name,
            mismatch,
            session.mismatch_retry_count,
            self.config.max_retries,
        )
        self.start_round(session)

    def _score(self, session: Session, guess: int) -> None:
        if guess not in self.config.choices:
            raise MalformedGuessError(guess)

        outcome: Outcome
        if guess == session.pending_challenge_value:
            outcome = "nice"
            session.correct_count += 1
        else:
            outcome = "nope"
            session.incorrect_count += 1
            session.health_points = max(0, session.health_points - self.config.hp_deduction)

        payload: ResultPayload = {
            "result": outcome,
            "hp": session.health_points,
            "sequence": session.sequence,
        }
        self._log.info("Result -> [bold]%s[/] %s hp=%d", session.display_name, outcome, session.health_points)
        self.publish(self.topics.result(session.device_id), payload)

        session.pending_challenge_value = None
        session.current_round += 1
        session.state = "idle"
        self.start_round(session)
