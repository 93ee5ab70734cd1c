"""Game constants shared by the state machine and the round scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

DEFAULT_HP: Final = 5
DEFAULT_ROUNDS: Final = 10
DEFAULT_MAX_RETRIES: Final = 3
DEFAULT_SETTLE_DELAY: Final = 2.0  # secs between last scored result and game-over
DEFAULT_RESTART_DELAY: Final = 5.0  # secs between game-over and auto-restart


@dataclass(frozen=True)
class GameConfig:
    """Tunables for a single game (the same for every device)."""

    starting_hp: int = DEFAULT_HP
    max_rounds: int = DEFAULT_ROUNDS
    max_retries: int = DEFAULT_MAX_RETRIES
    settle_delay: float = DEFAULT_SETTLE_DELAY
    restart_delay: float = DEFAULT_RESTART_DELAY
    hp_deduction: int = 1
    restart_debounce: float = 1.0
    choices: tuple[int, ...] = field(default=(1, 2, 3))

    def __post_init__(self) -> None:
        if self.starting_hp < 1:
            msg = f"starting_hp must be positive, got {self.starting_hp}"
            raise ValueError(msg)
        if self.max_rounds < 1:
            msg = f"max_rounds must be positive, got {self.max_rounds}"
            raise ValueError(msg)
        if self.max_retries < 0:
            msg = f"max_retries must not be negative, got {self.max_retries}"
            raise ValueError(msg)
        if self.settle_delay < 0 or self.restart_delay < 0:
            msg = "delays must not be negative"
            raise ValueError(msg)
        if not self.choices:
            msg = "choices must not be empty"
            raise ValueError(msg)
