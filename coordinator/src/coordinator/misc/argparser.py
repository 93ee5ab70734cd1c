from __future__ import annotations

from argparse import ArgumentParser, ArgumentTypeError
from typing import TYPE_CHECKING, NamedTuple, cast

from rich_argparse import RichHelpFormatter

from coordinator.config import (
    DEFAULT_HP,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RESTART_DELAY,
    DEFAULT_ROUNDS,
    DEFAULT_SETTLE_DELAY,
    GameConfig,
)

from .logging_conf import LOG_ABBREV_2_LVL, LOG_LVL_2_COLOR

if TYPE_CHECKING:
    from .logging_conf import LogLvl


def _positive_int(val: str) -> int:
    try:
        num = int(val)
    except ValueError as e:
        msg = f"not an integer: {val}"
        raise ArgumentTypeError(msg) from e
    if num < 1:
        msg = f"must be positive: {val}"
        raise ArgumentTypeError(msg)
    return num


def _non_negative_int(val: str) -> int:
    try:
        num = int(val)
    except ValueError as e:
        msg = f"not an integer: {val}"
        raise ArgumentTypeError(msg) from e
    if num < 0:
        msg = f"must not be negative: {val}"
        raise ArgumentTypeError(msg)
    return num


def _seconds(val: str) -> float:
    try:
        secs = float(val)
    except ValueError as e:
        msg = f"not a number: {val}"
        raise ArgumentTypeError(msg) from e
    if secs < 0:
        msg = f"must not be negative: {val}"
        raise ArgumentTypeError(msg)
    return secs


def _mk_parser() -> ArgumentParser:
    RichHelpFormatter.usage_markup = True
    RichHelpFormatter.styles.update(
        {
            "argparse.args": "cyan",
            "argparse.groups": "green bold",
            "argparse.metavar": "dim cyan",
            "argparse.usage": "dim cyan",
            "argparse.prog": "cyan bold",
        },
    )

    parser = ArgumentParser(
        description="MQTT game coordinator for guess-the-number devices",
        formatter_class=RichHelpFormatter,
        usage="%(prog)s [cyan]\\[options][/]",
    )

    arg = parser.add_argument

    log_lvl_choices = ", ".join(
        f"[{clr}]{abbr}[/]" for abbr, clr in zip(LOG_ABBREV_2_LVL, LOG_LVL_2_COLOR.values(), strict=True)
    )

    arg(
        "-l",
        "--log-level",
        type=str,
        default="INF",
        help=f"base logging level (default: [yellow]INF[/])\t[{log_lvl_choices}]",
        choices=LOG_ABBREV_2_LVL,
        dest="log_level",
        metavar="L",
    )

    game = parser.add_argument_group("game")
    game.add_argument(
        "--hp",
        type=_positive_int,
        default=DEFAULT_HP,
        help=f"starting HP when a device does not send one (default: [yellow]{DEFAULT_HP}[/])",
        dest="starting_hp",
        metavar="N",
    )
    game.add_argument(
        "--rounds",
        type=_positive_int,
        default=DEFAULT_ROUNDS,
        help=f"rounds per game (default: [yellow]{DEFAULT_ROUNDS}[/])",
        dest="max_rounds",
        metavar="N",
    )
    game.add_argument(
        "--max-retries",
        type=_non_negative_int,
        default=DEFAULT_MAX_RETRIES,
        help=f"sequence mismatches tolerated before a reset (default: [yellow]{DEFAULT_MAX_RETRIES}[/])",
        dest="max_retries",
        metavar="N",
    )
    game.add_argument(
        "--settle-delay",
        type=_seconds,
        default=DEFAULT_SETTLE_DELAY,
        help=f"secs between last result and game-over (default: [yellow]{DEFAULT_SETTLE_DELAY}[/])",
        dest="settle_delay",
        metavar="S",
    )
    game.add_argument(
        "--restart-delay",
        type=_seconds,
        default=DEFAULT_RESTART_DELAY,
        help=f"secs between game-over and auto-restart (default: [yellow]{DEFAULT_RESTART_DELAY}[/])",
        dest="restart_delay",
        metavar="S",
    )

    arg("--no-api", action="store_true", help="do not serve the status API", dest="no_api")
    return parser


class _Args(NamedTuple):
    log_level: LogLvl
    game: GameConfig
    serve_api: bool


def get_cli_args(argv: list[str] | None = None) -> _Args:
    """Create & return parsed arguments."""

    parser = _mk_parser()
    args = parser.parse_args(argv)

    return _Args(
        log_level=LOG_ABBREV_2_LVL[cast("str", args.log_level)],
        game=GameConfig(
            starting_hp=args.starting_hp,
            max_rounds=args.max_rounds,
            max_retries=args.max_retries,
            settle_delay=args.settle_delay,
            restart_delay=args.restart_delay,
        ),
        serve_api=not args.no_api,
    )
