import os
import sys
from typing import Final, NamedTuple

from dotenv import load_dotenv

from coordinator import __prog__

from .utils import cerr

_PORT_MIN: Final = 1
_PORT_MAX: Final = 65535

_DEFAULT_APP_PORT: Final = 8000
_DEFAULT_NAMESPACE: Final = "esp32"

# MQTT wildcard and level separator characters
_TOPIC_RESERVED: Final = frozenset("/+#")


class EnvConf(NamedTuple):
    mqtt_broker: str
    mqtt_port: int
    app_port: int
    topic_namespace: str


def _validate_port(name: str, default: int | None = None) -> int:
    val = os.getenv(name)
    if val is None or not val.strip():
        if default is not None:
            return default
        msg = f"[cyan]{name}[/] is not set"
        raise ValueError(msg)

    try:
        port = int(val)
    except ValueError as e:
        msg = f"[cyan]{name}[/] is not an integer: {val}"
        raise ValueError(msg) from e
    else:
        if not (_PORT_MIN <= port <= _PORT_MAX):
            msg = f"[cyan]{name}[/] is out of range: {val}"
            raise ValueError(msg)

    return port


def _validate_broker(name: str) -> str:
    val = os.getenv(name)
    if val is None or not val.strip():
        msg = f"[cyan]{name}[/] is not set"
        raise ValueError(msg)

    return val.strip()


def _validate_namespace(name: str) -> str:
    val = os.getenv(name, "").strip()
    if not val:
        return _DEFAULT_NAMESPACE

    if bad := sorted(_TOPIC_RESERVED.intersection(val)):
        msg = f"[cyan]{name}[/] must not contain {' '.join(bad)}: {val}"
        raise ValueError(msg)

    return val


def get_env_vars() -> EnvConf:
    """Load & validate environment (exits with status 1 listing every problem)."""
    load_dotenv()

    errs: list[str] = []
    broker: str | None = None
    mport: int | None = None
    aport: int | None = None
    namespace: str | None = None

    try:
        broker = _validate_broker("MQTT_BROKER")
    except ValueError as e:
        errs.append(str(e))

    try:
        mport = _validate_port("MQTT_PORT")
    except ValueError as e:
        errs.append(str(e))

    try:
        aport = _validate_port("APP_PORT", default=_DEFAULT_APP_PORT)
    except ValueError as e:
        errs.append(str(e))

    try:
        namespace = _validate_namespace("TOPIC_NAMESPACE")
    except ValueError as e:
        errs.append(str(e))

    if errs:
        cerr.print("".join(f"[bold bright_red]{__prog__}: env-error:[/] {e}\n" for e in errs), end="")
        sys.exit(1)

    return EnvConf(
        mqtt_broker=broker,  # type: ignore[arg-type]
        mqtt_port=mport,  # type: ignore[arg-type]
        app_port=aport,  # type: ignore[arg-type]
        topic_namespace=namespace,  # type: ignore[arg-type]
    )
