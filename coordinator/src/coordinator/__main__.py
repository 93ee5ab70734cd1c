"""
Coordinator entry point.

    1. Parse CLI args & load MQTT settings from the environment (.env supported)
    2. Wire transport -> coordinator and subscribe to the fleet topics
    3. Run the paho network loop in a background thread
    4. Serve the status API via uvicorn (or just wait, with --no-api)
    5. On shutdown: cancel every game timer, then disconnect
"""

from __future__ import annotations

import contextlib
import logging
import signal
import sys
import threading
from typing import TYPE_CHECKING

import uvicorn

from .app import create_app
from .coordinator import Coordinator
from .misc import get_cli_args, get_env_vars, init_logging
from .topics import Topics
from .transport import MqttTransport

if TYPE_CHECKING:
    from types import FrameType


def _raise_exit(signum: int, frame: FrameType | None) -> None:
    _ = frame
    logging.getLogger("Coordinator").info("Shutting down on signal %d", signum)
    sys.exit(0)


def main() -> None:
    args = get_cli_args()
    init_logging(args.log_level)
    env = get_env_vars()

    transport = MqttTransport(broker=env.mqtt_broker, port=env.mqtt_port)
    coordinator = Coordinator(transport, config=args.game, topics=Topics(env.topic_namespace))
    transport.on_message = coordinator.handle_message
    coordinator.start()

    if not transport.connect():
        sys.exit(1)

    try:
        if args.serve_api:
            # uvicorn handles SIGINT/SIGTERM itself and returns
            uvicorn.run(create_app(coordinator), host="0.0.0.0", port=env.app_port, log_config=None)  # noqa: S104
        else:
            signal.signal(signal.SIGTERM, _raise_exit)
            with contextlib.suppress(KeyboardInterrupt):
                threading.Event().wait()
    finally:
        coordinator.shutdown()
        transport.disconnect()


if __name__ == "__main__":
    main()
