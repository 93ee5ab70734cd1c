"""FastAPI status API for the coordinator.

Provides endpoints for:
    - Listing every known device with its scoreboard (terminated ones included)
    - Inspecting a single device
    - Forcing a restart of a device's game
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI, HTTPException, Request

from .errors import UnknownDeviceError
from .types import SessionSnapshot, StatusOk  # noqa: TC001 (FastAPI resolves these at runtime)

if TYPE_CHECKING:
    from .coordinator import Coordinator


def _coordinator(request: Request) -> Coordinator:
    return request.app.state.coordinator


def create_app(coordinator: Coordinator) -> FastAPI:
    app = FastAPI(title="Guess Coordinator", description="Live scoreboard for connected devices.")
    app.state.coordinator = coordinator

    @app.get("/devices")
    def get_devices(request: Request) -> list[SessionSnapshot]:
        """Return all known devices with their current state."""
        return _coordinator(request).snapshot()

    @app.get("/devices/{device_id}")
    def get_device(request: Request, device_id: str) -> SessionSnapshot:
        session = _coordinator(request).registry.lookup(device_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown device: {device_id}")
        return session.snapshot()

    @app.post("/devices/{device_id}/restart")
    def post_restart(request: Request, device_id: str) -> StatusOk:
        """Restart the device's game now (cancels any pending auto-restart)."""
        coordinator = _coordinator(request)
        session = coordinator.registry.lookup(device_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown device: {device_id}")
        if session.is_terminated:
            raise HTTPException(status_code=409, detail=f"Device is disconnected: {device_id}")

        try:
            coordinator.restart_device(device_id)
        except UnknownDeviceError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

        return {"ok": True}

    return app
