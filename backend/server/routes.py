"""
Route registration for the call session API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Translate request bodies into controller operations
- Map operation results to status codes
- Push state snapshots to WebSocket observers
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from callstate.errors import ErrorKind
from callstate.state_dataclass import SessionState
from observability.logger import log_event
from session.controller import OperationResult, SessionController
from session.preferences import SettingsPreference

from server.snapshot import state_snapshot


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.TRANSPORT: 502,
    ErrorKind.BACKEND: 500,
}


# ------------------------------------------------------------------
# Request / response bodies
# ------------------------------------------------------------------

class ConnectBody(BaseModel):
    # None uses the saved key
    api_key: str | None = None


class SelectMicBody(BaseModel):
    mic_id: str


class PreferencesBody(BaseModel):
    selected_mic_id: str | None = None
    enable_mic: bool = True
    # None keeps the saved key
    api_key: str | None = None


def _operation_response(
    result: OperationResult,
    controller: SessionController,
) -> JSONResponse:
    error = result.error
    body: dict[str, Any] = {
        "ok": result.ok,
        "error": None if error is None else {
            "kind": error.kind.value,
            "message": error.message,
        },
        "session": state_snapshot(controller.state),
    }
    status = 200 if error is None else _STATUS_BY_KIND[error.kind]
    return JSONResponse(status_code=status, content=body)


def _preferences_body(preference: SettingsPreference) -> dict[str, Any]:
    return {
        "selected_mic_id": preference.selected_mic_id,
        "enable_mic": preference.enable_mic,
        # Only whether a key is saved; the key itself never leaves the store
        "has_api_key": bool(preference.api_key),
    }


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _controller() -> SessionController:
        return app.state.controller

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/session")
    async def get_session() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return state_snapshot(_controller().state)

    @app.post("/session/connect")
    async def connect(body: ConnectBody) -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        result = await controller.connect(body.api_key)
        return _operation_response(result, controller)

    @app.post("/session/disconnect")
    async def disconnect() -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        result = await controller.disconnect()
        return _operation_response(result, controller)

    @app.post("/session/mic/toggle")
    async def toggle_mic() -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        result = await controller.toggle_mic()
        return _operation_response(result, controller)

    @app.post("/session/mic/select")
    async def select_mic(body: SelectMicBody) -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        result = await controller.select_mic(body.mic_id)
        return _operation_response(result, controller)

    @app.get("/session/preferences")
    async def get_preferences() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _preferences_body(_controller().load_preferences())

    @app.put("/session/preferences")
    async def put_preferences(body: PreferencesBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        saved = _controller().save_preferences(
            selected_mic_id=body.selected_mic_id,
            enable_mic=body.enable_mic,
            api_key=body.api_key,
        )
        return _preferences_body(saved)

    @app.websocket("/session/events")
    async def session_events(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()
        controller = _controller()

        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

        def _on_state(state: SessionState) -> None:
            queue.put_nowait(state_snapshot(state))

        unsubscribe = controller.subscribe(_on_state)

        async def _pump() -> None:
            while True:
                await ws.send_json(await queue.get())

        await ws.send_json(state_snapshot(controller.state))
        pump = asyncio.create_task(_pump())

        try:
            # Inbound messages are ignored; receive only to observe the close
            while True:
                await ws.receive_text()

        except WebSocketDisconnect:
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": controller.state.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            }, level="ERROR")

        finally:
            unsubscribe()
            pump.cancel()
            # Send failures after the close end up here
            await asyncio.gather(pump, return_exceptions=True)
