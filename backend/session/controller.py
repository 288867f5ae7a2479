"""
Session controller.

Responsibilities:
- Owns the Runtime for one call session
- Exposes the caller operations (connect, disconnect, mic toggle/select)
  as awaitables returning an OperationResult
- Hands transport callbacks to the runtime's event loop (callbacks may
  arrive on any thread, in any order). Each client gets a RunDelegate
  bound to its connect run. Calling the on_* methods on the controller
  itself submits callbacks not bound to any client
- Builds the session options from saved preferences and AppConfig

NOT responsible for:
- Any state machine logic (reducer)
- Executing commands (runtime)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, TYPE_CHECKING
from uuid import uuid4

from callstate.errors import SessionError
from callstate.events import (
    ConnectRequested,
    DisconnectRequested,
    Event,
    EventType,
    MicSelectRequested,
    MicToggleRequested,
    SessionOptions,
)
from callstate.runtime import Runtime
from callstate.runtime_context import (
    RuntimeExecutionContext,
    TransportDelegate,
    TransportFactory,
)
from callstate.state_dataclass import SessionState

from session.delegate import RunDelegate, TransportCallbacks
from session.preferences import PreferenceStore, SettingsPreference

from observability.logger import log_event

if TYPE_CHECKING:
    from config import AppConfig


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Operation result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class OperationResult:
    """
    Return value for controller operations.

    error is None on success. Failures are also shown as a notification
    in the session state.
    """
    error: SessionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ------------------------------------------------------------------
# SessionController
# ------------------------------------------------------------------

class SessionController(TransportCallbacks):
    """
    One controller == one call session (reused across connect attempts).

    All async methods must be awaited on the same event loop.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        transport_factory: TransportFactory,
        preferences: PreferenceStore,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._config = config
        self._preferences = preferences
        self._loop = loop
        self._dispatch_tasks: set[asyncio.Task[None]] = set()

        self.runtime = Runtime(
            initial_state=SessionState(),
            context=RuntimeExecutionContext(
                transport_factory=transport_factory,
                delegate_for_run=self.delegate_for_run,
                preferences=preferences,
            ),
        )

    @property
    def state(self) -> SessionState:
        return self.runtime.state

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """Observe every published state. Listeners run on the event loop."""
        return self.runtime.subscribe(listener)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def connect(self, credential: str | None = None) -> OperationResult:
        """
        Start a call.

        credential=None uses the saved API key. The result resolves once
        the transport has started (or failed).
        """
        self._bind_loop()
        # Read before the first await; the request must reach the reducer
        # ahead of any later connect
        saved = self._preferences.load()
        if credential is None:
            credential = saved.api_key

        options = SessionOptions(
            enable_mic=saved.enable_mic,
            preferred_mic_id=saved.selected_mic_id,
            bot_instructions=self._config.bot_instructions,
            bot_voice=self._config.bot_voice,
            greeting_prompt=self._config.greeting_prompt,
        )

        op_id, future = self.runtime.register_operation()
        await self.runtime.handle_event(
            ConnectRequested(
                event_type=EventType.CONNECT_REQUESTED,
                ts_ms=_now_ms(),
                op_id=op_id,
                credential=credential,
                session_id=_new_session_id(),
                options=options,
            )
        )
        return OperationResult(error=await future)

    async def disconnect(self) -> OperationResult:
        """Tear down the current client. A no-op without one."""
        self._bind_loop()
        op_id, future = self.runtime.register_operation()
        await self.runtime.handle_event(
            DisconnectRequested(
                event_type=EventType.DISCONNECT_REQUESTED,
                ts_ms=_now_ms(),
                op_id=op_id,
            )
        )
        return OperationResult(error=await future)

    async def toggle_mic(self) -> OperationResult:
        self._bind_loop()
        op_id, future = self.runtime.register_operation()
        await self.runtime.handle_event(
            MicToggleRequested(
                event_type=EventType.MIC_TOGGLE_REQUESTED,
                ts_ms=_now_ms(),
                op_id=op_id,
            )
        )
        return OperationResult(error=await future)

    async def select_mic(self, mic_id: str) -> OperationResult:
        """
        Select an input device.

        The selection is saved immediately and kept even when the
        transport rejects the switch.
        """
        self._bind_loop()
        op_id, future = self.runtime.register_operation()
        await self.runtime.handle_event(
            MicSelectRequested(
                event_type=EventType.MIC_SELECT_REQUESTED,
                ts_ms=_now_ms(),
                op_id=op_id,
                mic_id=mic_id,
            )
        )
        return OperationResult(error=await future)

    def load_preferences(self) -> SettingsPreference:
        return self._preferences.load()

    def save_preferences(
        self,
        *,
        selected_mic_id: str | None,
        enable_mic: bool,
        api_key: str | None = None,
    ) -> SettingsPreference:
        """
        Replace the saved mic choice and mic default. api_key=None keeps
        the saved key. Takes effect on the next connect.
        """
        current = self._preferences.load()
        preference = SettingsPreference(
            selected_mic_id=selected_mic_id,
            enable_mic=enable_mic,
            api_key=current.api_key if api_key is None else api_key,
        )
        self._preferences.save(preference)
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "preferences_saved",
            "session_id": self.state.session_id,
            "selected_mic_id": preference.selected_mic_id,
            "enable_mic": preference.enable_mic,
        })
        return preference

    async def flush(self) -> None:
        """
        Wait until every callback handed off so far has been processed,
        together with the transport calls it triggered.
        """
        while True:
            # call_soon_threadsafe callbacks run on the next loop iteration
            await asyncio.sleep(0)
            pending = list(self._dispatch_tasks)
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                continue
            await self.runtime.wait_idle()
            if not self._dispatch_tasks:
                return

    async def shutdown(self) -> None:
        await self.flush()
        await self.runtime.shutdown()

    # ------------------------------------------------------------------
    # Transport delegate
    # ------------------------------------------------------------------

    def delegate_for_run(self, run_id: int) -> TransportDelegate:
        """Delegate for the client built by connect run run_id."""
        return RunDelegate(self._submit, run_id)

    # ------------------------------------------------------------------
    # Loop hand-off
    # ------------------------------------------------------------------

    def _bind_loop(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

    def _submit(self, event: Event) -> None:
        """
        Hand a transport callback to the event loop.

        Safe from any thread. Events are reduced in submission order.
        """
        log_event({
            "ts_ms": event.ts_ms,
            "event_type": "transport_callback",
            "session_id": self.state.session_id,
            "callback": event.event_type.value,
        }, level="DEBUG")

        loop = self._loop
        if loop is None:
            try:
                # Called on the loop thread before any operation
                loop = self._loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None

        if loop is None or loop.is_closed():
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "DISPATCH_WITHOUT_LOOP",
                "dropped_event": event.event_type.value,
            }, level="WARNING")
            return

        loop.call_soon_threadsafe(self._schedule, event)

    def _schedule(self, event: Event) -> None:
        task = asyncio.ensure_future(self.runtime.handle_event(event))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)
