"""
Runtime execution shell for the call session.

Responsibilities:
- Own the authoritative session state (single writer)
- Call the pure reducer
- Execute commands with side effects (transport calls, preferences, timers)
- Convert transport results and timer expiry into events
- Resolve caller operation futures
- Notify state subscribers

Every method here must run on the runtime's event loop. Callers on other
threads hand off through SessionController.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import replace
from typing import Any, Callable, Coroutine

from callstate.commands import (
    Command,
    CompleteOperation,
    DisconnectTransport,
    EnableMic,
    LogEvent,
    PersistPreferences,
    ReleaseTransport,
    StartTimer,
    StartTransport,
    SyncMicState,
    UpdateMic,
)
from callstate.errors import SessionError
from callstate.events import (
    ConnectFailed,
    ConnectSucceeded,
    Event,
    EventType,
    MicSelectFailed,
    MicSelectSucceeded,
    MicStateSynced,
    MicToggleFailed,
    MicToggleSucceeded,
    ToastTimeout,
)
from callstate.reducer import reduce
from callstate.runtime_context import RuntimeExecutionContext, TransportClientProtocol
from callstate.state_dataclass import SessionState

from observability.logger import log_event


StateListener = Callable[[SessionState], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _reason(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class Runtime:
    """
    Runtime execution boundary for the call session.

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - State transitions are serialized: reduce + swap never awaits
    - All side effects occur *after* state has been updated
    - Transport calls run as background tasks and re-enter handle_event
      with a completion event (single entry point)
    - Runtime never performs state machine logic itself
    """

    def __init__(
        self,
        *,
        initial_state: SessionState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._listeners: list[StateListener] = []

        self._op_ids = itertools.count(1)
        self._operations: dict[int, asyncio.Future[SessionError | None]] = {}

        # Current client handle and the connect run it belongs to
        self._client: TransportClientProtocol | None = None
        self._client_run_id: int = 0

    @property
    def state(self) -> SessionState:
        """
        Return the current immutable session state.

        State is only replaced internally by Runtime via the reducer.
        Consumers must never modify it.
        """
        return self._state

    # ------------------------------------------------------------------
    # Subscriptions / operations
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with every new state. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def register_operation(self) -> tuple[int, asyncio.Future[SessionError | None]]:
        """
        Reserve an op_id and the future the reducer will resolve for it.

        The future's result is None on success, or the SessionError.
        """
        op_id = next(self._op_ids)
        future: asyncio.Future[SessionError | None] = (
            asyncio.get_running_loop().create_future()
        )
        self._operations[op_id] = future
        return op_id, future

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event.

        1. Pass the current state and event to the pure reducer
        2. Swap in the new state and notify subscribers
        3. Execute all emitted commands in order

        This is the *only* entry point for events affecting session state.
        Transport callbacks, operation results and timers all converge here.
        """
        old_state = self._state
        new_state, commands = reduce(old_state, event)
        self._state = new_state

        if new_state is not old_state:
            self._notify(new_state)

        for cmd in commands:
            await self._execute_command(cmd)

    async def wait_idle(self) -> None:
        """Wait for in-flight transport tasks, including the ones they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """
        Cancel timers and in-flight transport tasks, release the client.

        Pending operations resolve with cancellation.
        """
        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        for task in list(self._tasks):
            task.cancel()

        pending = list(self._timers.values()) + list(self._tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        client = self._client
        self._client = None
        if client is not None:
            client.release()

        for future in self._operations.values():
            if not future.done():
                future.cancel()
        self._operations.clear()

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event(
                {
                    **cmd.event,
                    "session_id": self._state.session_id,
                },
                level=cmd.level,
            )

        elif isinstance(cmd, StartTransport):
            client = self._ctx.transport_factory(self._ctx.delegate_for_run(cmd.run_id))
            self._client = client
            self._client_run_id = cmd.run_id
            self._spawn(self._run_start(client, cmd))

        elif isinstance(cmd, DisconnectTransport):
            client = self._take_client(cmd.run_id)
            if client is not None:
                self._spawn(self._run_disconnect(client, cmd.run_id))

        elif isinstance(cmd, ReleaseTransport):
            client = self._take_client(cmd.run_id)
            if client is not None:
                client.release()
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "transport_released",
                    "session_id": self._state.session_id,
                    "connect_run_id": cmd.run_id,
                })

        elif isinstance(cmd, EnableMic):
            client = self._client_for(cmd.run_id)
            if client is None:
                await self.handle_event(
                    MicToggleFailed(
                        event_type=EventType.MIC_TOGGLE_FAILED,
                        ts_ms=_now_ms(),
                        op_id=cmd.op_id,
                        run_id=cmd.run_id,
                        reason="Transport client is gone",
                    )
                )
                return
            self._spawn(self._run_enable_mic(client, cmd))

        elif isinstance(cmd, UpdateMic):
            client = self._client_for(cmd.run_id)
            if client is None:
                await self.handle_event(
                    MicSelectFailed(
                        event_type=EventType.MIC_SELECT_FAILED,
                        ts_ms=_now_ms(),
                        op_id=cmd.op_id,
                        run_id=cmd.run_id,
                        mic_id=cmd.mic_id,
                        reason="Transport client is gone",
                    )
                )
                return
            self._spawn(self._run_update_mic(client, cmd))

        elif isinstance(cmd, SyncMicState):
            client = self._client_for(cmd.run_id)
            if client is None:
                return
            await self.handle_event(
                MicStateSynced(
                    event_type=EventType.MIC_STATE_SYNCED,
                    ts_ms=_now_ms(),
                    run_id=cmd.run_id,
                    is_mic_enabled=client.is_mic_enabled,
                )
            )

        elif isinstance(cmd, PersistPreferences):
            try:
                self._ctx.preferences.update(
                    selected_mic_id=cmd.selected_mic_id,
                    api_key=cmd.api_key,
                )
            except OSError as exc:
                log_event(
                    {
                        "ts_ms": _now_ms(),
                        "event_type": "preferences_write_failed",
                        "session_id": self._state.session_id,
                        "error": str(exc),
                    },
                    level="ERROR",
                )

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
            )

        elif isinstance(cmd, CompleteOperation):
            future = self._operations.pop(cmd.op_id, None)
            if future is not None and not future.done():
                future.set_result(cmd.error)

        else:
            log_event(
                {
                    "ts_ms": _now_ms(),
                    "event_type": "COMMAND_NOT_IMPLEMENTED",
                    "session_id": self._state.session_id,
                    "command_type": type(cmd).__name__,
                },
                level="ERROR",
            )

    # ------------------------------------------------------------------
    # Transport tasks
    # ------------------------------------------------------------------

    async def _run_start(
        self,
        client: TransportClientProtocol,
        cmd: StartTransport,
    ) -> None:
        try:
            await client.start(cmd.config)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            await self.handle_event(
                ConnectFailed(
                    event_type=EventType.CONNECT_FAILED,
                    ts_ms=_now_ms(),
                    op_id=cmd.op_id,
                    run_id=cmd.run_id,
                    reason=_reason(exc),
                )
            )
            return

        if self._client is not client:
            # Disconnected while starting; DisconnectTransport owns teardown
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "orphan_client_started",
                "session_id": self._state.session_id,
                "connect_run_id": cmd.run_id,
            }, level="WARNING")

        await self.handle_event(
            ConnectSucceeded(
                event_type=EventType.CONNECT_SUCCEEDED,
                ts_ms=_now_ms(),
                op_id=cmd.op_id,
                run_id=cmd.run_id,
                mics=tuple(client.get_all_mics()) if self._client is client else (),
            )
        )

    async def _run_disconnect(
        self,
        client: TransportClientProtocol,
        run_id: int,
    ) -> None:
        try:
            await client.disconnect()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "transport_disconnect_failed",
                "session_id": self._state.session_id,
                "connect_run_id": run_id,
                "error": _reason(exc),
            }, level="WARNING")
        finally:
            client.release()

    async def _run_enable_mic(
        self,
        client: TransportClientProtocol,
        cmd: EnableMic,
    ) -> None:
        try:
            await client.enable_mic(cmd.enable)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            await self.handle_event(
                MicToggleFailed(
                    event_type=EventType.MIC_TOGGLE_FAILED,
                    ts_ms=_now_ms(),
                    op_id=cmd.op_id,
                    run_id=cmd.run_id,
                    reason=_reason(exc),
                )
            )
            return

        await self.handle_event(
            MicToggleSucceeded(
                event_type=EventType.MIC_TOGGLE_SUCCEEDED,
                ts_ms=_now_ms(),
                op_id=cmd.op_id,
                run_id=cmd.run_id,
                is_mic_enabled=client.is_mic_enabled,
            )
        )

    async def _run_update_mic(
        self,
        client: TransportClientProtocol,
        cmd: UpdateMic,
    ) -> None:
        try:
            await client.update_mic(cmd.mic_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            await self.handle_event(
                MicSelectFailed(
                    event_type=EventType.MIC_SELECT_FAILED,
                    ts_ms=_now_ms(),
                    op_id=cmd.op_id,
                    run_id=cmd.run_id,
                    mic_id=cmd.mic_id,
                    reason=_reason(exc),
                )
            )
            return

        await self.handle_event(
            MicSelectSucceeded(
                event_type=EventType.MIC_SELECT_SUCCEEDED,
                ts_ms=_now_ms(),
                op_id=cmd.op_id,
                run_id=cmd.run_id,
                mic_id=cmd.mic_id,
            )
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _client_for(self, run_id: int) -> TransportClientProtocol | None:
        if self._client is None or self._client_run_id != run_id:
            return None
        return self._client

    def _take_client(self, run_id: int) -> TransportClientProtocol | None:
        client = self._client_for(run_id)
        if client is not None:
            self._client = None
        return client

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def _notify(self, state: SessionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "state_listener_failed",
                    "session_id": state.session_id,
                    "error": _reason(exc),
                }, level="ERROR")

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter handle_event() when they expire. The event is
        built now so it carries the state it was scheduled for.
        """
        self._cancel_timer(timer_id)

        event = self._construct_timeout_event(
            timer_id=timer_id,
            timeout_event_type=timeout_event_type,
        )

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)
            except asyncio.CancelledError:
                # Timer was replaced or runtime shut down
                return
            if self._timers.get(timer_id) is asyncio.current_task():
                del self._timers[timer_id]
            await self.handle_event(replace(event, ts_ms=_now_ms()))

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _construct_timeout_event(
        self,
        *,
        timer_id: str,
        timeout_event_type: EventType,
    ) -> Event:
        if timeout_event_type is EventType.TOAST_TIMEOUT:
            return ToastTimeout(
                event_type=EventType.TOAST_TIMEOUT,
                ts_ms=_now_ms(),
                toast_seq=self._state.toast.seq,
            )

        raise ValueError(
            f"Unknown timeout event type: {timeout_event_type} "
            f"for timer_id: {timer_id}"
        )
