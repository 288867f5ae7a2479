"""
Pure call session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every event is handled or explicitly ignored (logged).
- CallState changes only on TransportStateChanged.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from callstate import transcript
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
from callstate.enums.speaker import Speaker
from callstate.errors import (
    BackendError,
    SessionError,
    TransportError,
    ValidationError,
)
from callstate.events import (
    AvailableMicsUpdated,
    BackendErrorReported,
    BotReady,
    BotStartedSpeaking,
    BotStoppedSpeaking,
    BotTranscript,
    BotTTSText,
    ConnectFailed,
    ConnectRequested,
    ConnectSucceeded,
    Connected,
    Disconnected,
    DisconnectRequested,
    Event,
    EventType,
    MicSelectFailed,
    MicSelectRequested,
    MicSelectSucceeded,
    MicStateSynced,
    MicToggleFailed,
    MicToggleRequested,
    MicToggleSucceeded,
    MicUpdated,
    ToastTimeout,
    TracksUpdated,
    TransportEvent,
    TransportStateChanged,
    UserStartedSpeaking,
    UserStoppedSpeaking,
    UserTranscript,
)
from callstate.state_dataclass import SessionState, Toast
from callstate.transport_config import build_transport_config
from constants import (
    ALREADY_CONNECTED_MESSAGE,
    BOT_STARTED_SPEAKING_TEXT,
    BOT_STOPPED_SPEAKING_TEXT,
    CALL_STATE_DISPLAY_TEXT,
    CLIENT_TERMINAL_STATES,
    CONNECT_IN_FLIGHT_MESSAGE,
    ERROR_TOAST_DURATION_MS,
    IN_CALL_STATES,
    MISSING_CREDENTIAL_MESSAGE,
    USER_STARTED_SPEAKING_TEXT,
    USER_STOPPED_SPEAKING_TEXT,
)


# =============================================================================
# Timer IDs
# =============================================================================

TIMER_ERROR_TOAST = "error_toast"

SUPERSEDED_CONNECT_MESSAGE = "Connect attempt was superseded"


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SessionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
    level: str = "INFO",
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "call_state": state.call_state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "connect_run_id": state.connect_run_id,
            "message_count": len(state.messages),
            "details": details or {},
        },
        level=level,
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: SessionState,
    event: Event,
    reason: str,
    level: str = "INFO",
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}, level),)


def _show_error(
    state: SessionState,
    event: Event,
    error: SessionError,
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Display a notification, replacing any visible one.

    The display timer is restarted so the newest message always gets the
    full delay.
    """
    new_state = replace(
        state,
        toast=Toast(
            seq=state.toast.seq + 1,
            message=error.message,
            kind=error.kind,
            visible=True,
        ),
    )
    return new_state, (
        StartTimer(
            timer_id=TIMER_ERROR_TOAST,
            duration_ms=ERROR_TOAST_DURATION_MS,
            timeout_event_type=EventType.TOAST_TIMEOUT,
        ),
        _log(
            new_state,
            event,
            "show_error",
            {
                "kind": error.kind.value,
                "message": error.message,
                "toast_seq": new_state.toast.seq,
            },
            level="WARNING",
        ),
    )


def _reject(
    state: SessionState,
    event: Event,
    op_id: int,
    error: SessionError,
) -> tuple[SessionState, tuple[Command, ...]]:
    new_state, cmds = _show_error(state, event, error)
    return new_state, _logs_last(cmds + (CompleteOperation(op_id=op_id, error=error),))


def _is_stale(state: SessionState, run_id: int) -> bool:
    return run_id != state.connect_run_id or not state.has_client


def _is_foreign(state: SessionState, event: TransportEvent) -> bool:
    return event.run_id is not None and event.run_id != state.connect_run_id


def _system_marker(
    state: SessionState,
    event: Event,
    text: str,
) -> SessionState:
    return transcript.create_message(state, Speaker.SYSTEM, event.ts_ms, text)


# =============================================================================
# Call lifecycle
# =============================================================================

def _on_transport_state_changed(
    state: SessionState,
    event: TransportStateChanged,
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Publish the new state and log it into the transcript.

    Repeated identical states still produce one system message each.
    """
    new_state = replace(
        state,
        call_state=event.state,
        is_in_call=event.state in IN_CALL_STATES,
    )
    new_state = _system_marker(new_state, event, CALL_STATE_DISPLAY_TEXT[event.state])

    cmds: list[Command] = [
        _log(
            new_state,
            event,
            "state_changed",
            {
                "from_state": state.call_state.value,
                "to_state": new_state.call_state.value,
                "is_in_call": new_state.is_in_call,
            },
        ),
    ]

    # Remote hang-up or terminal failure: the handle is dead. While a
    # connect is in flight the start() result owns the cleanup.
    if (
        event.state in CLIENT_TERMINAL_STATES
        and new_state.has_client
        and not new_state.connect_in_flight
    ):
        new_state = replace(
            new_state,
            has_client=False,
            pending_mic_preference=None,
        )
        cmds.append(ReleaseTransport(run_id=new_state.connect_run_id))
        cmds.append(_log(new_state, event, "client_released", {"source": "transport_state"}))

    return new_state, _logs_last(tuple(cmds))


def _on_connect_requested(
    state: SessionState,
    event: ConnectRequested,
) -> tuple[SessionState, tuple[Command, ...]]:
    credential = event.credential.strip()
    if not credential:
        return _reject(state, event, event.op_id, ValidationError(MISSING_CREDENTIAL_MESSAGE))

    if state.connect_in_flight:
        return _reject(state, event, event.op_id, ValidationError(CONNECT_IN_FLIGHT_MESSAGE))

    if state.has_client:
        return _reject(state, event, event.op_id, ValidationError(ALREADY_CONNECTED_MESSAGE))

    run_id = state.connect_run_id + 1
    new_state = transcript.reset(state)
    new_state = replace(
        new_state,
        session_id=event.session_id,
        connect_run_id=run_id,
        connect_in_flight=True,
        has_client=True,
        pending_mic_preference=event.options.preferred_mic_id,
    )

    config = build_transport_config(credential=credential, options=event.options)

    return new_state, _logs_last((
        StartTransport(run_id=run_id, op_id=event.op_id, config=config),
        PersistPreferences(api_key=credential),
        _log(
            new_state,
            event,
            "connect_started",
            {
                "session_id": event.session_id,
                "enable_mic": config.enable_mic,
                "preferred_mic_id": event.options.preferred_mic_id,
            },
        ),
    ))


def _on_connect_succeeded(
    state: SessionState,
    event: ConnectSucceeded,
) -> tuple[SessionState, tuple[Command, ...]]:
    if _is_stale(state, event.run_id) or not state.connect_in_flight:
        new_state, cmds = _ignore(state, event, "stale_connect_result")
        return new_state, cmds + (
            CompleteOperation(
                op_id=event.op_id,
                error=TransportError(SUPERSEDED_CONNECT_MESSAGE),
            ),
        )

    new_state = replace(
        state,
        connect_in_flight=False,
        pending_mic_preference=None,
        available_mics=event.mics,
    )
    cmds: list[Command] = []

    preferred = state.pending_mic_preference
    if preferred is not None:
        new_state = replace(new_state, selected_mic_id=preferred)
        cmds.append(UpdateMic(run_id=event.run_id, op_id=0, mic_id=preferred))

    cmds.append(CompleteOperation(op_id=event.op_id))
    cmds.append(
        _log(
            new_state,
            event,
            "connect_succeeded",
            {
                "mic_count": len(event.mics),
                "applied_mic_id": preferred,
            },
        )
    )
    return new_state, _logs_last(tuple(cmds))


def _on_connect_failed(
    state: SessionState,
    event: ConnectFailed,
) -> tuple[SessionState, tuple[Command, ...]]:
    error = TransportError(event.reason)

    if _is_stale(state, event.run_id) or not state.connect_in_flight:
        new_state, cmds = _ignore(state, event, "stale_connect_result")
        return new_state, cmds + (CompleteOperation(op_id=event.op_id, error=error),)

    new_state = replace(
        state,
        connect_in_flight=False,
        has_client=False,
        pending_mic_preference=None,
    )
    new_state, toast_cmds = _show_error(new_state, event, error)

    return new_state, _logs_last(toast_cmds + (
        ReleaseTransport(run_id=event.run_id),
        CompleteOperation(op_id=event.op_id, error=error),
        _log(new_state, event, "connect_failed", {"reason": event.reason}, level="WARNING"),
    ))


def _on_disconnect_requested(
    state: SessionState,
    event: DisconnectRequested,
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Tear down the client. CallState is left for the transport's final
    state event to update.
    """
    if not state.has_client:
        new_state, cmds = _ignore(state, event, "no_active_client")
        return new_state, cmds + (CompleteOperation(op_id=event.op_id),)

    new_state = replace(
        state,
        has_client=False,
        connect_in_flight=False,
        pending_mic_preference=None,
    )
    return new_state, _logs_last((
        DisconnectTransport(run_id=state.connect_run_id),
        CompleteOperation(op_id=event.op_id),
        _log(
            new_state,
            event,
            "disconnect_requested",
            {"connect_was_in_flight": state.connect_in_flight},
        ),
    ))


# =============================================================================
# Microphone
# =============================================================================

def _on_mic_toggle_requested(
    state: SessionState,
    event: MicToggleRequested,
) -> tuple[SessionState, tuple[Command, ...]]:
    if not state.has_client:
        new_state, cmds = _ignore(state, event, "no_active_client")
        return new_state, cmds + (CompleteOperation(op_id=event.op_id),)

    enable = not state.is_mic_enabled
    return state, (
        EnableMic(run_id=state.connect_run_id, op_id=event.op_id, enable=enable),
        _log(state, event, "mic_toggle_requested", {"enable": enable}),
    )


def _on_mic_toggle_succeeded(
    state: SessionState,
    event: MicToggleSucceeded,
) -> tuple[SessionState, tuple[Command, ...]]:
    if _is_stale(state, event.run_id):
        new_state, cmds = _ignore(state, event, "stale_mic_toggle_result")
        return new_state, cmds + (CompleteOperation(op_id=event.op_id),)

    new_state = replace(state, is_mic_enabled=event.is_mic_enabled)
    return new_state, (
        CompleteOperation(op_id=event.op_id),
        _log(new_state, event, "mic_toggled", {"is_mic_enabled": event.is_mic_enabled}),
    )


def _on_mic_toggle_failed(
    state: SessionState,
    event: MicToggleFailed,
) -> tuple[SessionState, tuple[Command, ...]]:
    error = TransportError(event.reason)
    if _is_stale(state, event.run_id):
        new_state, cmds = _ignore(state, event, "stale_mic_toggle_result")
        return new_state, cmds + (CompleteOperation(op_id=event.op_id, error=error),)

    return _reject(state, event, event.op_id, error)


def _on_mic_select_requested(
    state: SessionState,
    event: MicSelectRequested,
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Selection is applied locally before the transport confirms it.
    A failed switch does not revert it.
    """
    new_state = replace(state, selected_mic_id=event.mic_id)
    cmds: list[Command] = [PersistPreferences(selected_mic_id=event.mic_id)]

    if new_state.has_client:
        cmds.append(
            UpdateMic(run_id=state.connect_run_id, op_id=event.op_id, mic_id=event.mic_id)
        )
    else:
        cmds.append(CompleteOperation(op_id=event.op_id))

    cmds.append(
        _log(
            new_state,
            event,
            "mic_selected",
            {"mic_id": event.mic_id, "forwarded": new_state.has_client},
        )
    )
    return new_state, _logs_last(tuple(cmds))


def _on_mic_select_succeeded(
    state: SessionState,
    event: MicSelectSucceeded,
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (
        CompleteOperation(op_id=event.op_id),
        _log(state, event, "mic_switch_accepted", {"mic_id": event.mic_id}),
    )


def _on_mic_select_failed(
    state: SessionState,
    event: MicSelectFailed,
) -> tuple[SessionState, tuple[Command, ...]]:
    error = TransportError(event.reason)
    if _is_stale(state, event.run_id):
        new_state, cmds = _ignore(state, event, "stale_mic_select_result")
        return new_state, cmds + (CompleteOperation(op_id=event.op_id, error=error),)

    return _reject(state, event, event.op_id, error)


def _on_mic_updated(
    state: SessionState,
    event: MicUpdated,
) -> tuple[SessionState, tuple[Command, ...]]:
    mic_id = event.mic.id if event.mic is not None else None
    new_state = replace(state, selected_mic_id=mic_id)
    cmds: list[Command] = []
    # A null device is never persisted
    if mic_id is not None:
        cmds.append(PersistPreferences(selected_mic_id=mic_id))
    cmds.append(_log(new_state, event, "mic_updated", {"mic_id": mic_id}))
    return new_state, tuple(cmds)


# =============================================================================
# Transcript
# =============================================================================

def _on_user_transcript(
    state: SessionState,
    event: UserTranscript,
) -> tuple[SessionState, tuple[Command, ...]]:
    # Interim recognition results are never shown
    if not event.final:
        return _ignore(state, event, "interim_transcript", level="DEBUG")

    new_state = transcript.append_to_live(state, Speaker.USER, event.text, event.ts_ms)
    if new_state is None:
        return _ignore(state, event, "no_live_user_message", level="WARNING")

    return new_state, (
        _log(new_state, event, "user_text_appended", {"chars": len(event.text)}, level="DEBUG"),
    )


def _on_bot_tts_text(
    state: SessionState,
    event: BotTTSText,
) -> tuple[SessionState, tuple[Command, ...]]:
    new_state = transcript.append_to_live(state, Speaker.BOT, event.text, event.ts_ms)
    if new_state is None:
        return _ignore(state, event, "no_live_bot_message", level="WARNING")

    return new_state, (
        _log(new_state, event, "bot_text_appended", {"chars": len(event.text)}, level="DEBUG"),
    )


def _on_speech_boundary(
    state: SessionState,
    event: Event,
    marker: str,
    opens: Speaker | None,
) -> tuple[SessionState, tuple[Command, ...]]:
    """Write the system marker, then open a new message for the speaker (if any)."""
    new_state = _system_marker(state, event, marker)
    if opens is not None:
        new_state = transcript.create_message(new_state, opens, event.ts_ms)
    return new_state, (_log(new_state, event, "speech_marker", {"marker": marker}),)


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: SessionState, event: Event
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Pure reducer for the call session.

    Given the current session state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every event is handled or explicitly ignored
    - Version-safe: ignores completions with stale connect run IDs and
      callbacks from clients of an earlier connect run
    """
    if isinstance(event, TransportEvent) and _is_foreign(state, event):
        return _ignore(state, event, "stale_transport_callback")

    # ------------------------------------------------------------------
    # Call lifecycle
    # ------------------------------------------------------------------
    if isinstance(event, TransportStateChanged):
        return _on_transport_state_changed(state, event)

    if isinstance(event, BotReady):
        new_state = replace(state, is_bot_ready=True)
        return new_state, (_log(new_state, event, "bot_ready"),)

    if isinstance(event, Connected):
        if not state.has_client:
            return _ignore(state, event, "no_active_client")
        return state, (
            SyncMicState(run_id=state.connect_run_id),
            _log(state, event, "transport_connected"),
        )

    if isinstance(event, MicStateSynced):
        if _is_stale(state, event.run_id):
            return _ignore(state, event, "stale_mic_state")
        new_state = replace(state, is_mic_enabled=event.is_mic_enabled)
        return new_state, (
            _log(new_state, event, "mic_state_synced", {"is_mic_enabled": event.is_mic_enabled}),
        )

    if isinstance(event, Disconnected):
        new_state = replace(state, is_bot_ready=False)
        return new_state, (_log(new_state, event, "transport_disconnected"),)

    if isinstance(event, BackendErrorReported):
        return _show_error(state, event, BackendError(event.message))

    # ------------------------------------------------------------------
    # Client requests and their completions
    # ------------------------------------------------------------------
    if isinstance(event, ConnectRequested):
        return _on_connect_requested(state, event)

    if isinstance(event, ConnectSucceeded):
        return _on_connect_succeeded(state, event)

    if isinstance(event, ConnectFailed):
        return _on_connect_failed(state, event)

    if isinstance(event, DisconnectRequested):
        return _on_disconnect_requested(state, event)

    if isinstance(event, MicToggleRequested):
        return _on_mic_toggle_requested(state, event)

    if isinstance(event, MicToggleSucceeded):
        return _on_mic_toggle_succeeded(state, event)

    if isinstance(event, MicToggleFailed):
        return _on_mic_toggle_failed(state, event)

    if isinstance(event, MicSelectRequested):
        return _on_mic_select_requested(state, event)

    if isinstance(event, MicSelectSucceeded):
        return _on_mic_select_succeeded(state, event)

    if isinstance(event, MicSelectFailed):
        return _on_mic_select_failed(state, event)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------
    if isinstance(event, AvailableMicsUpdated):
        new_state = replace(state, available_mics=event.mics)
        return new_state, (
            _log(new_state, event, "mics_updated", {"mic_count": len(event.mics)}),
        )

    if isinstance(event, MicUpdated):
        return _on_mic_updated(state, event)

    # ------------------------------------------------------------------
    # Speech boundaries
    # ------------------------------------------------------------------
    if isinstance(event, UserStartedSpeaking):
        return _on_speech_boundary(state, event, USER_STARTED_SPEAKING_TEXT, Speaker.USER)

    if isinstance(event, UserStoppedSpeaking):
        return _on_speech_boundary(state, event, USER_STOPPED_SPEAKING_TEXT, None)

    if isinstance(event, BotStartedSpeaking):
        return _on_speech_boundary(state, event, BOT_STARTED_SPEAKING_TEXT, Speaker.BOT)

    if isinstance(event, BotStoppedSpeaking):
        return _on_speech_boundary(state, event, BOT_STOPPED_SPEAKING_TEXT, None)

    # ------------------------------------------------------------------
    # Text fragments
    # ------------------------------------------------------------------
    if isinstance(event, UserTranscript):
        return _on_user_transcript(state, event)

    if isinstance(event, BotTTSText):
        return _on_bot_tts_text(state, event)

    if isinstance(event, BotTranscript):
        return state, (_log(state, event, "bot_transcript", {"text": event.text}, level="DEBUG"),)

    if isinstance(event, TracksUpdated):
        return state, (_log(state, event, "tracks_updated", {"tracks": event.tracks}, level="DEBUG"),)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    if isinstance(event, ToastTimeout):
        if event.toast_seq != state.toast.seq:
            return _ignore(state, event, "stale_toast_timeout")
        new_state = replace(state, toast=Toast(seq=state.toast.seq))
        return new_state, (_log(new_state, event, "toast_cleared", {"toast_seq": event.toast_seq}),)

    return _ignore(state, event, "unhandled_event", level="WARNING")
