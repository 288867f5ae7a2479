"""
Unified event definitions for the call session reducer.

Rules:
- Events describe facts that have occurred (or requests that were made).
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Completion events and transport callbacks carry the connect run_id they
belong to so the reducer can drop anything from a superseded client.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from callstate.enums.call_state import CallState


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every event type must be explicitly handled or explicitly ignored
    by the reducer.
    """

    # ------------------------------------------------------------------
    # Transport lifecycle callbacks
    # ------------------------------------------------------------------
    TRANSPORT_STATE_CHANGED = "TRANSPORT_STATE_CHANGED"
    BOT_READY = "BOT_READY"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    BACKEND_ERROR = "BACKEND_ERROR"

    # ------------------------------------------------------------------
    # Transport device callbacks
    # ------------------------------------------------------------------
    AVAILABLE_MICS_UPDATED = "AVAILABLE_MICS_UPDATED"
    MIC_UPDATED = "MIC_UPDATED"

    # ------------------------------------------------------------------
    # Transport speech / text callbacks
    # ------------------------------------------------------------------
    USER_STARTED_SPEAKING = "USER_STARTED_SPEAKING"
    USER_STOPPED_SPEAKING = "USER_STOPPED_SPEAKING"
    BOT_STARTED_SPEAKING = "BOT_STARTED_SPEAKING"
    BOT_STOPPED_SPEAKING = "BOT_STOPPED_SPEAKING"
    USER_TRANSCRIPT = "USER_TRANSCRIPT"
    BOT_TTS_TEXT = "BOT_TTS_TEXT"
    BOT_TRANSCRIPT = "BOT_TRANSCRIPT"
    TRACKS_UPDATED = "TRACKS_UPDATED"

    # ------------------------------------------------------------------
    # Client requests
    # ------------------------------------------------------------------
    CONNECT_REQUESTED = "CONNECT_REQUESTED"
    DISCONNECT_REQUESTED = "DISCONNECT_REQUESTED"
    MIC_TOGGLE_REQUESTED = "MIC_TOGGLE_REQUESTED"
    MIC_SELECT_REQUESTED = "MIC_SELECT_REQUESTED"

    # ------------------------------------------------------------------
    # Async operation completions
    # ------------------------------------------------------------------
    CONNECT_SUCCEEDED = "CONNECT_SUCCEEDED"
    CONNECT_FAILED = "CONNECT_FAILED"
    MIC_TOGGLE_SUCCEEDED = "MIC_TOGGLE_SUCCEEDED"
    MIC_TOGGLE_FAILED = "MIC_TOGGLE_FAILED"
    MIC_SELECT_SUCCEEDED = "MIC_SELECT_SUCCEEDED"
    MIC_SELECT_FAILED = "MIC_SELECT_FAILED"
    MIC_STATE_SYNCED = "MIC_STATE_SYNCED"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    TOAST_TIMEOUT = "TOAST_TIMEOUT"


# =============================================================================
# Shared value types
# =============================================================================

@dataclass(frozen=True)
class MediaDeviceInfo:
    """Input device descriptor as reported by the transport."""
    id: str
    name: str


@dataclass(frozen=True)
class SessionOptions:
    """
    Everything needed to build the transport configuration for a connect.

    Assembled by the controller from preferences and AppConfig so the
    reducer stays free of IO.
    """
    enable_mic: bool
    preferred_mic_id: str | None
    bot_instructions: str
    bot_voice: str
    greeting_prompt: str


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class OperationEvent(Event):
    """
    Base class for client requests awaiting a result.

    op_id identifies the caller's pending future; the reducer answers it
    with exactly one CompleteOperation command.
    """

    op_id: int


@dataclass(frozen=True, kw_only=True)
class TransportEvent(Event):
    """
    Base class for transport callbacks.

    run_id is the connect run of the client that raised the callback.
    None means the callback is not bound to a particular client.
    """

    run_id: int | None = None


# =============================================================================
# Transport Lifecycle Events
# =============================================================================

@dataclass(frozen=True)
class TransportStateChanged(TransportEvent):
    """The transport moved to a new connection state."""
    state: CallState


@dataclass(frozen=True)
class BotReady(TransportEvent):
    """The bot finished its own startup and can talk."""
    data: dict[str, Any] | None = None


@dataclass(frozen=True)
class Connected(TransportEvent):
    """Transport-level connection established."""


@dataclass(frozen=True)
class Disconnected(TransportEvent):
    """Transport-level connection closed."""


@dataclass(frozen=True)
class BackendErrorReported(TransportEvent):
    """Generic error message pushed by the transport."""
    message: str


# =============================================================================
# Transport Device Events
# =============================================================================

@dataclass(frozen=True)
class AvailableMicsUpdated(TransportEvent):
    """The set of input devices changed."""
    mics: tuple[MediaDeviceInfo, ...]


@dataclass(frozen=True)
class MicUpdated(TransportEvent):
    """The transport switched (or lost) its active input device."""
    mic: MediaDeviceInfo | None


# =============================================================================
# Speech / Text Events
# =============================================================================

@dataclass(frozen=True)
class UserStartedSpeaking(TransportEvent):
    """User speech began."""


@dataclass(frozen=True)
class UserStoppedSpeaking(TransportEvent):
    """User speech ended. A final transcript may still follow."""


@dataclass(frozen=True)
class BotStartedSpeaking(TransportEvent):
    """Bot audio output began."""


@dataclass(frozen=True)
class BotStoppedSpeaking(TransportEvent):
    """Bot audio output ended."""


@dataclass(frozen=True)
class UserTranscript(TransportEvent):
    """
    Speech recognition fragment for the user.

    Interim fragments (final=False) may be revised by later ones.
    """
    text: str
    final: bool = False


@dataclass(frozen=True)
class BotTTSText(TransportEvent):
    """Incremental text of what the bot is saying."""
    text: str


@dataclass(frozen=True)
class BotTranscript(TransportEvent):
    """Full LLM text for a bot turn. Logged only."""
    text: str


@dataclass(frozen=True)
class TracksUpdated(TransportEvent):
    """Media tracks changed. Logged only."""
    tracks: dict[str, Any] | None = None


# =============================================================================
# Client Requests
# =============================================================================

@dataclass(frozen=True)
class ConnectRequested(OperationEvent):
    """
    Caller asked to start a call.

    credential is passed untrimmed; validation happens in the reducer.
    """
    credential: str
    session_id: str
    options: SessionOptions


@dataclass(frozen=True)
class DisconnectRequested(OperationEvent):
    """Caller asked to end the call."""


@dataclass(frozen=True)
class MicToggleRequested(OperationEvent):
    """Caller asked to flip microphone capture."""


@dataclass(frozen=True)
class MicSelectRequested(OperationEvent):
    """Caller picked an input device."""
    mic_id: str


# =============================================================================
# Operation Completions
# =============================================================================

@dataclass(frozen=True)
class ConnectSucceeded(OperationEvent):
    """Transport start completed; mics is the refreshed device list."""
    run_id: int
    mics: tuple[MediaDeviceInfo, ...]


@dataclass(frozen=True)
class ConnectFailed(OperationEvent):
    """Transport start raised."""
    run_id: int
    reason: str


@dataclass(frozen=True)
class MicToggleSucceeded(OperationEvent):
    """
    Mic toggle completed.

    is_mic_enabled is the transport's value after the toggle, which may
    differ from what was requested.
    """
    run_id: int
    is_mic_enabled: bool


@dataclass(frozen=True)
class MicToggleFailed(OperationEvent):
    """Mic toggle raised."""
    run_id: int
    reason: str


@dataclass(frozen=True)
class MicSelectSucceeded(OperationEvent):
    """Device switch accepted by the transport. op_id is 0 when nobody awaits it."""
    run_id: int
    mic_id: str


@dataclass(frozen=True)
class MicSelectFailed(OperationEvent):
    """Device switch raised. op_id is 0 when nobody awaits the switch."""
    run_id: int
    mic_id: str
    reason: str


@dataclass(frozen=True)
class MicStateSynced(Event):
    """Authoritative mic-enabled flag read back from the transport."""
    run_id: int
    is_mic_enabled: bool


# =============================================================================
# Timer Events
# =============================================================================

@dataclass(frozen=True)
class ToastTimeout(Event):
    """
    Notification display delay elapsed.

    toast_seq is the sequence of the notification the timer was started
    for; a newer notification makes this event stale.
    """
    toast_seq: int
