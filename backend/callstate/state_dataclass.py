"""
Authoritative call session state container.

Rules:
- This module is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no IO, no derived logic beyond plain fields.
"""
from __future__ import annotations

from dataclasses import dataclass

from callstate.enums.call_state import CallState
from callstate.enums.speaker import Speaker
from callstate.errors import ErrorKind
from callstate.events import MediaDeviceInfo


# =============================================================================
# Live transcript
# =============================================================================

@dataclass(frozen=True)
class LiveMessage:
    """
    One entry of the conversation log.

    message_id is the creation order within the current connect attempt and
    equals the message's index in SessionState.messages.
    """
    message_id: int
    speaker: Speaker
    content: str
    updated_at_ms: int


# =============================================================================
# Error notification
# =============================================================================

@dataclass(frozen=True)
class Toast:
    """
    Transient user-visible error notification.

    seq increases with every notification shown; timers carry the seq they
    were started for.
    """
    seq: int = 0
    message: str | None = None
    kind: ErrorKind | None = None
    visible: bool = False


# =============================================================================
# Session State
# =============================================================================

@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of all session-owned state."""

    # ------------------------------------------------------------------
    # Call lifecycle (published)
    # ------------------------------------------------------------------
    call_state: CallState = CallState.DISCONNECTED
    is_in_call: bool = False
    is_bot_ready: bool = False

    # ------------------------------------------------------------------
    # Microphone (published)
    # ------------------------------------------------------------------
    is_mic_enabled: bool = False
    selected_mic_id: str | None = None
    available_mics: tuple[MediaDeviceInfo, ...] = ()

    # ------------------------------------------------------------------
    # Live transcript (published, aggregator-owned)
    # ------------------------------------------------------------------
    messages: tuple[LiveMessage, ...] = ()
    live_bot_message_id: int | None = None
    live_user_message_id: int | None = None

    # ------------------------------------------------------------------
    # Error notification (published)
    # ------------------------------------------------------------------
    toast: Toast = Toast()

    # ------------------------------------------------------------------
    # Connect bookkeeping
    # ------------------------------------------------------------------
    session_id: str | None = None

    # Monotonic id of the latest accepted connect attempt; 0 = none yet.
    connect_run_id: int = 0
    connect_in_flight: bool = False

    # True while the runtime holds a transport client handle.
    has_client: bool = False

    # Mic to apply once the current connect succeeds.
    pending_mic_preference: str | None = None
