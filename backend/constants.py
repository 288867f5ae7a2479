"""
BEHAVIOR CONSTANTS
------------------
Single source of truth for the behavioral constants of the call session.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers or marker strings elsewhere in the codebase.
"""

from __future__ import annotations

from typing import Final

from callstate.enums.call_state import CallState

# =============================================================================
# Call lifecycle
# =============================================================================

# Transport states during which the user is considered "in a call".
IN_CALL_STATES: Final[frozenset[CallState]] = frozenset({
    CallState.CONNECTING,
    CallState.AUTHENTICATING,
    CallState.CONNECTED,
    CallState.READY,
})

# Human-readable state names, used for status display and system messages.
CALL_STATE_DISPLAY_TEXT: Final[dict[CallState, str]] = {
    CallState.DISCONNECTED: "Disconnected",
    CallState.CONNECTING: "Connecting",
    CallState.AUTHENTICATING: "Authenticating",
    CallState.CONNECTED: "Connected",
    CallState.READY: "Ready",
    CallState.DISCONNECTING: "Disconnecting",
    CallState.ERROR: "Error",
}

# Transport states after which the client handle is no longer usable.
CLIENT_TERMINAL_STATES: Final[frozenset[CallState]] = frozenset({
    CallState.DISCONNECTED,
    CallState.ERROR,
})

# =============================================================================
# Error notifications
# =============================================================================

ERROR_TOAST_DURATION_MS: Final[int] = 5_000

MISSING_CREDENTIAL_MESSAGE: Final[str] = "Need to provide an OpenAI API key"
CONNECT_IN_FLIGHT_MESSAGE: Final[str] = "A connection attempt is already in progress"
ALREADY_CONNECTED_MESSAGE: Final[str] = "Already connected, disconnect first"

# =============================================================================
# Transcript markers
# =============================================================================

USER_STARTED_SPEAKING_TEXT: Final[str] = "User started speaking"
USER_STOPPED_SPEAKING_TEXT: Final[str] = "User stopped speaking"
BOT_STARTED_SPEAKING_TEXT: Final[str] = "Bot started speaking"
BOT_STOPPED_SPEAKING_TEXT: Final[str] = "Bot stopped speaking"

# =============================================================================
# Transport configuration defaults
# =============================================================================

DEFAULT_BOT_INSTRUCTIONS: Final[str] = "You are Chatbot, a friendly, helpful robot."
DEFAULT_BOT_VOICE: Final[str] = "echo"
DEFAULT_GREETING_PROMPT: Final[str] = "Start by introducing yourself."
NOISE_REDUCTION_TYPE: Final[str] = "near_field"
TURN_DETECTION_TYPE: Final[str] = "server_vad"
