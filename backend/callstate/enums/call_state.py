"""
Authoritative call state enumeration.

Rules:
- This enum mirrors the transport's connection states one-to-one.
- No behavior, no helper methods, no side effects.
- Transitions are applied exclusively in the reducer, and only in response
  to transport state events.
"""

from __future__ import annotations

from enum import Enum


class CallState(str, Enum):
    """
    Lifecycle of the call as reported by the transport.

    DISCONNECTED is both the initial state and the normal terminal state.
    ERROR is terminal until the next connect attempt.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    READY = "ready"
    DISCONNECTING = "disconnecting"
    ERROR = "error"
