"""
Side-effect command definitions for the call session.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from callstate.errors import SessionError
from callstate.events import EventType
from callstate.transport_config import TransportConfig

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Transport
    START_TRANSPORT = "START_TRANSPORT"
    DISCONNECT_TRANSPORT = "DISCONNECT_TRANSPORT"
    RELEASE_TRANSPORT = "RELEASE_TRANSPORT"
    ENABLE_MIC = "ENABLE_MIC"
    UPDATE_MIC = "UPDATE_MIC"
    SYNC_MIC_STATE = "SYNC_MIC_STATE"

    # Preferences
    PERSIST_PREFERENCES = "PERSIST_PREFERENCES"

    # Timers
    START_TIMER = "START_TIMER"

    # Caller futures
    COMPLETE_OPERATION = "COMPLETE_OPERATION"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Transport Commands
# =============================================================================

@dataclass(frozen=True)
class StartTransport(Command):
    """
    Create a client and start it.

    The runtime must answer with exactly one ConnectSucceeded or
    ConnectFailed carrying the same run_id and op_id.
    """
    run_id: int
    op_id: int
    config: TransportConfig
    command_type: CommandType = CommandType.START_TRANSPORT


@dataclass(frozen=True)
class DisconnectTransport(Command):
    """Disconnect and release the current client. Failures are logged only."""
    run_id: int
    command_type: CommandType = CommandType.DISCONNECT_TRANSPORT


@dataclass(frozen=True)
class ReleaseTransport(Command):
    """Drop the current client handle without a disconnect call."""
    run_id: int
    command_type: CommandType = CommandType.RELEASE_TRANSPORT


@dataclass(frozen=True)
class EnableMic(Command):
    """
    Request mic capture on or off.

    Answered by MicToggleSucceeded (with the transport's resulting flag)
    or MicToggleFailed.
    """
    run_id: int
    op_id: int
    enable: bool
    command_type: CommandType = CommandType.ENABLE_MIC


@dataclass(frozen=True)
class UpdateMic(Command):
    """
    Switch the active input device.

    Answered by MicSelectSucceeded or MicSelectFailed. The confirmed
    device is reported separately through the MicUpdated callback.
    """
    run_id: int
    op_id: int
    mic_id: str
    command_type: CommandType = CommandType.UPDATE_MIC


@dataclass(frozen=True)
class SyncMicState(Command):
    """Read the transport's mic flag and report it as MicStateSynced."""
    run_id: int
    command_type: CommandType = CommandType.SYNC_MIC_STATE


# =============================================================================
# Preference Commands
# =============================================================================

@dataclass(frozen=True)
class PersistPreferences(Command):
    """
    Merge the given non-None fields into the saved preference record.
    """
    selected_mic_id: str | None = None
    api_key: str | None = None
    command_type: CommandType = CommandType.PERSIST_PREFERENCES


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start (or restart) a named timer.

    On expiration, the runtime must inject the specified timeout event.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    command_type: CommandType = CommandType.START_TIMER


# =============================================================================
# Caller Futures
# =============================================================================

@dataclass(frozen=True)
class CompleteOperation(Command):
    """Resolve the caller's pending operation. error=None means success."""
    op_id: int
    error: SessionError | None = None
    command_type: CommandType = CommandType.COMPLETE_OPERATION


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    level: str = "INFO"
    command_type: CommandType = CommandType.LOG_EVENT
