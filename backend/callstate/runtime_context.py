"""
Runtime execution context.

Provides Runtime with access to the imperative collaborators needed for
command execution (transport factory, per-run delegates, preference store).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero state machine logic
- Zero state mutation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

from callstate.enums.call_state import CallState
from callstate.events import MediaDeviceInfo
from callstate.transport_config import TransportConfig


# ---------------------------------------------------------------------
# Transport Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class TransportDelegate(Protocol):
    """
    Callbacks a transport client invokes.

    Implementations must tolerate being called from any thread.
    """

    def on_transport_state_changed(self, state: CallState) -> None: ...
    def on_bot_ready(self, data: dict[str, Any] | None = None) -> None: ...
    def on_connected(self) -> None: ...
    def on_disconnected(self) -> None: ...
    def on_error(self, message: str) -> None: ...
    def on_available_mics_updated(self, mics: Sequence[MediaDeviceInfo]) -> None: ...
    def on_mic_updated(self, mic: MediaDeviceInfo | None) -> None: ...
    def on_user_transcript(self, text: str, final: bool) -> None: ...
    def on_bot_tts_text(self, text: str) -> None: ...
    def on_bot_transcript(self, text: str) -> None: ...
    def on_tracks_updated(self, tracks: dict[str, Any] | None = None) -> None: ...
    def on_user_started_speaking(self) -> None: ...
    def on_user_stopped_speaking(self) -> None: ...
    def on_bot_started_speaking(self) -> None: ...
    def on_bot_stopped_speaking(self) -> None: ...


@runtime_checkable
class TransportClientProtocol(Protocol):
    """
    RTVI-style client handle, one per connect attempt.

    Contract:
    - start() resolves once the session is established, raises otherwise
    - disconnect() may be followed by release() without awaiting events
    - is_mic_enabled is authoritative after enable_mic() resolves
    """

    async def start(self, config: TransportConfig) -> None: ...
    async def disconnect(self) -> None: ...
    def release(self) -> None: ...
    async def enable_mic(self, enable: bool) -> None: ...
    async def update_mic(self, mic_id: str) -> None: ...
    def get_all_mics(self) -> Sequence[MediaDeviceInfo]: ...

    @property
    def is_mic_enabled(self) -> bool: ...


TransportFactory = Callable[[TransportDelegate], TransportClientProtocol]


# ---------------------------------------------------------------------
# Preference store
# ---------------------------------------------------------------------

@runtime_checkable
class PreferenceStoreProtocol(Protocol):
    def update(
        self,
        *,
        selected_mic_id: str | None = None,
        api_key: str | None = None,
    ) -> Any:
        """Merge non-None fields into the saved record and persist it."""


# ---------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------

@dataclass
class RuntimeExecutionContext:
    """
    Live view of the collaborators Runtime executes commands against.

    delegate_for_run builds the delegate handed to the client of one
    connect run.
    """

    transport_factory: TransportFactory
    delegate_for_run: Callable[[int], TransportDelegate]
    preferences: PreferenceStoreProtocol
