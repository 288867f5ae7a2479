"""
Transport delegate implementations.

TransportCallbacks turns every delegate callback into a reducer event and
hands it to _submit. RunDelegate is the instance given to one transport
client: it stamps each event with the connect run that built the client,
so callbacks arriving after that client was replaced are dropped by the
reducer.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Sequence

from callstate.enums.call_state import CallState
from callstate.events import (
    AvailableMicsUpdated,
    BackendErrorReported,
    BotReady,
    BotStartedSpeaking,
    BotStoppedSpeaking,
    BotTranscript,
    BotTTSText,
    Connected,
    Disconnected,
    Event,
    EventType,
    MediaDeviceInfo,
    MicUpdated,
    TracksUpdated,
    TransportStateChanged,
    UserStartedSpeaking,
    UserStoppedSpeaking,
    UserTranscript,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class TransportCallbacks:
    """
    Delegate callbacks as events.

    Subclasses implement _submit. _run_id stays None for callbacks that
    are not tied to a particular client.
    """

    _run_id: int | None = None

    def _submit(self, event: Event) -> None:
        raise NotImplementedError

    def on_transport_state_changed(self, state: CallState) -> None:
        self._submit(
            TransportStateChanged(
                event_type=EventType.TRANSPORT_STATE_CHANGED,
                ts_ms=_now_ms(),
                state=CallState(state),
                run_id=self._run_id,
            )
        )

    def on_bot_ready(self, data: dict[str, Any] | None = None) -> None:
        self._submit(
            BotReady(
                event_type=EventType.BOT_READY,
                ts_ms=_now_ms(),
                data=data,
                run_id=self._run_id,
            )
        )

    def on_connected(self) -> None:
        self._submit(
            Connected(event_type=EventType.CONNECTED, ts_ms=_now_ms(), run_id=self._run_id)
        )

    def on_disconnected(self) -> None:
        self._submit(
            Disconnected(event_type=EventType.DISCONNECTED, ts_ms=_now_ms(), run_id=self._run_id)
        )

    def on_error(self, message: str) -> None:
        self._submit(
            BackendErrorReported(
                event_type=EventType.BACKEND_ERROR,
                ts_ms=_now_ms(),
                message=message,
                run_id=self._run_id,
            )
        )

    def on_available_mics_updated(self, mics: Sequence[MediaDeviceInfo]) -> None:
        self._submit(
            AvailableMicsUpdated(
                event_type=EventType.AVAILABLE_MICS_UPDATED,
                ts_ms=_now_ms(),
                mics=tuple(mics),
                run_id=self._run_id,
            )
        )

    def on_mic_updated(self, mic: MediaDeviceInfo | None) -> None:
        self._submit(
            MicUpdated(
                event_type=EventType.MIC_UPDATED,
                ts_ms=_now_ms(),
                mic=mic,
                run_id=self._run_id,
            )
        )

    def on_user_transcript(self, text: str, final: bool) -> None:
        self._submit(
            UserTranscript(
                event_type=EventType.USER_TRANSCRIPT,
                ts_ms=_now_ms(),
                text=text,
                final=final,
                run_id=self._run_id,
            )
        )

    def on_bot_tts_text(self, text: str) -> None:
        self._submit(
            BotTTSText(
                event_type=EventType.BOT_TTS_TEXT,
                ts_ms=_now_ms(),
                text=text,
                run_id=self._run_id,
            )
        )

    def on_bot_transcript(self, text: str) -> None:
        self._submit(
            BotTranscript(
                event_type=EventType.BOT_TRANSCRIPT,
                ts_ms=_now_ms(),
                text=text,
                run_id=self._run_id,
            )
        )

    def on_tracks_updated(self, tracks: dict[str, Any] | None = None) -> None:
        self._submit(
            TracksUpdated(
                event_type=EventType.TRACKS_UPDATED,
                ts_ms=_now_ms(),
                tracks=tracks,
                run_id=self._run_id,
            )
        )

    def on_user_started_speaking(self) -> None:
        self._submit(
            UserStartedSpeaking(
                event_type=EventType.USER_STARTED_SPEAKING,
                ts_ms=_now_ms(),
                run_id=self._run_id,
            )
        )

    def on_user_stopped_speaking(self) -> None:
        self._submit(
            UserStoppedSpeaking(
                event_type=EventType.USER_STOPPED_SPEAKING,
                ts_ms=_now_ms(),
                run_id=self._run_id,
            )
        )

    def on_bot_started_speaking(self) -> None:
        self._submit(
            BotStartedSpeaking(
                event_type=EventType.BOT_STARTED_SPEAKING,
                ts_ms=_now_ms(),
                run_id=self._run_id,
            )
        )

    def on_bot_stopped_speaking(self) -> None:
        self._submit(
            BotStoppedSpeaking(
                event_type=EventType.BOT_STOPPED_SPEAKING,
                ts_ms=_now_ms(),
                run_id=self._run_id,
            )
        )


class RunDelegate(TransportCallbacks):
    """Delegate bound to the client of one connect run."""

    def __init__(self, submit: Callable[[Event], None], run_id: int) -> None:
        self._forward = submit
        self._run_id = run_id

    def _submit(self, event: Event) -> None:
        self._forward(event)
