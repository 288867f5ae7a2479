"""
JSON view of the session state.

Everything an observer can render: call state, flags, devices,
transcript and the notification slot. Internal bookkeeping
(run ids, in-flight flags) is not exposed.
"""

from __future__ import annotations

from typing import Any

from callstate.state_dataclass import SessionState
from constants import CALL_STATE_DISPLAY_TEXT


def state_snapshot(state: SessionState) -> dict[str, Any]:
    toast = state.toast
    return {
        "session_id": state.session_id,
        "call_state": state.call_state.value,
        "call_state_text": CALL_STATE_DISPLAY_TEXT[state.call_state],
        "is_in_call": state.is_in_call,
        "is_bot_ready": state.is_bot_ready,
        "is_mic_enabled": state.is_mic_enabled,
        "selected_mic_id": state.selected_mic_id,
        "available_mics": [
            {"id": mic.id, "name": mic.name} for mic in state.available_mics
        ],
        "messages": [
            {
                "id": msg.message_id,
                "speaker": msg.speaker.value,
                "content": msg.content,
                "updated_at_ms": msg.updated_at_ms,
            }
            for msg in state.messages
        ],
        "live_bot_message_id": state.live_bot_message_id,
        "live_user_message_id": state.live_user_message_id,
        "toast": {
            "visible": toast.visible,
            "message": toast.message,
            "kind": toast.kind.value if toast.kind is not None else None,
        },
    }
