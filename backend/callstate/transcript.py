"""
Live transcript aggregation.

Responsibilities:
- Keep the ordered message log for the current connect attempt
- Open a new user/bot message when a speaker turn starts
- Append text fragments to the open message of their speaker
- Write one-shot system messages (state changes, speech markers)

Invariants:
- messages is append-only; message_id == index in messages
- At most one open message per speaker in {user, bot}; appends always
  target the most recently opened one
- System messages are never appended to

All functions are pure: (state, ...) -> new state.
"""

from __future__ import annotations

from dataclasses import replace

from callstate.enums.speaker import Speaker
from callstate.state_dataclass import LiveMessage, SessionState


def reset(state: SessionState) -> SessionState:
    """Clear the message log and both open pointers."""
    return replace(
        state,
        messages=(),
        live_bot_message_id=None,
        live_user_message_id=None,
    )


def create_message(
    state: SessionState,
    speaker: Speaker,
    ts_ms: int,
    content: str = "",
) -> SessionState:
    """
    Append a new message.

    USER and BOT messages become the open message for their speaker,
    superseding (closing) the previous one. SYSTEM messages are closed
    on creation.
    """
    message = LiveMessage(
        message_id=len(state.messages),
        speaker=speaker,
        content=content,
        updated_at_ms=ts_ms,
    )
    new_state = replace(state, messages=state.messages + (message,))

    if speaker is Speaker.BOT:
        return replace(new_state, live_bot_message_id=message.message_id)
    if speaker is Speaker.USER:
        return replace(new_state, live_user_message_id=message.message_id)
    return new_state


def append_to_live(
    state: SessionState,
    speaker: Speaker,
    text: str,
    ts_ms: int,
) -> SessionState | None:
    """
    Append text to the open message of speaker.

    Returns None when the speaker has no open message (the fragment is
    dropped by the caller).
    """
    if speaker is Speaker.BOT:
        message_id = state.live_bot_message_id
    elif speaker is Speaker.USER:
        message_id = state.live_user_message_id
    else:
        raise ValueError(f"system messages are not appendable: {speaker}")

    if message_id is None:
        return None

    current = state.messages[message_id]
    updated = replace(
        current,
        content=current.content + text,
        updated_at_ms=ts_ms,
    )
    messages = (
        state.messages[:message_id]
        + (updated,)
        + state.messages[message_id + 1:]
    )
    return replace(state, messages=messages)


def live_message(state: SessionState, speaker: Speaker) -> LiveMessage | None:
    """Return the open message for speaker, if any."""
    if speaker is Speaker.BOT:
        message_id = state.live_bot_message_id
    elif speaker is Speaker.USER:
        message_id = state.live_user_message_id
    else:
        return None
    if message_id is None:
        return None
    return state.messages[message_id]
