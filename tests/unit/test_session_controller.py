# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import pytest

from callstate import reducer
from callstate.enums.call_state import CallState
from callstate.enums.speaker import Speaker
from callstate.errors import TransportError, ValidationError
from callstate.events import MediaDeviceInfo
from session.controller import SessionController
from session.preferences import SettingsPreference


def transcript(controller: SessionController) -> list[tuple[Speaker, str]]:
    return [(m.speaker, m.content) for m in controller.state.messages]


async def connected(controller: SessionController) -> None:
    result = await controller.connect("sk-test")
    assert result.ok
    controller.on_transport_state_changed(CallState.READY)
    controller.on_connected()
    await controller.flush()


# ---------------------------------------------------------------------
# 1. Connect
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_connect_starts_transport_and_saves_credential(
    controller, transport_factory, preference_store,
):
    result = await controller.connect("  sk-test  ")

    assert result.ok
    client = transport_factory.last
    assert client.call_names() == ["start"]
    assert client.config is not None
    assert client.config.service("llm").options["api_key"] == "sk-test"
    assert controller.state.available_mics == tuple(client.mics)
    assert controller.state.session_id.startswith("sess_")
    assert preference_store.load().api_key == "sk-test"
    await controller.shutdown()


@pytest.mark.asyncio
async def test_blank_credential_never_reaches_transport(controller, transport_factory):
    result = await controller.connect("   ")

    assert isinstance(result.error, ValidationError)
    assert transport_factory.clients == []
    assert controller.state.toast.visible is True
    assert controller.state.toast.message == "Need to provide an OpenAI API key"
    await controller.shutdown()


@pytest.mark.asyncio
async def test_connect_without_credential_uses_saved_key(
    controller, transport_factory, preference_store,
):
    preference_store.save(SettingsPreference(api_key="sk-saved"))

    result = await controller.connect()

    assert result.ok
    assert transport_factory.last.config.service("llm").options["api_key"] == "sk-saved"
    await controller.shutdown()


@pytest.mark.asyncio
async def test_connect_failure_releases_client_and_allows_retry(controller, transport_factory):
    transport_factory.client_kwargs = {"fail_start": "connection refused"}

    result = await controller.connect("sk-test")

    assert result.error == TransportError("connection refused")
    assert transport_factory.last.call_names() == ["start", "release"]
    assert controller.state.toast.message == "connection refused"

    transport_factory.client_kwargs = {}
    retry = await controller.connect("sk-test")

    assert retry.ok
    assert len(transport_factory.clients) == 2
    await controller.shutdown()


@pytest.mark.asyncio
async def test_connect_applies_saved_mic_and_mic_default(
    controller, transport_factory, preference_store,
):
    preference_store.save(SettingsPreference(selected_mic_id="mic-b", enable_mic=False))

    result = await controller.connect("sk-test")
    await controller.flush()

    client = transport_factory.last
    assert result.ok
    assert client.config.enable_mic is False
    assert ("update_mic", "mic-b") in client.calls
    assert controller.state.selected_mic_id == "mic-b"
    await controller.shutdown()


@pytest.mark.asyncio
async def test_concurrent_connect_is_rejected(controller, transport_factory):
    gate = asyncio.Event()
    transport_factory.client_kwargs = {"start_gate": gate}

    first = asyncio.create_task(controller.connect("sk-test"))
    await asyncio.sleep(0)
    second = await controller.connect("sk-test")

    assert isinstance(second.error, ValidationError)
    assert len(transport_factory.clients) == 1

    gate.set()
    assert (await first).ok
    await controller.shutdown()


@pytest.mark.asyncio
async def test_reconnect_clears_transcript(controller):
    await connected(controller)
    controller.on_bot_started_speaking()
    controller.on_bot_tts_text("Hello")
    await controller.flush()
    assert (Speaker.BOT, "Hello") in transcript(controller)

    await controller.disconnect()
    controller.on_transport_state_changed(CallState.DISCONNECTED)
    await controller.flush()
    await controller.connect("sk-test")

    assert controller.state.messages == ()
    await controller.shutdown()


# ---------------------------------------------------------------------
# 2. Disconnect
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_disconnect_calls_transport_then_releases(controller, transport_factory):
    await connected(controller)

    result = await controller.disconnect()
    await controller.flush()

    assert result.ok
    assert transport_factory.last.call_names()[-2:] == ["disconnect", "release"]
    assert controller.state.call_state is CallState.READY

    controller.on_transport_state_changed(CallState.DISCONNECTED)
    await controller.flush()

    assert controller.state.call_state is CallState.DISCONNECTED
    assert controller.state.is_in_call is False
    assert transport_factory.last.call_names().count("release") == 1
    await controller.shutdown()


@pytest.mark.asyncio
async def test_disconnect_during_connect_supersedes_attempt(controller, transport_factory):
    gate = asyncio.Event()
    transport_factory.client_kwargs = {"start_gate": gate}

    pending = asyncio.create_task(controller.connect("sk-test"))
    await asyncio.sleep(0)

    assert (await controller.disconnect()).ok
    gate.set()
    result = await pending

    assert isinstance(result.error, TransportError)
    assert controller.state.available_mics == ()
    assert controller.state.toast.visible is False
    await controller.shutdown()


@pytest.mark.asyncio
async def test_remote_hangup_releases_client(controller, transport_factory):
    await connected(controller)

    controller.on_transport_state_changed(CallState.DISCONNECTED)
    await controller.flush()

    assert transport_factory.last.call_names()[-1] == "release"
    assert (await controller.connect("sk-test")).ok
    assert len(transport_factory.clients) == 2
    await controller.shutdown()


# ---------------------------------------------------------------------
# 3. Microphone
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_toggle_mic_reflects_transport_flag(controller, transport_factory):
    await connected(controller)
    assert controller.state.is_mic_enabled is True

    result = await controller.toggle_mic()

    assert result.ok
    assert ("enable_mic", False) in transport_factory.last.calls
    assert controller.state.is_mic_enabled is False
    await controller.shutdown()


@pytest.mark.asyncio
async def test_toggle_mic_failure_shows_error(controller, transport_factory):
    transport_factory.client_kwargs = {"fail_enable": "device busy"}
    await connected(controller)

    result = await controller.toggle_mic()

    assert result.error == TransportError("device busy")
    assert controller.state.is_mic_enabled is True
    assert controller.state.toast.message == "device busy"
    await controller.shutdown()


@pytest.mark.asyncio
async def test_select_mic_saves_and_forwards(controller, transport_factory, preference_store):
    await connected(controller)

    result = await controller.select_mic("mic-b")

    assert result.ok
    assert ("update_mic", "mic-b") in transport_factory.last.calls
    assert preference_store.load().selected_mic_id == "mic-b"
    await controller.shutdown()


@pytest.mark.asyncio
async def test_failed_select_keeps_local_selection_until_transport_reports(
    controller, transport_factory,
):
    transport_factory.client_kwargs = {"fail_update": "no such device"}
    await connected(controller)

    result = await controller.select_mic("mic-b")
    assert isinstance(result.error, TransportError)
    assert controller.state.selected_mic_id == "mic-b"

    controller.on_mic_updated(MediaDeviceInfo(id="mic-a", name="Built-in Microphone"))
    await controller.flush()
    assert controller.state.selected_mic_id == "mic-a"
    await controller.shutdown()


# ---------------------------------------------------------------------
# 4. Transport callbacks
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_callbacks_build_live_transcript(controller):
    await connected(controller)

    controller.on_user_started_speaking()
    controller.on_user_transcript("hel", False)
    controller.on_user_transcript("hello", True)
    controller.on_user_stopped_speaking()
    controller.on_bot_started_speaking()
    controller.on_bot_tts_text("Hi")
    controller.on_bot_tts_text(" there")
    controller.on_bot_transcript("Hi there")
    controller.on_bot_stopped_speaking()
    await controller.flush()

    assert transcript(controller)[-6:] == [
        (Speaker.SYSTEM, "User started speaking"),
        (Speaker.USER, "hello"),
        (Speaker.SYSTEM, "User stopped speaking"),
        (Speaker.SYSTEM, "Bot started speaking"),
        (Speaker.BOT, "Hi there"),
        (Speaker.SYSTEM, "Bot stopped speaking"),
    ]
    await controller.shutdown()


@pytest.mark.asyncio
async def test_callbacks_from_other_threads_keep_order(controller):
    await connected(controller)

    def transport_thread() -> None:
        controller.on_bot_started_speaking()
        for word in ("one", " two", " three"):
            controller.on_bot_tts_text(word)
        controller.on_bot_stopped_speaking()

    await asyncio.to_thread(transport_thread)
    await controller.flush()

    assert transcript(controller)[-3:] == [
        (Speaker.SYSTEM, "Bot started speaking"),
        (Speaker.BOT, "one two three"),
        (Speaker.SYSTEM, "Bot stopped speaking"),
    ]
    await controller.shutdown()


@pytest.mark.asyncio
async def test_device_and_readiness_callbacks(controller, preference_store):
    mic = MediaDeviceInfo(id="mic-c", name="Webcam Mic")

    controller.on_available_mics_updated([mic])
    controller.on_mic_updated(mic)
    controller.on_bot_ready({"version": "0.3"})
    controller.on_tracks_updated({"local": {}})
    await controller.flush()

    assert controller.state.available_mics == (mic,)
    assert controller.state.selected_mic_id == "mic-c"
    assert controller.state.is_bot_ready is True
    assert preference_store.load().selected_mic_id == "mic-c"

    controller.on_disconnected()
    await controller.flush()
    assert controller.state.is_bot_ready is False
    await controller.shutdown()


@pytest.mark.asyncio
async def test_backend_error_toast_clears_itself(controller, monkeypatch):
    monkeypatch.setattr(reducer, "ERROR_TOAST_DURATION_MS", 20)

    controller.on_error("pipeline crashed")
    await controller.flush()
    assert controller.state.toast.visible is True
    assert controller.state.toast.message == "pipeline crashed"

    await asyncio.sleep(0.1)
    assert controller.state.toast.visible is False
    await controller.shutdown()


@pytest.mark.asyncio
async def test_subscribers_see_every_published_state(controller):
    seen: list[CallState] = []
    unsubscribe = controller.subscribe(lambda s: seen.append(s.call_state))

    for call_state in (CallState.CONNECTING, CallState.CONNECTED, CallState.READY):
        controller.on_transport_state_changed(call_state)
    await controller.flush()
    unsubscribe()

    assert seen == [CallState.CONNECTING, CallState.CONNECTED, CallState.READY]
    await controller.shutdown()


def test_callback_without_loop_is_dropped(controller, captured_logs):
    controller.on_connected()

    assert any(e["event_type"] == "DISPATCH_WITHOUT_LOOP" for e in captured_logs)


# ---------------------------------------------------------------------
# 5. Callbacks from a replaced client
# ---------------------------------------------------------------------

async def reconnected(controller: SessionController, transport_factory):
    assert (await controller.connect("sk-1")).ok
    old = transport_factory.last
    old.delegate.on_transport_state_changed(CallState.CONNECTED)
    await controller.flush()

    assert (await controller.disconnect()).ok
    await controller.flush()
    assert (await controller.connect("sk-2")).ok
    new = transport_factory.last
    assert new is not old
    return old, new


@pytest.mark.asyncio
async def test_late_disconnect_from_old_client_keeps_new_call(controller, transport_factory):
    old, new = await reconnected(controller, transport_factory)
    new.delegate.on_transport_state_changed(CallState.CONNECTED)
    await controller.flush()

    old.delegate.on_transport_state_changed(CallState.DISCONNECTED)
    await controller.flush()

    assert controller.state.has_client is True
    assert controller.state.call_state is CallState.CONNECTED
    assert controller.state.is_in_call is True
    assert "release" not in new.call_names()

    assert (await controller.toggle_mic()).ok
    assert ("enable_mic", True) in new.calls
    await controller.shutdown()


@pytest.mark.asyncio
async def test_late_text_from_old_client_stays_out_of_transcript(controller, transport_factory):
    old, new = await reconnected(controller, transport_factory)

    new.delegate.on_bot_started_speaking()
    new.delegate.on_bot_tts_text("Hello")
    old.delegate.on_bot_tts_text(" stale")
    old.delegate.on_user_started_speaking()
    old.delegate.on_error("old pipeline crashed")
    await controller.flush()

    assert transcript(controller) == [
        (Speaker.SYSTEM, "Bot started speaking"),
        (Speaker.BOT, "Hello"),
    ]
    assert controller.state.toast.visible is False
    await controller.shutdown()


@pytest.mark.asyncio
async def test_final_state_from_disconnected_client_is_still_published(
    controller, transport_factory,
):
    assert (await controller.connect("sk-1")).ok
    client = transport_factory.last
    client.delegate.on_transport_state_changed(CallState.READY)
    await controller.flush()

    await controller.disconnect()
    client.delegate.on_transport_state_changed(CallState.DISCONNECTED)
    await controller.flush()

    assert controller.state.call_state is CallState.DISCONNECTED
    assert client.call_names().count("release") == 1
    await controller.shutdown()


# ---------------------------------------------------------------------
# 6. Preferences
# ---------------------------------------------------------------------

def test_save_preferences_without_key_keeps_saved_key(controller, preference_store):
    preference_store.save(SettingsPreference(selected_mic_id="mic-a", api_key="sk-saved"))

    saved = controller.save_preferences(selected_mic_id="mic-b", enable_mic=False)

    assert saved == SettingsPreference(selected_mic_id="mic-b", enable_mic=False, api_key="sk-saved")
    assert preference_store.load() == saved


def test_save_preferences_can_replace_key_and_clear_mic(controller, preference_store):
    preference_store.save(SettingsPreference(selected_mic_id="mic-a", api_key="sk-old"))

    saved = controller.save_preferences(selected_mic_id=None, enable_mic=True, api_key="sk-new")

    assert saved == SettingsPreference(selected_mic_id=None, enable_mic=True, api_key="sk-new")
