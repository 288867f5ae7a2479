# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from config import AppConfig
from server.app import create_app, load_transport_factory


@pytest.fixture
def app(app_config, transport_factory):
    return create_app(app_config, transport_factory)


@pytest.mark.asyncio
async def test_health_endpoint_returns_ok(app) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_session_snapshot_starts_disconnected(app) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/session")

    data = response.json()
    assert data["call_state"] == "disconnected"
    assert data["call_state_text"] == "Disconnected"
    assert data["is_in_call"] is False
    assert data["messages"] == []
    assert data["toast"] == {"visible": False, "message": None, "kind": None}


@pytest.mark.asyncio
async def test_connect_with_blank_key_is_bad_request(app, transport_factory) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/session/connect", json={"api_key": "  "})

    assert response.status_code == 400
    body = response.json()
    assert body["ok"] is False
    assert body["error"]["kind"] == "validation"
    assert body["session"]["toast"]["visible"] is True
    assert transport_factory.clients == []
    await app.state.controller.shutdown()


@pytest.mark.asyncio
async def test_connect_failure_is_bad_gateway(app, transport_factory) -> None:
    transport_factory.client_kwargs = {"fail_start": "401 Unauthorized"}
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/session/connect", json={"api_key": "sk-bad"})

    assert response.status_code == 502
    assert response.json()["error"] == {"kind": "transport", "message": "401 Unauthorized"}
    await app.state.controller.shutdown()


@pytest.mark.asyncio
async def test_connect_toggle_select_disconnect(app, transport_factory) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/session/connect", json={"api_key": "sk-test"})
        assert response.status_code == 200
        assert [m["id"] for m in response.json()["session"]["available_mics"]] == ["mic-a", "mic-b"]

        response = await ac.post("/session/mic/toggle")
        assert response.status_code == 200
        assert response.json()["session"]["is_mic_enabled"] is True

        response = await ac.post("/session/mic/select", json={"mic_id": "mic-b"})
        assert response.status_code == 200
        assert response.json()["session"]["selected_mic_id"] == "mic-b"

        response = await ac.post("/session/disconnect")
        assert response.status_code == 200

    await app.state.controller.flush()
    assert transport_factory.last.call_names() == [
        "start",
        "enable_mic",
        "update_mic",
        "disconnect",
        "release",
    ]
    await app.state.controller.shutdown()


@pytest.mark.asyncio
async def test_preferences_round_trip_hides_key(app) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.put(
            "/session/preferences",
            json={"selected_mic_id": "mic-a", "enable_mic": False, "api_key": "sk-test"},
        )
        assert response.status_code == 200

        response = await ac.get("/session/preferences")

    assert response.json() == {
        "selected_mic_id": "mic-a",
        "enable_mic": False,
        "has_api_key": True,
    }


@pytest.mark.asyncio
async def test_preferences_put_without_key_keeps_saved_key(app, transport_factory) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        await ac.put("/session/preferences", json={"api_key": "sk-saved"})
        current = (await ac.get("/session/preferences")).json()

        response = await ac.put(
            "/session/preferences",
            json={"selected_mic_id": "mic-b", "enable_mic": current["enable_mic"]},
        )
        assert response.json()["has_api_key"] is True

        response = await ac.post("/session/connect", json={})

    assert response.status_code == 200
    await app.state.controller.flush()
    client = transport_factory.last
    assert client.config.service("llm").options["api_key"] == "sk-saved"
    assert ("update_mic", "mic-b") in client.calls
    await app.state.controller.shutdown()


def test_events_websocket_pushes_snapshots(app) -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/session/events") as ws:
            initial = ws.receive_json()
            assert initial["call_state"] == "disconnected"

            response = client.post("/session/mic/select", json={"mic_id": "mic-b"})
            assert response.status_code == 200

            pushed = ws.receive_json()
            assert pushed["selected_mic_id"] == "mic-b"


def test_events_websocket_close_unsubscribes(app) -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/session/events") as ws:
            ws.receive_json()

        response = client.post("/session/mic/select", json={"mic_id": "mic-a"})
        assert response.status_code == 200

        listeners = app.state.controller.runtime._listeners  # pylint: disable=protected-access
        assert listeners == []


def test_create_app_requires_transport_factory(tmp_path) -> None:
    with pytest.raises(RuntimeError):
        create_app(AppConfig(preferences_path=tmp_path / "p.json"))


def test_load_transport_factory_resolves_module_attribute() -> None:
    factory = load_transport_factory("session.preferences:PreferenceStore")

    assert factory.__name__ == "PreferenceStore"

    with pytest.raises(ValueError):
        load_transport_factory("no-colon")
