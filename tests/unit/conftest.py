# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Iterator, Sequence

import pytest

from callstate.events import MediaDeviceInfo
from callstate.runtime_context import TransportDelegate
from callstate.transport_config import TransportConfig
from config import AppConfig
from observability import logger
from session.controller import SessionController
from session.preferences import PreferenceStore


# ---------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------

MIC_A = MediaDeviceInfo(id="mic-a", name="Built-in Microphone")
MIC_B = MediaDeviceInfo(id="mic-b", name="USB Headset")


class FakeTransportClient:
    """Scriptable stand-in for an RTVI client."""

    def __init__(
        self,
        delegate: TransportDelegate,
        *,
        mics: Sequence[MediaDeviceInfo] = (MIC_A, MIC_B),
        fail_start: str | None = None,
        fail_enable: str | None = None,
        fail_update: str | None = None,
        start_gate: asyncio.Event | None = None,
    ) -> None:
        self.delegate = delegate
        self.mics = list(mics)
        self.fail_start = fail_start
        self.fail_enable = fail_enable
        self.fail_update = fail_update
        self.start_gate = start_gate

        self.calls: list[tuple[str, Any]] = []
        self.config: TransportConfig | None = None
        self._mic_enabled = False

    async def start(self, config: TransportConfig) -> None:
        self.calls.append(("start", config))
        self.config = config
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.fail_start is not None:
            raise ConnectionError(self.fail_start)
        self._mic_enabled = config.enable_mic

    async def disconnect(self) -> None:
        self.calls.append(("disconnect", None))

    def release(self) -> None:
        self.calls.append(("release", None))

    async def enable_mic(self, enable: bool) -> None:
        self.calls.append(("enable_mic", enable))
        if self.fail_enable is not None:
            raise RuntimeError(self.fail_enable)
        self._mic_enabled = enable

    async def update_mic(self, mic_id: str) -> None:
        self.calls.append(("update_mic", mic_id))
        if self.fail_update is not None:
            raise RuntimeError(self.fail_update)

    def get_all_mics(self) -> list[MediaDeviceInfo]:
        return list(self.mics)

    @property
    def is_mic_enabled(self) -> bool:
        return self._mic_enabled

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeTransportFactory:
    """Builds FakeTransportClient instances with the configured behavior."""

    def __init__(self) -> None:
        self.clients: list[FakeTransportClient] = []
        self.client_kwargs: dict[str, Any] = {}

    def __call__(self, delegate: TransportDelegate) -> FakeTransportClient:
        client = FakeTransportClient(delegate, **self.client_kwargs)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeTransportClient:
        return self.clients[-1]


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture(autouse=True)
def captured_logs(monkeypatch: pytest.MonkeyPatch) -> Iterator[list[dict[str, Any]]]:
    """Capture JSONL output instead of writing to stdout."""
    lines: list[dict[str, Any]] = []

    def fake_print(line: str) -> None:
        lines.append(json.loads(line))

    monkeypatch.setattr(logger, "_print", fake_print)
    logger.configure(level="DEBUG", json_output=True)
    yield lines
    logger.configure()


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def preferences_path(tmp_path: Path) -> Path:
    return tmp_path / "prefs" / "preferences.json"


@pytest.fixture
def preference_store(preferences_path: Path) -> PreferenceStore:
    return PreferenceStore(preferences_path)


@pytest.fixture
def app_config(preferences_path: Path) -> AppConfig:
    return AppConfig(preferences_path=preferences_path)


@pytest.fixture
def controller(
    app_config: AppConfig,
    transport_factory: FakeTransportFactory,
    preference_store: PreferenceStore,
) -> SessionController:
    return SessionController(
        config=app_config,
        transport_factory=transport_factory,
        preferences=preference_store,
    )
