"""Persistence helpers for call preferences (selected mic, mic default, API key)."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any

from observability.logger import log_event


@dataclass(frozen=True)
class SettingsPreference:
    """Saved user preferences. Read on every connect."""

    selected_mic_id: str | None = None
    enable_mic: bool = True
    api_key: str = ""


def _from_payload(data: dict[str, Any]) -> SettingsPreference:
    mic = data.get("selected_mic_id")
    return SettingsPreference(
        selected_mic_id=mic if isinstance(mic, str) else None,
        enable_mic=bool(data.get("enable_mic", True)),
        api_key=str(data.get("api_key") or ""),
    )


class PreferenceStore:
    """JSON file store. A missing or unreadable file yields defaults."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SettingsPreference:
        """Load preferences from disk (defaults when missing)."""
        if not self._path.exists():
            return SettingsPreference()

        try:
            raw_text = self._path.read_text(encoding="utf-8").lstrip("\ufeff")
            data = json.loads(raw_text)
        except (OSError, ValueError) as exc:
            log_event({
                "ts_ms": time.time_ns() // 1_000_000,
                "event_type": "preferences_unreadable",
                "path": str(self._path),
                "error": str(exc),
            }, level="WARNING")
            return SettingsPreference()

        if not isinstance(data, dict):
            return SettingsPreference()
        return _from_payload(data)

    def save(self, preference: SettingsPreference) -> None:
        """Persist the full record."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(asdict(preference), indent=2), encoding="utf-8")

    def update(
        self,
        *,
        selected_mic_id: str | None = None,
        api_key: str | None = None,
        enable_mic: bool | None = None,
    ) -> SettingsPreference:
        """Merge the non-None fields into the saved record and persist it."""
        changes: dict[str, Any] = {}
        if selected_mic_id is not None:
            changes["selected_mic_id"] = selected_mic_id
        if api_key is not None:
            changes["api_key"] = api_key
        if enable_mic is not None:
            changes["enable_mic"] = enable_mic

        current = self.load()
        if not changes:
            return current

        updated = replace(current, **changes)
        self.save(updated)
        return updated
