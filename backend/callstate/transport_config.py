"""
Transport configuration for a connect attempt.

Responsibilities:
- Describe the options handed to the transport's start()
- Build the LLM service options (credential, greeting, session config)

Non-responsibilities:
- No validation of the credential (reducer does that)
- No IO
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from callstate.events import SessionOptions
from constants import NOISE_REDUCTION_TYPE, TURN_DETECTION_TYPE


@dataclass(frozen=True)
class ServiceConfig:
    """Options for one backend service (e.g. "llm")."""
    service: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransportConfig:
    """Immutable configuration for a single transport start()."""
    enable_mic: bool
    enable_cam: bool = False
    services: tuple[ServiceConfig, ...] = ()

    def service(self, name: str) -> ServiceConfig | None:
        for svc in self.services:
            if svc.service == name:
                return svc
        return None


def build_transport_config(
    *,
    credential: str,
    options: SessionOptions,
) -> TransportConfig:
    """
    Build the transport configuration for a connect.

    credential must already be trimmed and non-empty.

    Output shape of the llm service options:
    {
        "api_key": "...",
        "initial_messages": [{"role": "user", "content": "<greeting>"}],
        "session_config": {
            "instructions": "...",
            "voice": "...",
            "input_audio_noise_reduction": {"type": "near_field"},
            "turn_detection": {"type": "server_vad"},
        },
    }
    """
    llm = ServiceConfig(
        service="llm",
        options={
            "api_key": credential,
            "initial_messages": [
                {"role": "user", "content": options.greeting_prompt},
            ],
            "session_config": {
                "instructions": options.bot_instructions,
                "voice": options.bot_voice,
                "input_audio_noise_reduction": {"type": NOISE_REDUCTION_TYPE},
                "turn_detection": {"type": TURN_DETECTION_TYPE},
            },
        },
    )
    return TransportConfig(
        enable_mic=options.enable_mic,
        enable_cam=False,
        services=(llm,),
    )
