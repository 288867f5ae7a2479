"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No state machine logic
- No behavior constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from constants import (
    DEFAULT_BOT_INSTRUCTIONS,
    DEFAULT_BOT_VOICE,
    DEFAULT_GREETING_PROMPT,
)


def _default_preferences_path() -> Path:
    return Path.home() / ".voice_call" / "preferences.json"


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the session controller and the HTTP surface.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    preferences_path: Path = _default_preferences_path()

    # ------------------------------------------------------------------
    # LLM session options (sent inside the transport configuration)
    # ------------------------------------------------------------------

    bot_instructions: str = DEFAULT_BOT_INSTRUCTIONS
    bot_voice: str = DEFAULT_BOT_VOICE
    greeting_prompt: str = DEFAULT_GREETING_PROMPT

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    # "package.module:attribute" of a TransportFactory
    transport_factory: str | None = None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """Load configuration from environment variables."""
        preferences_path = os.environ.get("PREFERENCES_PATH")
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            preferences_path=(
                Path(preferences_path) if preferences_path
                else _default_preferences_path()
            ),

            bot_instructions=os.environ.get("BOT_INSTRUCTIONS", DEFAULT_BOT_INSTRUCTIONS),
            bot_voice=os.environ.get("BOT_VOICE", DEFAULT_BOT_VOICE),
            greeting_prompt=os.environ.get("BOT_GREETING_PROMPT", DEFAULT_GREETING_PROMPT),

            transport_factory=os.environ.get("TRANSPORT_FACTORY"),
        )
