"""
Speaker categories for live transcript messages.
"""

from __future__ import annotations

from enum import Enum


class Speaker(str, Enum):
    """
    USER and BOT messages are opened empty and grow by appends.
    SYSTEM messages are written once and never appended to.
    """

    USER = "user"
    BOT = "bot"
    SYSTEM = "system"
