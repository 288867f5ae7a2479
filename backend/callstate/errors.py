"""
Error taxonomy for the call session.

Every kind is handled the same way at the boundary: it becomes a transient
user-visible notification. None of them is fatal to the process.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Stable discriminant used in notifications, logs and HTTP responses."""

    VALIDATION = "validation"
    TRANSPORT = "transport"
    BACKEND = "backend"


class SessionError(Exception):
    """Base class for all errors surfaced to the user."""

    kind: ErrorKind = ErrorKind.BACKEND

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __eq__(self, other: object) -> bool:
        return (
            type(self) is type(other)
            and self.message == other.message  # type: ignore[attr-defined]
        )

    def __hash__(self) -> int:
        return hash((type(self), self.message))


class ValidationError(SessionError):
    """Request rejected before any transport call (e.g. blank credential)."""

    kind = ErrorKind.VALIDATION


class TransportError(SessionError):
    """Connect, mic toggle or mic select failure reported by the transport."""

    kind = ErrorKind.TRANSPORT


class BackendError(SessionError):
    """Arbitrary message delivered through the transport's generic error callback."""

    kind = ErrorKind.BACKEND
