"""Error types raised by the realtime client."""

from __future__ import annotations


class RealtimeError(RuntimeError):
    """Base class for realtime client failures."""


class AuthenticationError(RealtimeError):
    """Raised when the server rejects the session credentials."""

    status_code = 401


class SnapshotFetchError(RealtimeError):
    """Raised when a dashboard snapshot cannot be fetched."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def is_authentication_failure(exc: BaseException) -> bool:
    """Return True for errors that mean the caller must re-authenticate."""

    if isinstance(exc, AuthenticationError):
        return True
    return getattr(exc, "status_code", None) == 401


def mentions_authentication(data: object) -> bool:
    """Check a server error payload (string or ``{"message": ...}``) for an auth failure."""

    if isinstance(data, dict):
        data = data.get("message")
    return isinstance(data, str) and "authentication" in data.lower()
