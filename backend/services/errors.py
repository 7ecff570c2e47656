"""Error taxonomy shared by the gateway, the REST routes and the client."""

from __future__ import annotations


class LiveSessionError(Exception):
    """Base class for live-session coordination errors."""

    retryable = False


class AuthenticationError(LiveSessionError):
    """Missing, malformed or expired bearer token."""

    def __init__(self, message: str = "unauthorized", *, reason: str = "unauthorized") -> None:
        super().__init__(message)
        self.reason = reason


class AuthorizationError(LiveSessionError):
    """Identity is valid but not allowed to use the session."""


class SessionNotFoundError(LiveSessionError):
    pass


class SessionUnavailableError(LiveSessionError):
    """Session exists but cannot be joined (cancelled, ended or full)."""


class InvalidTransitionError(LiveSessionError):
    pass


class TransientConnectionError(LiveSessionError):
    """Network drop, timeout or server-side 5xx. Retried with back-off."""

    retryable = True


class ProtocolError(LiveSessionError):
    """Unexpected or negative acknowledgement from the gateway."""

    retryable = True
