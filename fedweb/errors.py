"""Errors surfaced by the request pipeline."""

from __future__ import annotations


class FedwebError(Exception):
    """Base class for every error the dispatcher knows how to render."""

    message = "internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class InvalidSession(FedwebError):
    """No usable session for a route that requires one."""

    message = "invalid session"


class InvalidCsrf(FedwebError):
    """The presented CSRF token is missing or does not match the session."""

    message = "invalid csrf token"


class SessionNotFound(FedwebError):
    """The session identifier is unknown or the session has expired."""

    message = "session not found"


class BackendUnavailable(FedwebError):
    """The session store or the remote instance failed."""

    message = "backend unavailable"


class InvalidArgument(FedwebError):
    """A required request parameter was empty."""

    message = "invalid argument"


class ClientDisconnected(FedwebError):
    """The caller closed the connection before a response was produced."""

    message = "client disconnected"
