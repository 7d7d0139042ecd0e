"""Typed error hierarchy for the gateway.

All errors carry structured context (session_id, operation) for logging.
Messages are safe to return to clients: they never contain credential
values.
"""
from __future__ import annotations

from starlette.responses import PlainTextResponse


class GatewayError(Exception):
    """Base error for all gateway operations."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        operation: str | None = None,
    ):
        self.session_id = session_id
        self.operation = operation
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.args[0]

    def __repr__(self) -> str:
        parts = [f"{type(self).__name__}({self.args[0]!r}"]
        if self.session_id:
            parts.append(f"session_id={self.session_id!r}")
        if self.operation:
            parts.append(f"operation={self.operation!r}")
        return ", ".join(parts) + ")"


class AuthenticationMissingError(GatewayError):
    """One or more required credentials were not supplied."""

    status_code = 401


class MalformedRequestError(GatewayError):
    """The request is missing a required parameter."""

    status_code = 400


class UnknownSessionError(GatewayError):
    """No open session exists for the supplied id."""

    status_code = 503


class SessionSetupError(GatewayError):
    """The stream handshake or protocol connection could not be established."""

    pass


class HandlerError(GatewayError):
    """Forwarding one message to its session failed."""

    pass


class SessionExistsError(GatewayError):
    """A session is already registered under this id."""

    pass


class TeardownError(GatewayError):
    """A teardown step failed. Logged, never returned to a client."""

    pass


class MessageHandlerError(GatewayError):
    """A stream handle rejected an inbound message payload."""

    pass


class BackendError(GatewayError):
    """The browser backend API returned an error or was unreachable.

    Attributes:
        status_code: Upstream HTTP status, or 502 when there was no response.
    """

    def __init__(self, message: str, *, status_code: int = 502, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


def error_response(exc: GatewayError) -> PlainTextResponse:
    """Render a gateway error as the plain-text response clients expect."""
    return PlainTextResponse(exc.message, status_code=exc.status_code)
