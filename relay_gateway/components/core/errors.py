"""
Relay error taxonomy.

Each recoverable error carries the message sent to the client in an
{"error": ...} frame. AccessDenied and AuthError end the session;
ProtocolError and NotJoinedError are answered and the session continues.
InternalError marks a collaborator failure (membership store, credential
verifier) and is logged distinctly before being surfaced to the client as
AuthError or AccessDenied.
"""

from __future__ import annotations

from relay_gateway.components.core.constants import WSCloseCode


class RelayError(Exception):
    """Base class for errors reported to a connected client."""

    client_message: str = "Internal error"
    close_code: int | None = None

    def __init__(self, client_message: str | None = None, *, detail: str | None = None):
        self.client_message = client_message or self.client_message
        self.detail = detail
        super().__init__(detail or self.client_message)

    def to_payload(self) -> dict[str, str]:
        """Wire shape of the error frame."""
        return {"error": self.client_message}

    @property
    def is_fatal(self) -> bool:
        return self.close_code is not None


class AuthError(RelayError):
    """Credential missing, malformed or rejected during the handshake."""

    client_message = "Unauthorized"
    close_code = WSCloseCode.AUTH_FAILED


class AccessDenied(RelayError):
    """Join refused: the identity is not a member of the group."""

    client_message = "Access denied: Not a group member"
    close_code = WSCloseCode.FORBIDDEN


class ProtocolError(RelayError):
    """Malformed or unknown inbound message."""

    client_message = "Invalid message format"


class NotJoinedError(RelayError):
    """sendMessage received before a successful joinGroup."""

    client_message = "You must join a group first"


class MessageTooLargeError(RelayError):
    """Inbound frame exceeds the configured size limit."""

    client_message = "Message too large"
    close_code = WSCloseCode.MESSAGE_TOO_BIG


class InternalError(Exception):
    """
    A collaborator failed (store unreachable, lookup timed out, verifier
    crashed). Never sent to clients as-is.
    """

    def __init__(self, component: str, detail: str):
        self.component = component
        self.detail = detail
        super().__init__(f"{component}: {detail}")


class UnauthenticatedConnectionError(RuntimeError):
    """
    An authenticated-only operation was attempted on a connection that
    never passed credential verification. This is a programming error,
    not a client error, and must never be caught and answered.
    """
