"""
Credential extraction and verification for the relay handshake.

The client presents "Bearer <token>" through one of three side channels,
checked in this order:
1. WebSocket sub-protocol: Sec-WebSocket-Protocol: Bearer <token>
   (browsers: new WebSocket(url, ["Bearer " + token]))
2. Authorization header: Authorization: Bearer <token>
3. Query parameter: ?token=<token> (the "Bearer " prefix is optional here)

The credential is checked exactly once, before the connection is accepted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.security.auth import InvalidTokenError, identity_from_claims, verify_jwt
from relay_gateway.components.core.constants import BEARER_PREFIX
from relay_gateway.components.core.errors import AuthError

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)

SOURCE_SUBPROTOCOL = "subprotocol"
SOURCE_HEADER = "authorization_header"
SOURCE_QUERY = "query"


@dataclass(frozen=True, slots=True)
class BearerCredential:
    """
    A credential pulled from the handshake.

    Attributes:
        token: The raw token without the "Bearer " prefix.
        source: Which side channel carried it.
        subprotocol: Sub-protocol value to echo back on accept, if the
            credential came in as a sub-protocol.
    """

    token: str
    source: str
    subprotocol: str | None = None


def _strip_bearer(value: str | None) -> str | None:
    if not value or not value.startswith(BEARER_PREFIX):
        return None
    token = value[len(BEARER_PREFIX):].strip()
    return token or None


def extract_bearer_credential(websocket: "WebSocket") -> BearerCredential:
    """
    Find the bearer credential in the handshake.

    Raises:
        AuthError: If no side channel carries a well-formed credential.
    """
    subprotocols: list[str] = list(websocket.scope.get("subprotocols") or [])
    for offered in subprotocols:
        token = _strip_bearer(offered)
        if token:
            return BearerCredential(token=token, source=SOURCE_SUBPROTOCOL, subprotocol=offered)
    # Two-value form: ["Bearer", "<token>"]
    if len(subprotocols) >= 2 and subprotocols[0] == BEARER_PREFIX.strip() and subprotocols[1]:
        return BearerCredential(
            token=subprotocols[1],
            source=SOURCE_SUBPROTOCOL,
            subprotocol=subprotocols[0],
        )

    token = _strip_bearer(websocket.headers.get("authorization"))
    if token:
        return BearerCredential(token=token, source=SOURCE_HEADER)

    query_token = websocket.query_params.get("token")
    if query_token:
        token = _strip_bearer(query_token) or query_token.strip()
        if token:
            return BearerCredential(token=token, source=SOURCE_QUERY)

    raise AuthError(detail="missing_credential")


class CredentialVerifier(Protocol):
    """
    Resolves a bearer token to an identity.

    Raises AuthError for a rejected token. Any other exception is treated
    as a verifier failure by the caller.
    """

    async def verify(self, token: str) -> str:
        ...


class JWTCredentialVerifier:
    """
    JWT verification via shared.security.auth.

    Features:
    - Signature and expiration verification
    - Issuer/audience checks when configured
    - Refresh token rejection

    Usage:
        verifier = JWTCredentialVerifier()
        identity = await verifier.verify(token)
    """

    def __init__(self, reject_refresh_tokens: bool = True) -> None:
        self._reject_refresh_tokens = reject_refresh_tokens

    async def verify(self, token: str) -> str:
        try:
            claims = verify_jwt(token)
        except InvalidTokenError as e:
            raise AuthError(detail=e.reason)

        if self._reject_refresh_tokens and claims.get("type") == "refresh":
            logger.warning("Refresh token used for WebSocket auth")
            raise AuthError(detail="refresh_token_used")

        try:
            return identity_from_claims(claims)
        except InvalidTokenError as e:
            raise AuthError(detail=e.reason)
