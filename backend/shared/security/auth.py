"""
JWT utilities shared by the relay and the services that issue its tokens.

Tokens carry the user identity in the "user.id" claim (the shape issued by
the login service) and mirror it in "sub". verify_jwt raises
InvalidTokenError with a generic message; the specific reason is logged.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


class InvalidTokenError(Exception):
    """Token is missing claims, expired, or has a bad signature."""

    def __init__(self, reason: str = "Invalid token"):
        super().__init__(reason)
        self.reason = reason


def sign_jwt(
    identity: str | int,
    ttl_seconds: int | None = None,
    token_type: str = "access",
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """
    Sign a JWT for the given identity.

    Args:
        identity: User id; stored as a string in "user.id" and "sub".
        ttl_seconds: Token lifetime in seconds. Defaults to access token expiry.
        token_type: Type of token ("access" or "refresh").
        extra_claims: Additional claims merged into the payload.

    Returns:
        Signed JWT token string.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_access_token_expire_minutes * 60

    now = int(time.time())
    data: dict[str, Any] = {
        **(extra_claims or {}),
        "user": {"id": str(identity)},
        "sub": str(identity),
        "iat": now,
        "exp": now + ttl_seconds,
        "type": token_type,
        "jti": str(uuid.uuid4()),
    }
    if settings.jwt_issuer:
        data["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        data["aud"] = settings.jwt_audience
    return jwt.encode(data, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Issuer and audience are only checked when configured.

    Returns:
        Decoded token claims.

    Raises:
        InvalidTokenError: If token is invalid or expired.
    """
    options: dict[str, Any] = {"require": ["exp"]}
    kwargs: dict[str, Any] = {}
    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer
    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        options["verify_aud"] = False

    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options=options,
            **kwargs,
        )
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        # Log the actual error for debugging, return a generic reason
        logger.warning("JWT validation failed", error=str(e))
        raise InvalidTokenError("Invalid token")


def identity_from_claims(claims: dict[str, Any]) -> str:
    """
    Extract the user identity from verified claims.

    Prefers "user.id", falls back to "sub". Always returns a string.

    Raises:
        InvalidTokenError: If neither claim holds a usable id.
    """
    user = claims.get("user")
    identity = user.get("id") if isinstance(user, dict) else None
    if identity is None:
        identity = claims.get("sub")

    if isinstance(identity, bool) or not isinstance(identity, (str, int)):
        raise InvalidTokenError("Invalid token: missing subject claim")

    identity = str(identity).strip()
    if not identity:
        raise InvalidTokenError("Invalid token: missing subject claim")
    return identity
