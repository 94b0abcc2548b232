"""
Internal API key check for service-to-service routes.

The group-management service calls the relay's /internal routes with the
shared secret in the X-Internal-Key header.
"""

import hmac

from fastapi import Header, HTTPException, status

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)

INTERNAL_KEY_HEADER = "X-Internal-Key"


def is_valid_internal_key(provided: str | None, expected: str | None = None) -> bool:
    """
    Constant-time comparison of the provided key against the configured one.

    An unset key disables the internal routes entirely.
    """
    expected = settings.internal_api_key if expected is None else expected
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def require_internal_key(
    x_internal_key: str | None = Header(default=None, alias=INTERNAL_KEY_HEADER),
) -> None:
    """FastAPI dependency guarding internal routes."""
    if not is_valid_internal_key(x_internal_key):
        logger.warning("Internal route rejected - invalid or missing key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal API key",
        )
