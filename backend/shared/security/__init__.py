"""
Security module: JWT verification and internal API keys.
"""

from shared.security.auth import (
    InvalidTokenError,
    sign_jwt,
    verify_jwt,
    identity_from_claims,
)
from shared.security.api_keys import (
    INTERNAL_KEY_HEADER,
    is_valid_internal_key,
    require_internal_key,
)

__all__ = [
    "InvalidTokenError",
    "sign_jwt",
    "verify_jwt",
    "identity_from_claims",
    "INTERNAL_KEY_HEADER",
    "is_valid_internal_key",
    "require_internal_key",
]
