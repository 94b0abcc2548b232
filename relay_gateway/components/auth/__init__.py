"""
Handshake authentication.
"""

from relay_gateway.components.auth.strategies import (
    BearerCredential,
    CredentialVerifier,
    JWTCredentialVerifier,
    extract_bearer_credential,
)

__all__ = [
    "BearerCredential",
    "CredentialVerifier",
    "JWTCredentialVerifier",
    "extract_bearer_credential",
]
