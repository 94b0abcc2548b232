"""
Tests for bearer credential extraction and JWT verification.
"""

import time

import jwt
import pytest
from starlette.websockets import WebSocket

from shared.config.settings import settings
from shared.security.auth import (
    InvalidTokenError,
    identity_from_claims,
    sign_jwt,
    verify_jwt,
)
from shared.security.api_keys import is_valid_internal_key
from relay_gateway.components.auth.strategies import (
    SOURCE_HEADER,
    SOURCE_QUERY,
    SOURCE_SUBPROTOCOL,
    JWTCredentialVerifier,
    extract_bearer_credential,
)
from relay_gateway.components.core.errors import AuthError


def handshake(subprotocols=None, authorization=None, query=""):
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    scope = {
        "type": "websocket",
        "path": "/ws",
        "headers": headers,
        "query_string": query.encode(),
        "subprotocols": subprotocols or [],
    }

    async def receive():
        raise AssertionError("not used")

    async def send(message):
        raise AssertionError("not used")

    return WebSocket(scope, receive, send)


class TestExtractBearerCredential:

    def test_subprotocol(self):
        credential = extract_bearer_credential(handshake(subprotocols=["Bearer abc"]))
        assert credential.token == "abc"
        assert credential.source == SOURCE_SUBPROTOCOL
        assert credential.subprotocol == "Bearer abc"

    def test_subprotocol_picked_among_others(self):
        credential = extract_bearer_credential(
            handshake(subprotocols=["chat.v1", "Bearer abc"])
        )
        assert credential.token == "abc"

    def test_header(self):
        credential = extract_bearer_credential(handshake(authorization="Bearer abc"))
        assert credential.token == "abc"
        assert credential.source == SOURCE_HEADER
        assert credential.subprotocol is None

    def test_query(self):
        credential = extract_bearer_credential(handshake(query="token=abc"))
        assert credential.token == "abc"
        assert credential.source == SOURCE_QUERY

    def test_subprotocol_wins_over_header_and_query(self):
        credential = extract_bearer_credential(handshake(
            subprotocols=["Bearer from-subprotocol"],
            authorization="Bearer from-header",
            query="token=from-query",
        ))
        assert credential.token == "from-subprotocol"

    def test_header_wins_over_query(self):
        credential = extract_bearer_credential(
            handshake(authorization="Bearer from-header", query="token=from-query")
        )
        assert credential.token == "from-header"

    @pytest.mark.parametrize("kwargs", [
        {},
        {"authorization": "Basic dXNlcjpwYXNz"},
        {"authorization": "Bearer "},
        {"subprotocols": ["chat.v1"]},
        {"query": "token="},
    ])
    def test_missing_or_malformed(self, kwargs):
        with pytest.raises(AuthError) as exc_info:
            extract_bearer_credential(handshake(**kwargs))
        assert exc_info.value.close_code == 4001


class TestJWT:

    def test_round_trip_claims(self):
        claims = verify_jwt(sign_jwt("u1"))
        assert claims["user"] == {"id": "u1"}
        assert claims["sub"] == "u1"
        assert claims["type"] == "access"

    def test_expired(self):
        with pytest.raises(InvalidTokenError) as exc_info:
            verify_jwt(sign_jwt("u1", ttl_seconds=-1))
        assert exc_info.value.reason == "Token has expired"

    def test_missing_exp_is_rejected(self):
        token = jwt.encode({"sub": "u1"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        with pytest.raises(InvalidTokenError):
            verify_jwt(token)

    def test_tampered_signature(self):
        token = sign_jwt("u1")
        head, payload, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        with pytest.raises(InvalidTokenError):
            verify_jwt(".".join([head, payload, flipped]))

    def test_audience_enforced_when_configured(self, monkeypatch):
        token = sign_jwt("u1")
        monkeypatch.setattr(settings, "jwt_audience", "relay")
        with pytest.raises(InvalidTokenError):
            verify_jwt(token)
        assert verify_jwt(sign_jwt("u1"))["aud"] == "relay"

    def test_identity_prefers_user_id(self):
        assert identity_from_claims({"user": {"id": 7}, "sub": "other"}) == "7"
        assert identity_from_claims({"sub": "u9"}) == "u9"

    @pytest.mark.parametrize("claims", [{}, {"sub": ""}, {"sub": True}, {"user": {"id": None}}])
    def test_identity_missing(self, claims):
        with pytest.raises(InvalidTokenError):
            identity_from_claims(claims)


class TestJWTCredentialVerifier:

    @pytest.mark.asyncio
    async def test_verify_returns_identity(self):
        assert await JWTCredentialVerifier().verify(sign_jwt("u1")) == "u1"

    @pytest.mark.asyncio
    async def test_refresh_token_rejected(self):
        with pytest.raises(AuthError) as exc_info:
            await JWTCredentialVerifier().verify(sign_jwt("u1", token_type="refresh"))
        assert exc_info.value.detail == "refresh_token_used"

    @pytest.mark.asyncio
    async def test_garbage_token(self):
        with pytest.raises(AuthError):
            await JWTCredentialVerifier().verify("not-a-jwt")

    @pytest.mark.asyncio
    async def test_token_without_identity(self):
        token = jwt.encode(
            {"exp": int(time.time()) + 60},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(AuthError):
            await JWTCredentialVerifier().verify(token)


class TestInternalKey:

    def test_constant_time_match(self):
        assert is_valid_internal_key("secret", expected="secret")
        assert not is_valid_internal_key("Secret", expected="secret")

    def test_unset_key_disables(self):
        assert not is_valid_internal_key("anything", expected="")
        assert not is_valid_internal_key(None, expected="secret")
