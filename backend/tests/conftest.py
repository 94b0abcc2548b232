"""
Pytest configuration and fixtures for relay tests.
"""

import asyncio
import itertools
import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketState

from shared.models import Base, Group, GroupMember, GroupRole
from shared.security.auth import sign_jwt
from relay_gateway.components.connection.connection import Connection
from relay_gateway.components.connection.registry import ConnectionRegistry
from relay_gateway.components.core.errors import AuthError, InternalError
from relay_gateway.connection_manager import ConnectionManager
from relay_gateway.main import create_app


_handle_counter = itertools.count(1)


# SQLite in-memory database for membership lookups
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# =============================================================================
# Fakes
# =============================================================================


class FakeWebSocket:
    """
    Stand-in for a Starlette WebSocket as seen by Connection.

    Records every text frame and the close call.
    """

    def __init__(self, fail_send: bool = False, send_delay: float = 0.0):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.fail_send = fail_send
        self.send_delay = send_delay

    async def send_text(self, text: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_send:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.close_reason = reason
        self.application_state = WebSocketState.DISCONNECTED

    @property
    def frames(self) -> list:
        return [json.loads(text) for text in self.sent]


class FakeMembershipOracle:
    """Membership answers from an in-memory set of (identity, group_id)."""

    def __init__(self, members: set[tuple[str, str]] | None = None):
        self.members = set(members or ())
        self.calls: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None

    async def is_member(self, identity: str, group_id: str) -> bool:
        self.calls.append((identity, group_id))
        if self.fail_with is not None:
            raise self.fail_with
        return (identity, group_id) in self.members


class FakeCredentialVerifier:
    """Maps fixed tokens to identities."""

    def __init__(self, tokens: dict[str, str] | None = None):
        self.tokens = dict(tokens or {})
        self.fail_with: Exception | None = None

    async def verify(self, token: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        identity = self.tokens.get(token)
        if identity is None:
            raise AuthError(detail="unknown_token")
        return identity


def make_connection(identity: str = "1", websocket: FakeWebSocket | None = None,
                    send_timeout: float = 0.5) -> Connection:
    """Authenticated connection over a FakeWebSocket."""
    conn = Connection(
        websocket or FakeWebSocket(),
        send_timeout=send_timeout,
        handle=f"conn-{next(_handle_counter)}",
    )
    conn.authenticate(identity)
    return conn


def membership_unavailable() -> InternalError:
    return InternalError("membership_store", "lookup timed out")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def oracle():
    """u1, u2, u3 are members of g1; u1 is also a member of g2."""
    return FakeMembershipOracle({
        ("u1", "g1"), ("u2", "g1"), ("u3", "g1"),
        ("u1", "g2"),
    })


@pytest.fixture
def verifier():
    return FakeCredentialVerifier({
        "token-u1": "u1",
        "token-u2": "u2",
        "token-u3": "u3",
        "token-u4": "u4",
    })


@pytest.fixture
def manager(registry, oracle, verifier):
    return ConnectionManager(
        registry=registry,
        membership_oracle=oracle,
        credential_verifier=verifier,
        health_check_interval=30.0,
        send_timeout=1.0,
        max_message_size=1024,
    )


@pytest.fixture
def app(manager):
    return create_app(manager, start_background_tasks=False)


@pytest.fixture
def client(app):
    """Test client running the app lifespan without background tasks."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Authorization header carrying a real signed JWT for identity."""
    def _headers(identity: str = "u1") -> dict[str, str]:
        return {"Authorization": f"Bearer {sign_jwt(identity)}"}
    return _headers


@pytest.fixture(scope="function")
def db_session_factory():
    """
    Fresh group store for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed_group(db_session_factory):
    """Group 'algebra' administered by u1 with u2 as a member."""
    session = db_session_factory()
    try:
        group = Group(id="algebra", name="Algebra I", admin_id="u1")
        group.members = [
            GroupMember(user_id="u1", role=GroupRole.ADMIN.value),
            GroupMember(user_id="u2", role=GroupRole.MEMBER.value),
        ]
        session.add(group)
        session.commit()
        return group.id
    finally:
        session.close()
