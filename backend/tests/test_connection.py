"""
Tests for per-connection state: identity, sending and closing.
"""

import asyncio

import pytest

from relay_gateway.components.connection.connection import Connection, SessionState
from relay_gateway.components.core.constants import WSCloseCode
from relay_gateway.components.core.errors import UnauthenticatedConnectionError
from tests.conftest import FakeWebSocket, make_connection


class TestConnectionIdentity:

    def test_identity_before_authentication_raises(self):
        conn = Connection(FakeWebSocket())
        assert conn.authenticated is False
        assert conn.state is SessionState.UNAUTHENTICATED
        with pytest.raises(UnauthenticatedConnectionError):
            _ = conn.identity

    def test_authenticate_once(self):
        conn = Connection(FakeWebSocket())
        conn.authenticate("42")
        assert conn.identity == "42"
        assert conn.state is SessionState.IDLE
        with pytest.raises(RuntimeError):
            conn.authenticate("43")

    def test_empty_identity_is_rejected(self):
        conn = Connection(FakeWebSocket())
        with pytest.raises(ValueError):
            conn.authenticate("")


class TestConnectionSend:

    @pytest.mark.asyncio
    async def test_send_json_writes_frame(self):
        ws = FakeWebSocket()
        conn = make_connection("u1", ws)
        assert await conn.send_json({"error": "x"}) is True
        assert ws.frames == [{"error": "x"}]

    @pytest.mark.asyncio
    async def test_transport_failure_returns_false(self):
        conn = make_connection("u1", FakeWebSocket(fail_send=True))
        assert await conn.send_text("hello") is False

    @pytest.mark.asyncio
    async def test_slow_send_times_out(self):
        conn = make_connection("u1", FakeWebSocket(send_delay=1.0), send_timeout=0.05)
        assert await conn.send_text("hello") is False

    @pytest.mark.asyncio
    async def test_no_send_after_close(self):
        ws = FakeWebSocket()
        conn = make_connection("u1", ws)
        await conn.close(WSCloseCode.NORMAL, "bye")
        assert await conn.send_text("late") is False
        assert ws.sent == []


class TestConnectionClose:

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        ws = FakeWebSocket()
        conn = make_connection("u1", ws)
        assert await conn.close(WSCloseCode.POLICY_VIOLATION, "Removed from group") is True
        assert await conn.close(WSCloseCode.NORMAL, "again") is False
        assert ws.close_code == WSCloseCode.POLICY_VIOLATION
        assert conn.state is SessionState.TERMINATED

    @pytest.mark.asyncio
    async def test_close_reason_is_truncated_to_frame_limit(self):
        ws = FakeWebSocket()
        conn = make_connection("u1", ws)
        await conn.close(WSCloseCode.NORMAL, "x" * 500)
        assert len(ws.close_reason.encode("utf-8")) <= 123

    @pytest.mark.asyncio
    async def test_close_wakes_waiters(self):
        conn = make_connection("u1")
        waiter = asyncio.create_task(conn.wait_closed())
        await asyncio.sleep(0)
        assert not waiter.done()
        await conn.close(WSCloseCode.NORMAL)
        await asyncio.wait_for(waiter, timeout=1.0)
        assert conn.closed
