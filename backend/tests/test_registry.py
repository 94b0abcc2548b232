"""
Tests for the connection registry.

Tests verify:
- Only authenticated connections are admitted
- Group index stays consistent across bind/rebind/remove
- remove() is idempotent and honors the expected group
"""

import pytest

from relay_gateway.components.connection.connection import Connection, SessionState
from relay_gateway.components.core.errors import UnauthenticatedConnectionError
from tests.conftest import FakeWebSocket, make_connection


class TestRegistryAdmission:

    @pytest.mark.asyncio
    async def test_unauthenticated_connection_is_refused(self, registry):
        conn = Connection(FakeWebSocket())
        with pytest.raises(UnauthenticatedConnectionError):
            await registry.add(conn)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_add_registers_idle_connection(self, registry):
        conn = make_connection("u1")
        assert await registry.add(conn) is True
        assert conn in registry
        assert conn.state is SessionState.IDLE
        assert conn.bound_group is None

    @pytest.mark.asyncio
    async def test_duplicate_handle_raises(self, registry):
        conn = make_connection("u1")
        await registry.add(conn)
        with pytest.raises(ValueError):
            await registry.add(conn)

    @pytest.mark.asyncio
    async def test_admission_limit(self, registry):
        assert await registry.add(make_connection("u1"), max_connections=1) is True
        assert await registry.add(make_connection("u2"), max_connections=1) is False
        assert len(registry) == 1


class TestRegistryBinding:

    @pytest.mark.asyncio
    async def test_bind_indexes_connection(self, registry):
        conn = make_connection("u1")
        await registry.add(conn)
        assert await registry.bind(conn, "g1") is True
        assert conn.state is SessionState.JOINED
        assert await registry.members("g1") == [conn]

    @pytest.mark.asyncio
    async def test_rebind_moves_connection_between_groups(self, registry):
        conn = make_connection("u1")
        await registry.add(conn)
        await registry.bind(conn, "g1")
        await registry.bind(conn, "g2")

        assert await registry.members("g1") == []
        assert await registry.members("g2") == [conn]
        assert conn.bound_group == "g2"
        assert registry.get_stats()["active_groups"] == 1

    @pytest.mark.asyncio
    async def test_bind_after_remove_is_rejected(self, registry):
        conn = make_connection("u1")
        await registry.add(conn)
        await registry.remove(conn)
        assert await registry.bind(conn, "g1") is False
        assert await registry.members("g1") == []

    @pytest.mark.asyncio
    async def test_members_excludes_handle_not_identity(self, registry):
        tab_a = make_connection("u1")
        tab_b = make_connection("u1")
        for conn in (tab_a, tab_b):
            await registry.add(conn)
            await registry.bind(conn, "g1")

        recipients = await registry.members("g1", exclude_handle=tab_a.handle)
        assert recipients == [tab_b]

    @pytest.mark.asyncio
    async def test_find_matches_group_and_identity(self, registry):
        u1_g1 = make_connection("u1")
        u1_g2 = make_connection("u1")
        u2_g1 = make_connection("u2")
        for conn, group in ((u1_g1, "g1"), (u1_g2, "g2"), (u2_g1, "g1")):
            await registry.add(conn)
            await registry.bind(conn, group)

        assert await registry.find("g1", "u1") == [u1_g1]
        assert await registry.find("g3", "u1") == []


class TestRegistryRemoval:

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, registry):
        conn = make_connection("u1")
        await registry.add(conn)
        await registry.bind(conn, "g1")

        assert await registry.remove(conn) is True
        assert await registry.remove(conn) is False
        assert conn not in registry
        assert await registry.members("g1") == []
        assert registry.get_stats() == {
            "total_connections": 0,
            "joined_connections": 0,
            "active_groups": 0,
        }

    @pytest.mark.asyncio
    async def test_remove_with_stale_expected_group_keeps_connection(self, registry):
        conn = make_connection("u1")
        await registry.add(conn)
        await registry.bind(conn, "g2")

        assert await registry.remove(conn, expected_group="g1") is False
        assert conn in registry
        assert await registry.members("g2") == [conn]

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, registry):
        conn = make_connection("u1")
        await registry.add(conn)
        snapshot = await registry.snapshot()
        await registry.remove(conn)
        assert snapshot == [conn]
        assert await registry.snapshot() == []
