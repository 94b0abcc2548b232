"""
Tests for the SQL membership oracle.
"""

import time

import pytest
from sqlalchemy.exc import OperationalError

from relay_gateway.components.core.errors import InternalError
from relay_gateway.components.data.membership_repository import (
    SqlMembershipOracle,
    is_valid_group_id,
)


class TestGroupIdShape:

    @pytest.mark.parametrize("group_id", ["g1", "0f3a" * 16, "algebra"])
    def test_valid(self, group_id):
        assert is_valid_group_id(group_id)

    @pytest.mark.parametrize("group_id", ["", " g1", "g" * 65, None, 12])
    def test_invalid(self, group_id):
        assert not is_valid_group_id(group_id)


class TestSqlMembershipOracle:

    @pytest.mark.asyncio
    async def test_member(self, db_session_factory, seed_group):
        oracle = SqlMembershipOracle(session_factory=db_session_factory)
        assert await oracle.is_member("u1", seed_group) is True
        assert await oracle.is_member("u2", seed_group) is True

    @pytest.mark.asyncio
    async def test_non_member(self, db_session_factory, seed_group):
        oracle = SqlMembershipOracle(session_factory=db_session_factory)
        assert await oracle.is_member("u3", seed_group) is False

    @pytest.mark.asyncio
    async def test_unknown_group(self, db_session_factory, seed_group):
        oracle = SqlMembershipOracle(session_factory=db_session_factory)
        assert await oracle.is_member("u1", "no-such-group") is False

    @pytest.mark.asyncio
    async def test_malformed_group_id_skips_store(self):
        def explode():
            raise AssertionError("store must not be queried")
        oracle = SqlMembershipOracle(session_factory=explode)
        assert await oracle.is_member("u1", "") is False
        assert await oracle.is_member("u1", "g" * 100) is False

    @pytest.mark.asyncio
    async def test_database_error_becomes_internal_error(self):
        def broken_session():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
        oracle = SqlMembershipOracle(session_factory=broken_session)

        with pytest.raises(InternalError) as exc_info:
            await oracle.is_member("u1", "g1")
        assert exc_info.value.component == "membership_store"
        assert oracle.get_stats()["lookups"]["errors"] == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_internal_error(self, monkeypatch):
        oracle = SqlMembershipOracle(session_factory=lambda: None, timeout=0.05)

        def slow_lookup(identity, group_id):
            time.sleep(0.5)
            return True
        monkeypatch.setattr(oracle, "_is_member_sync", slow_lookup)

        with pytest.raises(InternalError):
            await oracle.is_member("u1", "g1")
        assert oracle.get_stats()["lookups"]["timeouts"] == 1
