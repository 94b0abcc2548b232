"""
Tests for the membership-change subscriber.
"""

import asyncio

import pytest
import redis.exceptions

from shared.infrastructure.events import (
    MEMBER_ADDED,
    MEMBER_REMOVED,
    MEMBERSHIP_CHANNEL_PATTERN,
    MembershipEvent,
    channel_group_membership,
)
from relay_gateway.components.resilience.retry import RetryConfig
from relay_gateway.redis_subscriber import handle_membership_message, run_eviction_subscriber
from tests.conftest import make_connection


def pmessage(data, group_id="g1"):
    return {
        "type": "pmessage",
        "pattern": MEMBERSHIP_CHANNEL_PATTERN,
        "channel": channel_group_membership(group_id),
        "data": data,
    }


class FakePubSub:
    """Replays queued messages, then raises the queued errors, then idles."""

    def __init__(self, messages=None, errors=None, subscribe_error=None):
        self.messages = list(messages or [])
        self.errors = list(errors or [])
        self.subscribe_error = subscribe_error
        self.patterns: list[str] = []
        self.closed = False

    async def psubscribe(self, *patterns):
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.patterns.extend(patterns)

    async def punsubscribe(self, *patterns):
        self.patterns = [p for p in self.patterns if p not in patterns]

    async def aclose(self):
        self.closed = True

    async def get_message(self, ignore_subscribe_messages=True, timeout=1.0):
        if self.errors:
            raise self.errors.pop(0)
        if self.messages:
            return self.messages.pop(0)
        await asyncio.sleep(0.01)
        return None


class FakeRedis:
    def __init__(self, *pubsubs):
        self.pubsubs = list(pubsubs)
        self.created: list[FakePubSub] = []

    def pubsub(self):
        pubsub = self.pubsubs.pop(0)
        self.created.append(pubsub)
        return pubsub


async def _joined(manager, identity, group_id):
    conn = make_connection(identity)
    await manager.admit(conn)
    await manager.bind(conn, group_id)
    return conn


class TestHandleMembershipMessage:

    @pytest.mark.asyncio
    async def test_member_removed_evicts(self, manager):
        conn = await _joined(manager, "u2", "g1")
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u2")

        assert await handle_membership_message(manager, pmessage(event.to_json())) == 1
        assert conn.closed

    @pytest.mark.asyncio
    async def test_bytes_payload(self, manager):
        conn = await _joined(manager, "u2", "g1")
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u2")

        await handle_membership_message(manager, pmessage(event.to_json().encode()))
        assert conn.closed

    @pytest.mark.asyncio
    async def test_other_event_types_are_ignored(self, manager):
        conn = await _joined(manager, "u2", "g1")
        event = MembershipEvent(type=MEMBER_ADDED, group_id="g1", user_id="u2")

        assert await handle_membership_message(manager, pmessage(event.to_json())) == 0
        assert not conn.closed

    @pytest.mark.parametrize("data", [
        "not json",
        "[]",
        '{"type": "MEMBER_REMOVED"}',
        '{"type": "SOMETHING_ELSE", "group_id": "g1", "user_id": "u2"}',
        None,
    ])
    @pytest.mark.asyncio
    async def test_malformed_payloads_are_dropped(self, manager, data):
        conn = await _joined(manager, "u2", "g1")
        assert await handle_membership_message(manager, pmessage(data)) == 0
        assert not conn.closed


class TestRunEvictionSubscriber:

    @pytest.mark.asyncio
    async def test_applies_messages_until_cancelled(self, manager):
        conn = await _joined(manager, "u2", "g1")
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u2")
        pubsub = FakePubSub(messages=[pmessage(event.to_json())])
        client = FakeRedis(pubsub)

        async def factory():
            return client

        task = asyncio.create_task(run_eviction_subscriber(manager, redis_factory=factory))
        await asyncio.wait_for(conn.wait_closed(), timeout=1.0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert pubsub.closed
        assert pubsub.patterns == []

    @pytest.mark.asyncio
    async def test_reconnects_after_connection_error(self, manager):
        conn = await _joined(manager, "u2", "g1")
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u2")
        broken = FakePubSub(errors=[redis.exceptions.ConnectionError("reset")])
        fresh = FakePubSub(messages=[pmessage(event.to_json())])
        client = FakeRedis(broken, fresh)

        async def factory():
            return client

        config = RetryConfig(initial_delay=0.01, max_delay=0.01, max_attempts=3)
        task = asyncio.create_task(
            run_eviction_subscriber(manager, redis_factory=factory, retry_config=config)
        )
        await asyncio.wait_for(conn.wait_closed(), timeout=1.0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert broken.closed
        assert fresh.patterns == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, manager):
        def broken():
            return FakePubSub(errors=[redis.exceptions.ConnectionError("down")])
        client = FakeRedis(broken(), broken(), broken())

        async def factory():
            return client

        config = RetryConfig(initial_delay=0.01, max_delay=0.01, max_attempts=2)
        with pytest.raises(RuntimeError):
            await asyncio.wait_for(
                run_eviction_subscriber(manager, redis_factory=factory, retry_config=config),
                timeout=2.0,
            )

    @pytest.mark.asyncio
    async def test_survives_failed_resubscribe(self, manager):
        conn = await _joined(manager, "u2", "g1")
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u2")
        broken = FakePubSub(errors=[redis.exceptions.ConnectionError("reset")])
        still_down = FakePubSub(subscribe_error=redis.exceptions.ConnectionError("refused"))
        fresh = FakePubSub(messages=[pmessage(event.to_json())])
        client = FakeRedis(broken, still_down, fresh)

        async def factory():
            return client

        config = RetryConfig(initial_delay=0.01, max_delay=0.01, max_attempts=3)
        task = asyncio.create_task(
            run_eviction_subscriber(manager, redis_factory=factory, retry_config=config)
        )
        await asyncio.wait_for(conn.wait_closed(), timeout=1.0)
        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert client.created == [broken, still_down, fresh]
        assert broken.closed
        assert still_down.closed
        assert fresh.closed

    @pytest.mark.asyncio
    async def test_retries_initial_subscribe_while_redis_is_down(self, manager):
        conn = await _joined(manager, "u2", "g1")
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u2")
        client = FakeRedis(
            FakePubSub(subscribe_error=redis.exceptions.ConnectionError("refused")),
            FakePubSub(subscribe_error=redis.exceptions.TimeoutError("slow")),
            FakePubSub(messages=[pmessage(event.to_json())]),
        )

        async def factory():
            return client

        config = RetryConfig(initial_delay=0.01, max_delay=0.01, max_attempts=3)
        task = asyncio.create_task(
            run_eviction_subscriber(manager, redis_factory=factory, retry_config=config)
        )
        await asyncio.wait_for(conn.wait_closed(), timeout=1.0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(client.created) == 3

    @pytest.mark.asyncio
    async def test_failed_subscribes_count_toward_max_attempts(self, manager):
        def refused():
            return FakePubSub(subscribe_error=redis.exceptions.ConnectionError("refused"))
        client = FakeRedis(refused(), refused(), refused())

        async def factory():
            return client

        config = RetryConfig(initial_delay=0.01, max_delay=0.01, max_attempts=2)
        with pytest.raises(RuntimeError):
            await asyncio.wait_for(
                run_eviction_subscriber(manager, redis_factory=factory, retry_config=config),
                timeout=2.0,
            )
        assert len(client.created) == 3
