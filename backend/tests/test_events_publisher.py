"""
Tests for membership event publishing.
"""

import json

import pytest
import redis.asyncio as redis

from shared.infrastructure.events import (
    MEMBER_REMOVED,
    MembershipEvent,
    channel_group_membership,
    publish_event,
    publish_member_removed,
)
import shared.infrastructure.events.publisher as publisher


class RecordingRedis:
    def __init__(self, failures=0):
        self.failures = failures
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel, message):
        if self.failures:
            self.failures -= 1
            raise redis.ConnectionError("reset")
        self.published.append((channel, message))
        return 1


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(publisher, "PUBLISH_RETRY_DELAY", 0.001)
    monkeypatch.setattr(publisher, "calculate_retry_delay_with_jitter", lambda attempt, base: 0)


class TestPublishMemberRemoved:

    @pytest.mark.asyncio
    async def test_publishes_to_group_channel(self):
        client = RecordingRedis()

        assert await publish_member_removed(client, "g1", 42, actor_id=7) == 1

        [(channel, message)] = client.published
        assert channel == "group:g1:membership"
        data = json.loads(message)
        assert data["type"] == MEMBER_REMOVED
        assert data["user_id"] == "42"
        assert data["actor_id"] == "7"
        assert data["ts"]

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        client = RecordingRedis(failures=2)
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u1")
        assert await publish_event(client, channel_group_membership("g1"), event) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        client = RecordingRedis(failures=10)
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id="u1")
        with pytest.raises(redis.RedisError):
            await publish_event(client, channel_group_membership("g1"), event)


class TestChannels:

    @pytest.mark.parametrize("group_id", ["", "a:b", "a*", None])
    def test_invalid_group_ids(self, group_id):
        with pytest.raises(ValueError):
            channel_group_membership(group_id)


class TestMembershipEvent:

    def test_round_trip(self):
        event = MembershipEvent(type=MEMBER_REMOVED, group_id="g1", user_id=5)
        parsed = MembershipEvent.from_json(event.to_json())
        assert parsed.user_id == "5"
        assert parsed.group_id == "g1"

    @pytest.mark.parametrize("data", [
        {"type": "BOGUS", "group_id": "g1", "user_id": "u1"},
        {"type": MEMBER_REMOVED, "group_id": "", "user_id": "u1"},
        {"type": MEMBER_REMOVED, "user_id": "u1"},
    ])
    def test_invalid(self, data):
        with pytest.raises(ValueError):
            MembershipEvent.from_dict(data)
