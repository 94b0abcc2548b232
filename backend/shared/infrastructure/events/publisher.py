"""
Membership Event Publishing with Retry.

Used by the group-management service (and operational tooling) to tell
relays that a member lost access to a group.
"""

from __future__ import annotations

import asyncio
import random

import redis.asyncio as redis

from shared.config.logging import get_logger
from .channels import channel_group_membership
from .event_schema import MembershipEvent
from .event_types import MAX_EVENT_SIZE, MEMBER_REMOVED

logger = get_logger(__name__)

PUBLISH_MAX_RETRIES = 3
PUBLISH_RETRY_DELAY = 0.1


def calculate_retry_delay_with_jitter(attempt: int, base_delay: float = 0.5) -> float:
    """
    Exponential backoff with decorrelated jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds, between base_delay and min(base_delay * 2^attempt, 10)
    """
    exp_delay = min(base_delay * (2 ** attempt), 10.0)
    return random.uniform(base_delay, exp_delay)


async def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: MembershipEvent,
) -> int:
    """
    Publish a membership event to a Redis channel.

    Returns:
        Number of subscribers that received the message.

    Raises:
        ValueError: If the serialized event is too large.
        redis.RedisError: If all retries fail.
    """
    event_json = event.to_json()

    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(
            f"Event {event.type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )

    last_error: Exception | None = None
    for attempt in range(PUBLISH_MAX_RETRIES):
        try:
            return await redis_client.publish(channel, event_json)
        except redis.RedisError as e:
            last_error = e
            if attempt < PUBLISH_MAX_RETRIES - 1:
                delay = calculate_retry_delay_with_jitter(attempt, PUBLISH_RETRY_DELAY)
                logger.warning(
                    "Redis publish failed, retrying",
                    channel=channel,
                    event_type=event.type,
                    attempt=attempt + 1,
                    max_retries=PUBLISH_MAX_RETRIES,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    "Redis publish failed after all retries",
                    channel=channel,
                    event_type=event.type,
                    error=str(e),
                )

    raise last_error  # type: ignore[misc]


async def publish_member_removed(
    redis_client: redis.Redis,
    group_id: str,
    user_id: str | int,
    actor_id: str | int | None = None,
) -> int:
    """
    Announce that user_id was removed from group_id.

    Every relay subscribed to the membership channels evicts the user's
    connections bound to that group.
    """
    event = MembershipEvent(
        type=MEMBER_REMOVED,
        group_id=str(group_id),
        user_id=str(user_id),
        actor_id=str(actor_id) if actor_id is not None else None,
    )
    return await publish_event(redis_client, channel_group_membership(event.group_id), event)
