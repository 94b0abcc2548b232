"""
Redis pub/sub subscriber for membership changes.

Group management publishes MEMBER_REMOVED on group:{id}:membership when a
member loses access. Every relay instance subscribes to the pattern and
evicts that member's local connections from the group.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TYPE_CHECKING

import redis.asyncio as redis
import redis.exceptions

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.events import (
    MEMBER_REMOVED,
    MEMBERSHIP_CHANNEL_PATTERN,
    MAX_EVENT_SIZE,
    MembershipEvent,
    get_redis_pool,
)
from relay_gateway.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_redis_retry_config,
)

if TYPE_CHECKING:
    from relay_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)

MAX_RECONNECT_ATTEMPTS = settings.redis_max_reconnect_attempts
PUBSUB_CLEANUP_TIMEOUT = settings.redis_pubsub_cleanup_timeout

RedisFactory = Callable[[], Awaitable[redis.Redis]]


async def handle_membership_message(manager: "ConnectionManager", msg: dict[str, Any]) -> int:
    """
    Apply one pub/sub message.

    Malformed payloads are logged and dropped; they never stop the
    subscriber.

    Returns:
        Number of connections evicted.
    """
    data = msg.get("data")
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    if not isinstance(data, str):
        return 0
    if len(data) > MAX_EVENT_SIZE:
        logger.warning("Membership event too large, dropped", size=len(data))
        return 0

    try:
        event = MembershipEvent.from_json(data)
    except ValueError as e:
        logger.warning(
            "Invalid membership event, dropped",
            channel=msg.get("channel"),
            error=str(e),
        )
        return 0

    if event.type != MEMBER_REMOVED:
        logger.debug("Ignoring membership event", event_type=event.type, group_id=event.group_id)
        return 0

    return await manager.evict(event.group_id, event.user_id)


async def run_eviction_subscriber(
    manager: "ConnectionManager",
    redis_factory: RedisFactory = get_redis_pool,
    retry_config: RetryConfig | None = None,
) -> None:
    """
    Listen for membership changes and evict removed members until cancelled.

    Subscribing happens inside the retry loop, so a relay started while
    Redis is down keeps retrying, and a failed resubscribe counts as one
    more attempt. The attempt counter resets after any successful read.

    Raises:
        RuntimeError: If reconnection keeps failing past max attempts.
    """
    config = retry_config or create_redis_retry_config(max_attempts=MAX_RECONNECT_ATTEMPTS)
    pubsub: Any = None
    reconnect_attempts = 0
    try:
        while True:
            try:
                if pubsub is None:
                    pubsub = await _subscribe(redis_factory)
                    if reconnect_attempts:
                        logger.info(
                            "Eviction subscriber reconnected",
                            pattern=MEMBERSHIP_CHANNEL_PATTERN,
                            attempt=reconnect_attempts,
                        )
                    else:
                        logger.info("Eviction subscriber started", pattern=MEMBERSHIP_CHANNEL_PATTERN)

                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                reconnect_attempts = 0
                if msg is None:
                    continue
                if msg.get("type") not in ("message", "pmessage"):
                    continue

                try:
                    await handle_membership_message(manager, msg)
                except Exception as e:
                    logger.error(
                        "Error applying membership event",
                        channel=msg.get("channel"),
                        error=str(e),
                        exc_info=True,
                    )

            except redis.exceptions.TimeoutError:
                # Normal for pubsub - continue listening
                continue

            except redis.exceptions.ConnectionError as e:
                reconnect_attempts += 1
                if reconnect_attempts > config.max_attempts:
                    logger.error(
                        "Max reconnection attempts exceeded, subscriber giving up",
                        attempts=reconnect_attempts,
                        max_attempts=config.max_attempts,
                    )
                    raise RuntimeError(
                        f"Eviction subscriber failed after {reconnect_attempts} reconnection attempts"
                    ) from e

                if pubsub is not None:
                    await _close_pubsub(pubsub)
                    pubsub = None

                delay = calculate_delay_with_jitter(reconnect_attempts - 1, config)
                logger.warning(
                    "Redis connection error, reconnecting",
                    error=str(e),
                    attempt=reconnect_attempts,
                    max_attempts=config.max_attempts,
                    delay=round(delay, 2),
                )
                await asyncio.sleep(delay)

    except asyncio.CancelledError:
        logger.info("Eviction subscriber cancelled")
        raise
    finally:
        if pubsub is not None:
            await _close_pubsub(pubsub)


async def _subscribe(redis_factory: RedisFactory) -> Any:
    """Open a fresh pubsub subscribed to every group's membership channel."""
    redis_client = await redis_factory()
    pubsub = redis_client.pubsub()
    try:
        await pubsub.psubscribe(MEMBERSHIP_CHANNEL_PATTERN)
    except redis.exceptions.RedisError as e:
        await _close_pubsub(pubsub)
        if isinstance(e, redis.exceptions.TimeoutError):
            # Retried with backoff like a refused connection
            raise redis.exceptions.ConnectionError(f"Subscribe timed out: {e}") from e
        raise
    return pubsub


async def _close_pubsub(pubsub: Any) -> None:
    try:
        await asyncio.wait_for(
            pubsub.punsubscribe(MEMBERSHIP_CHANNEL_PATTERN),
            timeout=PUBSUB_CLEANUP_TIMEOUT,
        )
    except asyncio.TimeoutError:
        logger.warning("Pubsub unsubscribe timed out", timeout=PUBSUB_CLEANUP_TIMEOUT)
    except (redis.exceptions.RedisError, OSError) as e:
        logger.warning("Error during pubsub cleanup", error=str(e))

    try:
        await asyncio.wait_for(pubsub.aclose(), timeout=PUBSUB_CLEANUP_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning("Pubsub close timed out", timeout=PUBSUB_CLEANUP_TIMEOUT)
    except (redis.exceptions.RedisError, OSError) as e:
        logger.debug("Error closing pubsub", error=str(e))

