"""
Reconnect backoff for the relay's Redis subscriber.

Exponential backoff with symmetric jitter, so a fleet of relays that lost
Redis together does not reconnect in lockstep.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Final

DEFAULT_JITTER_FACTOR: Final[float] = 0.25
DEFAULT_BACKOFF_BASE: Final[float] = 2.0
DEFAULT_INITIAL_DELAY: Final[float] = 1.0


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Backoff parameters.

    Attributes:
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Cap applied before jitter.
        backoff_base: Multiplier per attempt.
        jitter_factor: Fraction of the delay randomly added or removed.
        max_attempts: Attempts before the caller gives up.
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = 30.0
    backoff_base: float = DEFAULT_BACKOFF_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


def calculate_delay_with_jitter(attempt: int, config: RetryConfig | None = None) -> float:
    """
    Delay before retry number attempt (0-indexed).

        capped = min(initial_delay * backoff_base ** attempt, max_delay)
        delay  = capped * (1 +/- jitter_factor)

    Example:
        >>> config = RetryConfig(initial_delay=1.0, max_delay=30.0)
        >>> calculate_delay_with_jitter(0, config)  # ~1.0s +/- 25%
        >>> calculate_delay_with_jitter(6, config)  # ~30.0s +/- 25% (capped)
    """
    if config is None:
        config = RetryConfig()

    capped_delay = min(config.initial_delay * (config.backoff_base ** attempt), config.max_delay)
    jitter_range = capped_delay * config.jitter_factor
    return max(0.0, capped_delay + random.uniform(-jitter_range, jitter_range))


def create_redis_retry_config(
    max_delay: float = 30.0,
    max_attempts: int = 10,
) -> RetryConfig:
    """Retry config for re-establishing the membership subscription."""
    return RetryConfig(
        initial_delay=1.0,
        max_delay=max_delay,
        backoff_base=2.0,
        jitter_factor=0.25,
        max_attempts=max_attempts,
    )
