"""Retry policy with capped exponential backoff.

Delays follow ``base_delay * backoff_factor ** retry`` capped at
``max_delay``, with optional ±jitter. A gateway-supplied retry-after hint
replaces the computed delay, bounded by ``max_retry_after``.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from push_dispatch.core.config import RetryConfig


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Backoff schedule for transient gateway failures.

    With the defaults a message is attempted at most four times (one send
    plus three retries) and waits 0.5s, 1.0s and 2.0s between attempts.
    """

    max_retries: int = 3
    base_delay: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 4.0
    jitter_percent: float = 0.0
    max_retry_after: float = 60.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.base_delay <= 0 or self.max_delay <= 0:
            raise ValueError("backoff delays must be greater than zero")
        if self.backoff_factor < 1.0:
            raise ValueError("backoff_factor must be at least 1.0")
        if not 0.0 <= self.jitter_percent <= 100.0:
            raise ValueError("jitter_percent must be between 0 and 100")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay_seconds,
            backoff_factor=config.backoff_factor,
            max_delay=config.max_delay_seconds,
            jitter_percent=config.jitter_percent,
            max_retry_after=config.max_retry_after_seconds,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, retries_done: int) -> bool:
        """Check whether another retry is allowed after ``retries_done`` retries."""
        return retries_done < self.max_retries

    def backoff_delay(self, retry: int) -> float:
        """Calculate the delay before the given retry.

        Args:
            retry: Retry number (0-indexed: 0 is the first retry)

        Returns:
            Delay in seconds, never above ``max_delay``
        """
        delay = min(self.base_delay * pow(self.backoff_factor, retry), self.max_delay)
        if self.jitter_percent:
            jitter_factor = 1.0 + random.uniform(-self.jitter_percent / 100.0, self.jitter_percent / 100.0)
            delay = min(delay * jitter_factor, self.max_delay)
        return delay

    def delay_for(self, retry: int, retry_after: float | None = None) -> float:
        """Delay before a retry, honoring a gateway retry-after hint when present."""
        if retry_after is not None and retry_after >= 0:
            return min(retry_after, self.max_retry_after)
        return self.backoff_delay(retry)
