"""Reconnect delay policy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class BackoffPolicy:
    """
    Bounded exponential backoff between reconnect attempts.

    ``delay = min(base_delay * factor ** failures, max_delay)`` where
    *failures* counts consecutive attempts that never reached OPEN. A factor
    of 1 gives a fixed delay.

    Attributes:
        base_delay: First delay, in seconds.
        factor: Growth factor per consecutive failure.
        max_delay: Upper bound, in seconds.
        max_attempts: Consecutive failures tolerated before giving up
            (0 means retry forever).
    """

    base_delay: float = 2.5
    factor: float = 2.0
    max_delay: float = 60.0
    max_attempts: int = 0

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if self.factor < 1:
            raise ValueError("factor must be at least 1")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must not be negative")

    @classmethod
    def from_settings(cls, settings: Any) -> "BackoffPolicy":
        return cls(
            base_delay=settings.RECONNECT_DELAY_MS / 1000,
            factor=settings.RECONNECT_BACKOFF_FACTOR,
            max_delay=settings.RECONNECT_MAX_DELAY_MS / 1000,
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        )

    def delay_for(self, failures: int) -> float:
        """Seconds to wait before the next attempt."""
        if failures <= 0:
            return self.base_delay
        try:
            delay = self.base_delay * self.factor ** failures
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)

    def exhausted(self, failures: int) -> bool:
        """Whether *failures* consecutive failures exhaust the policy."""
        return self.max_attempts > 0 and failures >= self.max_attempts
