"""Rate limit store interfaces and value types.

The limiter in ``kakeibo.core.rate_limit`` depends on this abstraction, not on
a concrete store, so a centralized backend can be substituted without
changing the fixed-window algorithm.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class RateLimitRecord:
    """Counter for one (route class, client identity) key.

    Attributes:
        count: Requests observed since ``window_start`` (including rejected ones).
        window_start: UNIX epoch seconds when the current window opened.
    """

    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single limiter decision.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the current window, clamped at 0.
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Seconds to wait when blocked, None when allowed.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None

    def headers(self) -> dict[str, str]:
        """Return the X-RateLimit-* headers describing this outcome."""

        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class AbstractRateLimitStore(ABC):
    """Keyed storage for rate limit records."""

    @abstractmethod
    def get(self, key: str) -> RateLimitRecord | None:
        """Return the record for ``key`` or None when the key is fresh."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str, now: float) -> RateLimitRecord:
        """Start a new window for ``key`` at ``now`` with a count of 1."""
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str) -> RateLimitRecord:
        """Add one request to the existing record for ``key``.

        Raises:
            KeyError: If ``key`` has no record.
        """
        raise NotImplementedError

    @abstractmethod
    def hit(self, key: str, now: float, window_seconds: float) -> RateLimitRecord:
        """Count one request for ``key`` as a single atomic step.

        Starts a new window at ``now`` when ``key`` has no record or its
        window has fully elapsed; otherwise increments the existing record.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now: float, window_seconds: float) -> int:
        """Delete records whose window has fully elapsed.

        Returns:
            Number of records removed.
        """
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
