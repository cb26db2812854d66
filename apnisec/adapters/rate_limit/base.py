"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only snapshot of an identifier's budget.

    Attributes:
        limit: Max requests per window.
        remaining: Requests still allowed in the current window.
        reset_at_ms: Epoch milliseconds when the oldest tracked request leaves
            the window (equals "now" when nothing is tracked).
        retry_after_seconds: Seconds until a slot frees up (0 when not limited).
    """

    limit: int
    remaining: int
    reset_at_ms: int
    retry_after_seconds: int

    def as_headers(self) -> dict[str, str]:
        """Render the snapshot as ``X-RateLimit-*`` response headers."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at_ms),
        }


class AbstractRateLimiter(ABC):
    """Interface for per-identifier rate limiters."""

    @abstractmethod
    def check_limit(self, identifier: str) -> None:
        """Record one request for ``identifier`` or refuse it.

        Raises:
            RateLimitExceededError: If the identifier is at its limit.
        """
        raise NotImplementedError

    @abstractmethod
    def is_rate_limited(self, identifier: str) -> bool:
        """Report whether the identifier is at or over its limit (read-only)."""
        raise NotImplementedError

    @abstractmethod
    def get_remaining_requests(self, identifier: str) -> int:
        """Return the number of requests left in the current window (read-only)."""
        raise NotImplementedError

    @abstractmethod
    def get_status(self, identifier: str) -> RateLimitStatus:
        """Return a snapshot suitable for response headers (read-only)."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, identifier: str) -> None:
        """Forget every tracked request for the identifier."""
        raise NotImplementedError
