"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Identifiers are never evicted proactively; call ``sweep()`` to drop the
  ones whose windows have emptied.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from apnisec.adapters.rate_limit.base import AbstractRateLimiter, RateLimitStatus
from apnisec.core.errors import RateLimitExceededError


def _now_ms() -> float:
    return time.time() * 1000


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping every request timestamp inside a trailing window.

    Unlike a fixed-window counter, a burst straddling a window boundary cannot
    double the effective limit. Memory per identifier is bounded by
    ``max_requests`` timestamps.
    """

    def __init__(
        self,
        *,
        max_requests: int = 5,
        window_ms: int = 60000,
        sweep_interval_ms: int | None = None,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            max_requests: Maximum number of requests allowed per window.
            window_ms: Size of the sliding window in milliseconds.
            sweep_interval_ms: When set, ``check_limit`` runs ``sweep()`` at
                most once per interval. ``None`` leaves stale identifiers in
                place until they are queried or swept explicitly.
            clock: Time source returning UNIX time in milliseconds.

        Raises:
            ValueError: If max_requests, window_ms or sweep_interval_ms are invalid.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if sweep_interval_ms is not None and sweep_interval_ms < 1:
            raise ValueError("sweep_interval_ms must be >= 1")

        self._max_requests = max_requests
        self._window_ms = window_ms
        self._sweep_interval_ms = sweep_interval_ms
        self._clock = clock
        self._lock = threading.RLock()
        self._requests: dict[str, list[float]] = {}
        self._last_sweep = clock()

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _recent(self, identifier: str, now: float) -> list[float]:
        """Return the identifier's timestamps still inside the window.

        Must be called while holding ``self._lock``. Does not store the result.
        """
        timestamps = self._requests.get(identifier, [])
        return [t for t in timestamps if now - t < self._window_ms]

    def check_limit(self, identifier: str) -> None:
        """Record a request for the identifier, refusing it once over budget.

        Args:
            identifier: Caller key (e.g. client IP, or "unknown").

        Raises:
            RateLimitExceededError: When ``max_requests`` requests were already
                recorded within the window.
        """
        now = self._clock()

        with self._lock:
            if (
                self._sweep_interval_ms is not None
                and now - self._last_sweep >= self._sweep_interval_ms
            ):
                self._sweep_locked(now)

            recent = self._recent(identifier, now)

            if len(recent) >= self._max_requests:
                self._requests[identifier] = recent
                status = self._build_status(recent, now)
                raise RateLimitExceededError(
                    limit=self._max_requests,
                    retry_after_seconds=status.retry_after_seconds,
                    reset_at_ms=status.reset_at_ms,
                )

            recent.append(now)
            self._requests[identifier] = recent

    def is_rate_limited(self, identifier: str) -> bool:
        now = self._clock()
        with self._lock:
            return len(self._recent(identifier, now)) >= self._max_requests

    def get_remaining_requests(self, identifier: str) -> int:
        now = self._clock()
        with self._lock:
            return max(0, self._max_requests - len(self._recent(identifier, now)))

    def get_status(self, identifier: str) -> RateLimitStatus:
        now = self._clock()
        with self._lock:
            return self._build_status(self._recent(identifier, now), now)

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._requests.pop(identifier, None)

    def sweep(self) -> int:
        """Drop identifiers with no requests left inside the window.

        Returns:
            Number of identifiers removed.
        """
        now = self._clock()
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        stale = [key for key in self._requests if not self._recent(key, now)]
        for key in stale:
            del self._requests[key]
        self._last_sweep = now
        return len(stale)

    def tracked_identifiers(self) -> int:
        """Number of identifiers currently holding state (swept or not)."""
        with self._lock:
            return len(self._requests)

    def _build_status(self, recent: list[float], now: float) -> RateLimitStatus:
        remaining = max(0, self._max_requests - len(recent))
        reset_at = recent[0] + self._window_ms if recent else now

        retry_after = 0
        if remaining == 0:
            # The oldest timestamp frees a slot once it leaves the window.
            retry_after = max(0, int(math.ceil((reset_at - now) / 1000)))

        return RateLimitStatus(
            limit=self._max_requests,
            remaining=remaining,
            reset_at_ms=int(reset_at),
            retry_after_seconds=retry_after,
        )
