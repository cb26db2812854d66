"""Unit tests for the in-memory sliding-window rate limiter."""

import threading
from unittest.mock import Mock

import pytest

from apnisec.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from apnisec.core.errors import RateLimitExceededError

T0 = 1_700_000_000_000.0


def _limiter(max_requests: int = 5, window_ms: int = 60000, **kwargs) -> tuple[InMemorySlidingWindowRateLimiter, Mock]:
    clock = Mock(return_value=T0)
    limiter = InMemorySlidingWindowRateLimiter(
        max_requests=max_requests, window_ms=window_ms, clock=clock, **kwargs
    )
    return limiter, clock


def test_allows_up_to_limit_then_blocks() -> None:
    limiter, _ = _limiter(max_requests=3)

    for _ in range(3):
        limiter.check_limit("k")

    with pytest.raises(RateLimitExceededError) as exc_info:
        limiter.check_limit("k")

    assert exc_info.value.limit == 3
    assert exc_info.value.status_code == 429


def test_default_scenario_five_requests_per_minute() -> None:
    limiter, clock = _limiter()

    for _ in range(5):
        limiter.check_limit("ip-1")

    clock.return_value = T0 + 1000
    with pytest.raises(RateLimitExceededError):
        limiter.check_limit("ip-1")

    clock.return_value = T0 + 61000
    limiter.check_limit("ip-1")


def test_window_is_sliding_not_fixed() -> None:
    limiter, clock = _limiter(max_requests=2, window_ms=10000)

    limiter.check_limit("k")
    clock.return_value = T0 + 9000
    limiter.check_limit("k")

    # First request leaves the window at exactly T0 + 10000.
    clock.return_value = T0 + 9999
    with pytest.raises(RateLimitExceededError):
        limiter.check_limit("k")

    clock.return_value = T0 + 10000
    limiter.check_limit("k")

    # The request at T0 + 9000 is still inside the window.
    with pytest.raises(RateLimitExceededError):
        limiter.check_limit("k")


def test_refused_requests_do_not_consume_budget() -> None:
    limiter, clock = _limiter(max_requests=1, window_ms=10000)

    limiter.check_limit("k")
    clock.return_value = T0 + 5000
    with pytest.raises(RateLimitExceededError):
        limiter.check_limit("k")

    clock.return_value = T0 + 10000
    limiter.check_limit("k")


def test_retry_after_counts_down_to_oldest_expiry() -> None:
    limiter, clock = _limiter(max_requests=2, window_ms=60000)

    limiter.check_limit("k")
    clock.return_value = T0 + 20000
    limiter.check_limit("k")

    clock.return_value = T0 + 30500
    with pytest.raises(RateLimitExceededError) as exc_info:
        limiter.check_limit("k")

    assert exc_info.value.retry_after_seconds == 30
    assert exc_info.value.reset_at_ms == int(T0 + 60000)


def test_isolated_by_identifier() -> None:
    limiter, _ = _limiter(max_requests=1)

    limiter.check_limit("k1")
    with pytest.raises(RateLimitExceededError):
        limiter.check_limit("k1")

    limiter.check_limit("k2")


def test_identifiers_are_compared_verbatim() -> None:
    limiter, _ = _limiter(max_requests=1)

    limiter.check_limit("unknown")
    limiter.check_limit("Unknown")
    limiter.check_limit("")
    with pytest.raises(RateLimitExceededError):
        limiter.check_limit("")


def test_remaining_requests_tracks_window() -> None:
    limiter, clock = _limiter(max_requests=3, window_ms=1000)

    assert limiter.get_remaining_requests("k") == 3
    limiter.check_limit("k")
    limiter.check_limit("k")
    assert limiter.get_remaining_requests("k") == 1

    limiter.check_limit("k")
    assert limiter.get_remaining_requests("k") == 0

    clock.return_value = T0 + 1000
    assert limiter.get_remaining_requests("k") == 3


def test_is_rate_limited_is_read_only() -> None:
    limiter, _ = _limiter(max_requests=2)

    limiter.check_limit("k")
    for _ in range(10):
        assert limiter.is_rate_limited("k") is False

    assert limiter.get_remaining_requests("k") == 1
    limiter.check_limit("k")
    assert limiter.is_rate_limited("k") is True


def test_reset_clears_identifier() -> None:
    limiter, _ = _limiter(max_requests=1)

    limiter.check_limit("k")
    assert limiter.is_rate_limited("k") is True

    limiter.reset("k")
    limiter.check_limit("k")

    # Resetting an unseen identifier is a no-op
    limiter.reset("never-seen")


def test_status_reports_headers() -> None:
    limiter, clock = _limiter(max_requests=2, window_ms=60000)

    idle = limiter.get_status("k")
    assert idle.remaining == 2
    assert idle.retry_after_seconds == 0
    assert idle.reset_at_ms == int(T0)

    limiter.check_limit("k")
    clock.return_value = T0 + 1000
    limiter.check_limit("k")

    status = limiter.get_status("k")
    assert status.remaining == 0
    assert status.reset_at_ms == int(T0 + 60000)
    assert status.retry_after_seconds == 59
    assert status.as_headers() == {
        "X-RateLimit-Limit": "2",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(int(T0 + 60000)),
    }


def test_sweep_drops_identifiers_with_empty_windows() -> None:
    limiter, clock = _limiter(max_requests=5, window_ms=1000)

    limiter.check_limit("old")
    clock.return_value = T0 + 800
    limiter.check_limit("fresh")

    clock.return_value = T0 + 1500
    assert limiter.sweep() == 1
    assert limiter.tracked_identifiers() == 1
    assert limiter.get_remaining_requests("fresh") == 4


def test_periodic_sweep_runs_from_check_limit() -> None:
    limiter, clock = _limiter(max_requests=5, window_ms=1000, sweep_interval_ms=5000)

    limiter.check_limit("a")
    limiter.check_limit("b")
    assert limiter.tracked_identifiers() == 2

    clock.return_value = T0 + 4000
    limiter.check_limit("c")
    assert limiter.tracked_identifiers() == 3

    clock.return_value = T0 + 5000
    limiter.check_limit("c")
    # Every earlier request has left the 1s window; only the new one remains
    assert limiter.tracked_identifiers() == 1
    assert limiter.get_remaining_requests("c") == 4


def test_read_only_queries_do_not_sweep() -> None:
    limiter, clock = _limiter(max_requests=5, window_ms=1000, sweep_interval_ms=1)

    limiter.check_limit("a")
    clock.return_value = T0 + 10000
    limiter.is_rate_limited("b")
    limiter.get_remaining_requests("b")
    limiter.get_status("b")

    assert limiter.tracked_identifiers() == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_requests": 0, "window_ms": 60000},
        {"max_requests": 1, "window_ms": 0},
        {"max_requests": 1, "window_ms": 1000, "sweep_interval_ms": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemorySlidingWindowRateLimiter(**kwargs)


def test_defaults_match_auth_policy() -> None:
    limiter = InMemorySlidingWindowRateLimiter()

    assert limiter.max_requests == 5
    assert limiter.window_ms == 60000


def test_concurrent_callers_share_one_budget() -> None:
    limiter = InMemorySlidingWindowRateLimiter(max_requests=50, window_ms=60000, clock=lambda: T0)
    threads_count, attempts = 8, 25
    start = threading.Barrier(threads_count)
    allowed: list[int] = []
    refused: list[int] = []
    results_lock = threading.Lock()

    def hammer() -> None:
        start.wait()
        ok = denied = 0
        for _ in range(attempts):
            try:
                limiter.check_limit("shared")
                ok += 1
            except RateLimitExceededError:
                denied += 1
        with results_lock:
            allowed.append(ok)
            refused.append(denied)

    threads = [threading.Thread(target=hammer) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(allowed) == 50
    assert sum(refused) == threads_count * attempts - 50
    assert limiter.get_remaining_requests("shared") == 0


def test_concurrent_callers_on_distinct_keys_do_not_interfere() -> None:
    limiter = InMemorySlidingWindowRateLimiter(max_requests=5, window_ms=60000, clock=lambda: T0)
    start = threading.Barrier(10)

    def use_own_budget(n: int) -> None:
        start.wait()
        for _ in range(5):
            limiter.check_limit(f"ip-{n}")

    threads = [threading.Thread(target=use_own_budget, args=(n,)) for n in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(limiter.is_rate_limited(f"ip-{n}") for n in range(10))
    assert limiter.tracked_identifiers() == 10
