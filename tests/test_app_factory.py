"""Tests for service wiring in the application factory."""

from __future__ import annotations

from fastapi.testclient import TestClient

from apnisec.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from apnisec.adapters.users.in_memory import InMemoryUserRepository
from apnisec.core.app_factory import create_app
from apnisec.core.event_logger import LoggerConfig, StructuredLogger, get_event_logger


def test_empty_services_passed_in_are_kept():
    """Fresh logger and user store have len() == 0 but must still be used."""
    events = StructuredLogger(LoggerConfig(enable_console=False))
    users = InMemoryUserRepository()
    limiter = InMemorySlidingWindowRateLimiter()

    assert len(events) == 0
    assert len(users) == 0

    app = create_app(event_logger=events, rate_limiter=limiter, user_repository=users)

    assert app.state.event_logger is events
    assert app.state.rate_limiter is limiter
    assert app.state.user_repository is users


def test_defaults_when_nothing_is_passed():
    app = create_app()

    assert app.state.event_logger is get_event_logger()
    assert isinstance(app.state.rate_limiter, InMemorySlidingWindowRateLimiter)
    assert isinstance(app.state.user_repository, InMemoryUserRepository)


def test_requests_are_recorded_on_the_app_logger():
    events = StructuredLogger(LoggerConfig(enable_console=False))
    client = TestClient(create_app(event_logger=events))

    client.get("/health")

    assert [entry.path for entry in events.get_recent_logs() if entry.context == "HTTP"] == ["/health"]


def test_apps_do_not_share_user_stores():
    first = create_app(user_repository=InMemoryUserRepository())
    second = create_app(user_repository=InMemoryUserRepository())

    assert first.state.user_repository is not second.state.user_repository
