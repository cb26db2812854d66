"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``apnisec`` import so that the
settings object is built for the testing environment.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "debug")
os.environ.setdefault("LOG_ENABLE_CONSOLE", "false")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")

import logging
from io import StringIO
from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from apnisec.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from apnisec.adapters.users.in_memory import InMemoryUserRepository
from apnisec.core.app_factory import create_app
from apnisec.core.event_logger import LoggerConfig, StructuredLogger


@pytest.fixture
def event_logger() -> StructuredLogger:
    """Isolated event logger with console output disabled."""
    return StructuredLogger(LoggerConfig(min_level="debug", enable_console=False))


@pytest.fixture
def console_stream() -> StringIO:
    return StringIO()


@pytest.fixture
def console_sink(console_stream: StringIO, request: pytest.FixtureRequest) -> logging.Logger:
    """A stdlib logger writing bare messages into ``console_stream``."""
    sink = logging.getLogger(f"tests.events.{request.node.name}")
    sink.handlers.clear()
    sink.setLevel(logging.DEBUG)
    sink.propagate = False
    handler = logging.StreamHandler(console_stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    sink.addHandler(handler)
    return sink


@pytest.fixture
def clock() -> Mock:
    """Millisecond clock frozen at a fixed instant; tests move it explicitly."""
    return Mock(return_value=1_700_000_000_000.0)


@pytest.fixture
def rate_limiter(clock: Mock) -> InMemorySlidingWindowRateLimiter:
    return InMemorySlidingWindowRateLimiter(max_requests=5, window_ms=60000, clock=clock)


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def app(
    event_logger: StructuredLogger,
    rate_limiter: InMemorySlidingWindowRateLimiter,
    user_repository: InMemoryUserRepository,
) -> FastAPI:
    return create_app(
        event_logger=event_logger,
        rate_limiter=rate_limiter,
        user_repository=user_repository,
    )


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def register_user(client: TestClient):
    """Register a user from a distinct address and return the response JSON."""

    counter = {"n": 0}

    def _register(
        email: str = "john@example.com",
        password: str = "password123",
        name: str = "John Doe",
    ) -> dict:
        counter["n"] += 1
        response = client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
            headers={"X-Forwarded-For": f"10.0.0.{counter['n']}"},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _register
