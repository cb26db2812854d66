"""FastAPI dependencies resolving the services attached to ``app.state``.

The app factory is the composition root: it builds (or receives) one event
logger, one rate limiter and one user repository per application instance.
Handlers and middleware reach them through these accessors instead of module
globals, so tests can run isolated apps side by side.
"""

from __future__ import annotations

from fastapi import Request

from apnisec.adapters.rate_limit.base import AbstractRateLimiter
from apnisec.adapters.users.base import AbstractUserRepository
from apnisec.core.event_logger import StructuredLogger
from apnisec.services.auth_service import AuthService


def get_request_event_logger(request: Request) -> StructuredLogger:
    return request.app.state.event_logger


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    return request.app.state.rate_limiter


def get_user_repository(request: Request) -> AbstractUserRepository:
    return request.app.state.user_repository


def get_auth_service(request: Request) -> AuthService:
    return AuthService(
        users=get_user_repository(request),
        event_logger=get_request_event_logger(request),
    )
