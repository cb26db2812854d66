"""Application factory for the FastAPI app.

Centralizes app construction (metadata, shared services, middleware,
handlers, routers). It is also the composition root: the event logger, rate
limiter and user repository are created here (or injected by tests) and
attached to ``app.state``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from apnisec.adapters.rate_limit.base import AbstractRateLimiter
from apnisec.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from apnisec.adapters.users.base import AbstractUserRepository
from apnisec.adapters.users.in_memory import InMemoryUserRepository
from apnisec.api.routes import auth_router, health_router, logs_router
from apnisec.core.config import settings
from apnisec.core.event_logger import StructuredLogger, get_event_logger
from apnisec.core.exception_handlers import setup_exception_handlers
from apnisec.core.logging import configure_logging
from apnisec.core.middleware import request_id_middleware
from apnisec.core.openapi import apply_openapi_customizations

logger = logging.getLogger(__name__)


def create_app(
    *,
    event_logger: StructuredLogger | None = None,
    rate_limiter: AbstractRateLimiter | None = None,
    user_repository: AbstractUserRepository | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        event_logger: Event logger to use; defaults to the process-wide one.
        rate_limiter: Limiter guarding register/login; defaults to an
            in-memory sliding window built from settings.
        user_repository: User store; defaults to a fresh in-memory store.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="ApniSec API",
        description=(
            "Authentication and operational endpoints for the ApniSec issue "
            "tracker. Register and login are rate limited per client address; "
            "recent event logs are available to signed-in users."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Empty loggers and stores are falsy (they define __len__), so test for None
    if event_logger is None:
        event_logger = get_event_logger()
    if rate_limiter is None:
        rate_limiter = InMemorySlidingWindowRateLimiter(
            max_requests=settings.rate_limit.max_requests,
            window_ms=settings.rate_limit.window_ms,
            sweep_interval_ms=settings.rate_limit.sweep_interval_ms,
        )
    if user_repository is None:
        user_repository = InMemoryUserRepository()

    app.state.event_logger = event_logger
    app.state.rate_limiter = rate_limiter
    app.state.user_repository = user_repository

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(logs_router, prefix="/api")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    logger.info(
        "app.created",
        extra={
            "environment": settings.app_env,
            "rate_limit_enabled": settings.rate_limit.enabled,
            "rate_limit_max_requests": settings.rate_limit.max_requests,
            "rate_limit_window_ms": settings.rate_limit.window_ms,
        },
    )
    return app
