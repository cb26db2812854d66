"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    http_status: int
    retry_after: int
    limit: int
    reset_at_ms: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when credentials or session tokens are missing or invalid."""

    status_code = 401


class NotFoundAppError(AppError):
    """Raised when a referenced resource does not exist."""

    status_code = 404


class ConflictAppError(AppError):
    """Raised when a resource already exists (e.g. duplicate email)."""

    status_code = 409


class RateLimitExceededError(AppError):
    """Raised by a rate limiter when an identifier has used up its window.

    Handlers translate this into HTTP 429 with retry guidance.
    """

    status_code = 429

    def __init__(
        self,
        *,
        limit: int,
        retry_after_seconds: int,
        reset_at_ms: int,
        message: str = "Rate limit exceeded. Please try again later.",
    ) -> None:
        super().__init__(
            code="rate_limit_exceeded",
            message=message,
            details={
                "limit": limit,
                "retry_after": retry_after_seconds,
                "reset_at_ms": reset_at_ms,
            },
        )
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
        self.reset_at_ms = reset_at_ms
