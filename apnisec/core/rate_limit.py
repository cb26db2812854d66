"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind an
  abstract interface.

Rate limiting strategy:
- Sliding window per client address (first ``X-Forwarded-For`` hop when
  present, otherwise the socket peer, otherwise "unknown").
- Refusals surface as ``RateLimitExceededError``; the exception handler turns
  them into HTTP 429 with retry guidance and records a security event.
"""

from __future__ import annotations

from fastapi import Request, Response

from apnisec.core.config import settings
from apnisec.core.dependencies import get_rate_limiter, get_request_event_logger

UNKNOWN_CLIENT = "unknown"


def client_identifier(request: Request) -> str:
    """Return the caller key used for rate limiting and log entries.

    Args:
        request: FastAPI request.

    Returns:
        str: Client address, or "unknown" when none can be determined.
    """

    forwarded = request.headers.get(settings.rate_limit.client_ip_header)
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def apply_rate_limit_headers(request: Request, response: Response, identifier: str) -> None:
    """Copy the identifier's current budget onto ``X-RateLimit-*`` headers."""

    if not settings.rate_limit.include_headers:
        return
    status = get_rate_limiter(request).get_status(identifier)
    response.headers.update(status.as_headers())


async def enforce_rate_limit(request: Request, response: Response) -> None:
    """FastAPI dependency enforcing the sliding-window limit.

    Consumes one request from the caller's budget before the route body runs.

    Args:
        request: FastAPI request.
        response: Response whose headers FastAPI merges into the route result.

    Raises:
        RateLimitExceededError: When the caller is over budget.
    """

    if not settings.rate_limit.enabled:
        return

    identifier = client_identifier(request)
    request.state.rate_limit_identifier = identifier

    limiter = get_rate_limiter(request)
    limiter.check_limit(identifier)

    get_request_event_logger(request).debug(
        "rate_limit.allowed",
        context="RATE_LIMIT",
        ip=identifier,
        metadata={"remaining": limiter.get_remaining_requests(identifier)},
    )
    apply_rate_limit_headers(request, response, identifier)
