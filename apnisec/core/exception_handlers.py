"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → their ``status_code`` (400, 401, 404, 409, 429)
- RateLimitExceededError → 429 with Retry-After / X-RateLimit-* headers and a
  security event
- Request body validation → 400 with the first failing field
- Unexpected Exception → generic 500 (safety net), logged with stack
- All responses include request_id for tracing
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from apnisec.core.config import settings
from apnisec.core.dependencies import get_rate_limiter, get_request_event_logger
from apnisec.core.errors import AppError, RateLimitExceededError
from apnisec.core.event_logger import SecuritySeverity
from apnisec.core.logging import get_request_id
from apnisec.core.rate_limit import apply_rate_limit_headers

RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id()


def _error_body(request: Request, code: str, message: str, details: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": _request_id(request),
    }
    # Include details only if present (optional structured context)
    if details:
        error["details"] = details
    return {"success": False, "error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error's status code and details.
    """
    get_request_event_logger(request).warn(
        "app_error_handled",
        context="HTTP",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        request_id=_request_id(request),
        metadata={"error_code": exc.code, "has_details": bool(exc.details)},
    )

    response = JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.code, exc.message, exc.details),
    )

    # Rate limited routes report the caller's budget on failures too
    identifier = getattr(request.state, "rate_limit_identifier", None)
    if identifier is not None:
        apply_rate_limit_headers(request, response, identifier)
    return response


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Translate a limiter refusal into 429 Too Many Requests.

    The body tells the client how long to wait; headers carry the same
    guidance for programmatic clients.
    """
    identifier = getattr(request.state, "rate_limit_identifier", None)

    get_request_event_logger(request).security(
        "RATE_LIMIT_EXCEEDED",
        severity=SecuritySeverity.MEDIUM,
        ip=identifier,
        metadata={
            "path": request.url.path,
            "limit": exc.limit,
            "retry_after_s": exc.retry_after_seconds,
        },
    )

    headers = {"Retry-After": str(exc.retry_after_seconds)}
    if settings.rate_limit.include_headers and identifier is not None:
        headers.update(get_rate_limiter(request).get_status(identifier).as_headers())

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            request,
            exc.code,
            RATE_LIMITED_MESSAGE,
            {"retry_after": exc.retry_after_seconds, "limit": exc.limit},
        ),
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first invalid field as a 400 (request bodies and queries)."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"

    get_request_event_logger(request).debug(
        "request_validation_failed",
        context="HTTP",
        path=request.url.path,
        metadata={"field": field, "error_count": len(errors)},
    )

    return JSONResponse(
        status_code=400,
        content=_error_body(request, "validation_error", message, {"field": field} if field else None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs the full exception while returning a generic message, so no stack
    traces or internals reach the client.
    """
    request_id = _request_id(request)
    get_request_event_logger(request).log_error(
        exc,
        "unhandled_exception",
        context="HTTP",
        method=request.method,
        path=request.url.path,
        request_id=request_id,
    )

    # Rendered outside the request-id middleware, so echo the id here
    headers = {settings.log.request_id_header: request_id} if request_id else None

    return JSONResponse(
        status_code=500,
        content=_error_body(
            request,
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with FastAPI app.

    Specific handlers are registered before the general fallback; Starlette
    picks the most specific class in the exception's MRO.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
