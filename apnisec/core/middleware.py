"""HTTP middleware for request ID propagation and request logging.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars (and ``request.state``) for log correlation
- Injects request_id into response headers for client-side tracking
- Measures total request duration and includes it in response headers
- Records one ``log_request`` event per request on the app's event logger
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from apnisec.core.config import settings
from apnisec.core.dependencies import get_request_event_logger
from apnisec.core.logging import clear_request_id, set_request_id
from apnisec.core.rate_limit import client_identifier


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation, propagation and logging.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID is
    generated. The ID is propagated back in the response headers and stored
    in contextvars for log correlation.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.

    Example:
        >>> # Request arrives with custom ID
        >>> # Headers: {"X-Request-ID": "req-abc-123"}
        >>> # Response includes:
        >>> # {"X-Request-ID": "req-abc-123", "X-Request-Duration-ms": "45.67"}
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    request.state.request_id = request_id
    set_request_id(request_id)

    events = get_request_event_logger(request)
    log_fields = {
        "request_id": request_id,
        "ip": client_identifier(request),
        "user_agent": request.headers.get("user-agent"),
    }

    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    except Exception:
        # The unhandled-exception handler renders the 500; record the request here.
        events.log_request(
            request.method,
            request.url.path,
            500,
            _elapsed_ms(start),
            user_id=getattr(request.state, "user_id", None),
            **log_fields,
        )
        raise
    finally:
        clear_request_id()

    duration_ms = _elapsed_ms(start)
    events.log_request(
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        user_id=getattr(request.state, "user_id", None),
        **log_fields,
    )

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
