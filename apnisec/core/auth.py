"""Bearer token authentication.

Routes that need a signed-in user declare ``Depends(get_current_user)``.

Design principles:
- Single Responsibility: Only handles token extraction and user resolution
- Dependency Injection: Used via FastAPI Depends() for loose coupling
- Testable: Pure helpers with minimal dependencies
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Header, Request

from apnisec.adapters.users.base import User
from apnisec.core.dependencies import get_request_event_logger, get_user_repository
from apnisec.core.errors import AuthenticationAppError
from apnisec.core.security import decode_token


def extract_bearer_token(authorization: str | None) -> str | None:
    """Pull the token out of an ``Authorization: Bearer <token>`` header.

    Examples:
        >>> extract_bearer_token("Bearer abc")
        'abc'
        >>> extract_bearer_token("Basic abc") is None
        True
        >>> extract_bearer_token(None) is None
        True
    """
    if not authorization:
        return None

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


async def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> User:
    """FastAPI dependency resolving the signed-in user.

    Raises:
        AuthenticationAppError: 401 when the token is missing, invalid, or
            refers to a user that no longer exists.
    """
    events = get_request_event_logger(request)

    token = extract_bearer_token(authorization)
    if token is None:
        events.debug("auth.missing_token", context="AUTH", path=request.url.path)
        raise AuthenticationAppError(code="unauthorized", message="Unauthorized")

    claims = decode_token(token)

    user = get_user_repository(request).get_by_id(claims["sub"])
    if user is None:
        events.warn(
            "auth.unknown_subject",
            context="AUTH",
            path=request.url.path,
            metadata={"subject": claims["sub"]},
        )
        raise AuthenticationAppError(code="invalid_token", message="Invalid or expired token")

    request.state.user_id = user.id
    return user
