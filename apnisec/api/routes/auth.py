from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from apnisec.adapters.users.base import User
from apnisec.core.auth import get_current_user
from apnisec.core.dependencies import get_auth_service
from apnisec.core.rate_limit import client_identifier, enforce_rate_limit
from apnisec.schemas.auth import (
    AuthData,
    AuthResponse,
    LoginRequest,
    MeData,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    UserOut,
)
from apnisec.services.auth_service import AuthResult, AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(data=AuthData(user=UserOut.from_user(result.user), token=result.token))


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_rate_limit)],
)
async def register(
    payload: RegisterRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create an account and return it with a session token.

    Rate limited per client address. Responds 409 when the email is taken.
    """
    result = service.register(
        name=payload.name,
        email=payload.email,
        password=payload.password,
        ip=client_identifier(request),
    )
    return _auth_response(result)


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def login(
    payload: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange email and password for a session token (rate limited)."""
    result = service.login(
        email=payload.email,
        password=payload.password,
        ip=client_identifier(request),
    )
    return _auth_response(result)


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(data=MeData(user=UserOut.from_user(user)))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.logout(user, ip=client_identifier(request))
    return MessageResponse(message="Logged out successfully")
