"""Pydantic schemas for authentication requests and responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from apnisec.adapters.users.base import User

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    """Payload for ``POST /api/auth/register``."""

    name: str = Field(..., min_length=2, max_length=100, description="Display name.")
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254, description="Login email.")
    password: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Plain-text password; length policy is enforced by the service.",
    )


class LoginRequest(BaseModel):
    """Payload for ``POST /api/auth/login``."""

    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class UserOut(BaseModel):
    """Public view of a user (never includes the password hash)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    created_at: datetime = Field(..., alias="createdAt")

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(id=user.id, name=user.name, email=user.email, created_at=user.created_at)


class AuthData(BaseModel):
    user: UserOut
    token: str


class AuthResponse(BaseModel):
    success: bool = True
    data: AuthData


class MeData(BaseModel):
    user: UserOut


class MeResponse(BaseModel):
    success: bool = True
    data: MeData


class MessageResponse(BaseModel):
    success: bool = True
    message: str
