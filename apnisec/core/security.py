"""Password hashing and session tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from apnisec.core.config import AuthSettings, settings
from apnisec.core.errors import AuthenticationAppError


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_access_token(
    user_id: str,
    email: str,
    *,
    auth_settings: AuthSettings | None = None,
) -> str:
    cfg = auth_settings or settings.auth
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=cfg.token_expire_minutes),
    }
    return jwt.encode(payload, cfg.jwt_secret, algorithm=cfg.jwt_algorithm)


def decode_token(token: str, *, auth_settings: AuthSettings | None = None) -> dict[str, Any]:
    """Decode and validate a session token.

    Raises:
        AuthenticationAppError: If the token is expired, tampered with or has
            no subject.
    """
    cfg = auth_settings or settings.auth
    try:
        claims = jwt.decode(token, cfg.jwt_secret, algorithms=[cfg.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid or expired token",
        ) from exc

    if not claims.get("sub"):
        raise AuthenticationAppError(code="invalid_token", message="Invalid or expired token")
    return claims
