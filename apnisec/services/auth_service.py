"""Authentication use cases: register, login, logout, current user.

The service owns credential checks and the audit trail. Rate limiting happens
before it is called (see ``apnisec.core.rate_limit``).
"""

from __future__ import annotations

from dataclasses import dataclass

from apnisec.adapters.users.base import AbstractUserRepository, User
from apnisec.core.config import AuthSettings, settings
from apnisec.core.errors import AuthenticationAppError, NotFoundAppError, ValidationAppError
from apnisec.core.event_logger import SecuritySeverity, StructuredLogger
from apnisec.core.security import create_access_token, hash_password, verify_password


@dataclass(frozen=True)
class AuthResult:
    user: User
    token: str


class AuthService:
    """Coordinates user storage, password hashing, tokens and audit logging."""

    def __init__(
        self,
        *,
        users: AbstractUserRepository,
        event_logger: StructuredLogger,
        auth_settings: AuthSettings | None = None,
    ) -> None:
        self._users = users
        self._events = event_logger
        self._settings = auth_settings or settings.auth

    def register(self, *, name: str, email: str, password: str, ip: str | None = None) -> AuthResult:
        """Create an account and issue a session token.

        Raises:
            ValidationAppError: If the password is shorter than the policy allows.
            ConflictAppError: If the email is already registered.
        """
        if len(password) < self._settings.min_password_length:
            raise ValidationAppError(
                code="password_too_short",
                message=(
                    f"Password must be at least {self._settings.min_password_length} "
                    "characters long"
                ),
                details={"field": "password"},
            )

        user = self._users.create(
            name=name.strip(),
            email=email.strip(),
            password_hash=hash_password(password),
        )
        self._events.audit(
            "USER_REGISTERED",
            success=True,
            user_id=user.id,
            ip=ip,
            metadata={"email": user.email},
        )
        return AuthResult(user=user, token=self._issue_token(user))

    def login(self, *, email: str, password: str, ip: str | None = None) -> AuthResult:
        """Check credentials and issue a session token.

        Raises:
            AuthenticationAppError: On unknown email or wrong password. Both
                cases share one message to avoid account enumeration.
        """
        user = self._users.get_by_email(email.strip())
        if user is None or not verify_password(password, user.password_hash):
            self._events.audit(
                "USER_LOGIN",
                success=False,
                user_id=user.id if user else None,
                ip=ip,
                metadata={"reason": "invalid_credentials"},
            )
            self._events.security(
                "LOGIN_FAILED",
                severity=SecuritySeverity.LOW,
                user_id=user.id if user else None,
                ip=ip,
            )
            raise AuthenticationAppError(
                code="invalid_credentials",
                message="Invalid email or password",
            )

        self._events.audit("USER_LOGIN", success=True, user_id=user.id, ip=ip)
        return AuthResult(user=user, token=self._issue_token(user))

    def logout(self, user: User, *, ip: str | None = None) -> None:
        # Tokens are stateless; logout is recorded for the audit trail only.
        self._events.audit("USER_LOGOUT", success=True, user_id=user.id, ip=ip)

    def get_user(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundAppError(code="user_not_found", message="User not found")
        return user

    def _issue_token(self, user: User) -> str:
        return create_access_token(user.id, user.email, auth_settings=self._settings)
