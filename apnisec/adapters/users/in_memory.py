"""In-memory user repository for development and tests.

Thread-safe; state is lost on restart.
"""

from __future__ import annotations

import threading
import uuid

from apnisec.adapters.users.base import AbstractUserRepository, User
from apnisec.core.errors import ConflictAppError


class InMemoryUserRepository(AbstractUserRepository):
    """Stores users in dictionaries keyed by id and lower-cased email."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_id: dict[str, User] = {}
        self._id_by_email: dict[str, str] = {}

    def get_by_id(self, user_id: str) -> User | None:
        with self._lock:
            return self._by_id.get(user_id)

    def get_by_email(self, email: str) -> User | None:
        with self._lock:
            user_id = self._id_by_email.get(email.lower())
            return self._by_id.get(user_id) if user_id else None

    def create(self, *, name: str, email: str, password_hash: str) -> User:
        key = email.lower()
        with self._lock:
            if key in self._id_by_email:
                raise ConflictAppError(
                    code="email_already_registered",
                    message="User with this email already exists",
                )
            user = User(
                id=str(uuid.uuid4()),
                name=name,
                email=email,
                password_hash=password_hash,
            )
            self._by_id[user.id] = user
            self._id_by_email[key] = user.id
            return user

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)
