"""User repository interface.

Persistence is an external collaborator; the service only needs to look users
up by id or email and create new ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    password_hash: str
    created_at: datetime = field(default_factory=_utcnow)


class AbstractUserRepository(ABC):
    """Interface for user storage backends."""

    @abstractmethod
    def get_by_id(self, user_id: str) -> User | None:
        raise NotImplementedError

    @abstractmethod
    def get_by_email(self, email: str) -> User | None:
        raise NotImplementedError

    @abstractmethod
    def create(self, *, name: str, email: str, password_hash: str) -> User:
        """Persist a new user.

        Raises:
            ConflictAppError: If the email is already registered.
        """
        raise NotImplementedError
