"""User storage adapters."""

from apnisec.adapters.users.base import AbstractUserRepository, User
from apnisec.adapters.users.in_memory import InMemoryUserRepository

__all__ = ["AbstractUserRepository", "InMemoryUserRepository", "User"]
