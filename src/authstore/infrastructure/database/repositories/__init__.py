"""
SQL repositories for users, sessions, one-time tokens and cache entries.
"""

from authstore.infrastructure.database.repositories.base import BaseRepository
from authstore.infrastructure.database.repositories.cache_repository import CacheRepository
from authstore.infrastructure.database.repositories.session_repository import SessionRepository
from authstore.infrastructure.database.repositories.token_repository import TokenRepository
from authstore.infrastructure.database.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "CacheRepository",
    "SessionRepository",
    "TokenRepository",
    "UserRepository",
]
