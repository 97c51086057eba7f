"""
authstore Domain Layer

Records, enums and errors shared by the storage adapter and the
migration engine, independent of the database driver.
"""

from authstore.domain.models.user import User, UserUpdate
from authstore.domain.models.session import Session
from authstore.domain.models.cache_entry import CacheEntry
from authstore.domain.models.one_time_token import OneTimeToken
from authstore.domain.models.field_update import UNCHANGED, SetTo
from authstore.domain.enums.token_type import TokenType, UserSelector

__all__ = [
    # User
    "User",
    "UserUpdate",
    "UNCHANGED",
    "SetTo",
    "UserSelector",
    # Session
    "Session",
    # Cache
    "CacheEntry",
    # Tokens
    "OneTimeToken",
    "TokenType",
]
