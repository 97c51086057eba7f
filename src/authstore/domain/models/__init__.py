"""
Domain models package.

Plain dataclasses for every record the storage adapter returns.
"""

from authstore.domain.models.cache_entry import CacheEntry
from authstore.domain.models.field_update import UNCHANGED, FieldUpdate, SetTo, Unchanged, is_set
from authstore.domain.models.one_time_token import OneTimeToken
from authstore.domain.models.session import IPAddress, Session
from authstore.domain.models.user import User, UserUpdate

__all__ = [
    "CacheEntry",
    "FieldUpdate",
    "IPAddress",
    "OneTimeToken",
    "Session",
    "SetTo",
    "UNCHANGED",
    "Unchanged",
    "User",
    "UserUpdate",
    "is_set",
]
