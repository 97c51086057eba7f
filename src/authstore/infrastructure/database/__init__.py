"""
Database infrastructure components.
"""

from authstore.infrastructure.database.codecs import MetadataCodec
from authstore.infrastructure.database.connection import DatabaseManager
from authstore.infrastructure.database.expiry import ExpiryReaper

__all__ = [
    "DatabaseManager",
    "ExpiryReaper",
    "MetadataCodec",
]
