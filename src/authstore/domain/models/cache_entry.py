"""Cache entry domain model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class CacheEntry:
    """
    Namespaced key/value pair, identified by (resource_type, key).

    Attributes:
        resource_type: Namespace chosen by the caller
        key: Key within the namespace
        value: Opaque cached value
        expires_at: Expiry time; None means the entry never expires
    """

    resource_type: str
    key: str
    value: str
    expires_at: Optional[datetime] = None
