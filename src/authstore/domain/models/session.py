"""
Session Domain Model

Proof of an authenticated context. A session whose ``expires_at`` has
passed is treated as absent even while its row still exists.
"""

from dataclasses import dataclass
from datetime import datetime
from ipaddress import IPv4Address, IPv6Address
from typing import Optional, Union
from uuid import UUID

IPAddress = Union[IPv4Address, IPv6Address]


@dataclass
class Session:
    """
    Session entity.

    Attributes:
        id: Session identifier
        user_id: Owning user
        created_at: Session start time
        expires_at: Expiry time; None means the session never expires
        ip: Client address the session was issued to
        user_agent: Client user agent the session was issued to
    """

    id: UUID
    user_id: UUID
    created_at: datetime
    expires_at: Optional[datetime] = None
    ip: Optional[IPAddress] = None
    user_agent: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        """Check whether the session has expired at ``now``."""
        return self.expires_at is not None and self.expires_at <= now
