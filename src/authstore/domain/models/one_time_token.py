"""
One-Time Token Domain Model

Single-use credential such as a password reset link. Only the hash of
the issued token is ever persisted; the raw token is returned once,
at creation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from authstore.domain.enums import TokenType


@dataclass
class OneTimeToken:
    """
    One-time token entity.

    Attributes:
        id: Token row identifier
        user_id: User the token was issued to
        token_type: What the token may be used for
        token_hash: One-way hash of the raw token
        created_at: Issue time
        expires_at: Time after which the token is no longer usable
        used_at: Consumption time (one-way transition)
        deleted_at: Revocation time
    """

    id: UUID
    user_id: UUID
    token_type: TokenType
    token_hash: str
    created_at: datetime
    expires_at: datetime
    used_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def is_usable(self, now: datetime) -> bool:
        """Check whether the token may still be validated or used at ``now``."""
        return self.used_at is None and self.deleted_at is None and self.expires_at > now
