"""
User Domain Model

Identity record persisted in ``authstore."user"``. Metadata types are
chosen by the caller: ``app_metadata`` belongs to the identity
framework, ``user_metadata`` to the application.

SECURITY: ``password_hash`` is produced outside this package and is
stored as given. It must never be logged.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from authstore.domain.models.field_update import UNCHANGED, FieldUpdate

AppMetadataT = TypeVar("AppMetadataT")
UserMetadataT = TypeVar("UserMetadataT")


@dataclass
class User(Generic[AppMetadataT, UserMetadataT]):
    """
    User entity.

    Attributes:
        id: Server-generated identifier
        created_at: Row creation time
        updated_at: Last modification time (bumped by every update)
        deleted_at: Soft-delete marker; set means the user is gone
        role: Optional framework role name
        email: Unique email address
        password_hash: Absent for passwordless accounts
        email_confirmed_at: When the email was confirmed
        phone_number_confirmed_at: When the phone number was confirmed
        last_sign_in: Last successful sign-in
        banned_until: Sign-ins refused until this time
        phone_number: Optional phone number
        app_metadata: Framework-owned metadata
        user_metadata: Caller-defined metadata
    """

    id: UUID
    created_at: datetime
    updated_at: datetime
    email: str
    app_metadata: AppMetadataT
    user_metadata: UserMetadataT
    deleted_at: Optional[datetime] = None
    role: Optional[str] = None
    password_hash: Optional[str] = field(default=None, repr=False)
    email_confirmed_at: Optional[datetime] = None
    phone_number_confirmed_at: Optional[datetime] = None
    last_sign_in: Optional[datetime] = None
    banned_until: Optional[datetime] = None
    phone_number: Optional[str] = None

    @property
    def is_deleted(self) -> bool:
        """Check if user has been soft deleted."""
        return self.deleted_at is not None

    def is_banned(self, now: datetime) -> bool:
        """Check if sign-ins are refused at ``now``."""
        return self.banned_until is not None and self.banned_until > now


@dataclass
class UserUpdate:
    """
    Partial update of a user.

    Every field defaults to ``UNCHANGED``; wrap a value in ``SetTo`` to
    write it. ``updated_at`` is always bumped and cannot be set here.

    Usage:
        UserUpdate(email=SetTo("new@example.com"), role=SetTo(None))
    """

    role: FieldUpdate[Optional[str]] = UNCHANGED
    email: FieldUpdate[str] = UNCHANGED
    password_hash: FieldUpdate[Optional[str]] = field(default=UNCHANGED, repr=False)
    email_confirmed_at: FieldUpdate[Optional[datetime]] = UNCHANGED
    phone_number_confirmed_at: FieldUpdate[Optional[datetime]] = UNCHANGED
    last_sign_in: FieldUpdate[Optional[datetime]] = UNCHANGED
    banned_until: FieldUpdate[Optional[datetime]] = UNCHANGED
    phone_number: FieldUpdate[Optional[str]] = UNCHANGED
    app_metadata: FieldUpdate[Any] = UNCHANGED
    user_metadata: FieldUpdate[Any] = UNCHANGED
