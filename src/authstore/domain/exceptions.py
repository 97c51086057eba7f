"""
authstore Error Taxonomy

Every failure the adapter and the migration engine report is one of
these types. Callers branch on the type and its attributes, never on
message text.
"""

from enum import StrEnum
from typing import Optional


class AuthStoreError(Exception):
    """Base exception for all authstore errors."""


# Storage layer

class StorageError(AuthStoreError):
    """Raised when the database rejects or fails an operation."""


class ConstraintViolationError(StorageError):
    """Raised when a statement violates a table constraint."""

    def __init__(self, constraint: Optional[str], detail: Optional[str]) -> None:
        self.constraint = constraint
        self.detail = detail
        super().__init__(f"Constraint '{constraint}' violated: {detail}")


class DatabaseEngineError(StorageError):
    """Raised for any other error reported by the database engine."""

    def __init__(self, code: Optional[str], name: str, message: str) -> None:
        self.code = code
        self.name = name
        self.message = message
        super().__init__(f"{name} ({code}): {message}")


class ConnectionUnavailableError(StorageError):
    """Raised when no usable connection to the database can be obtained."""


# Cardinality

class CardinalityError(AuthStoreError):
    """Raised when a statement returns a row count other than one."""


class NotFoundError(CardinalityError):
    """
    Raised when zero rows match.

    Covers missing, soft-deleted, expired and already-used records.
    """

    def __init__(self, entity: str, message: str = "target row not found or already deleted") -> None:
        self.entity = entity
        super().__init__(f"{entity}: {message}")


class MultipleRowsError(CardinalityError):
    """
    Raised when more than one row matches a unique predicate.

    This is an integrity bug in the schema or the query, never a
    condition to retry.
    """

    def __init__(self, entity: str, count: int) -> None:
        self.entity = entity
        self.count = count
        super().__init__(f"{entity}: unique predicate matched {count} rows")


# Codecs

class DecodeError(AuthStoreError):
    """Raised when a row column cannot be decoded into its field."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Cannot decode field '{field}': {reason}")


class TokenHashError(AuthStoreError):
    """Raised when a one-time token cannot be hashed."""


# Driver lifecycle

class DriverStateError(AuthStoreError):
    """Raised when an operation does not fit the driver's connection state."""


class AlreadyConnectedError(DriverStateError):
    """Raised by connect() on a connected driver."""

    def __init__(self) -> None:
        super().__init__("Driver is already connected")


class NotConnectedError(DriverStateError):
    """Raised by any operation on a disconnected driver."""

    def __init__(self) -> None:
        super().__init__("Driver is not connected")


# Migrations

class MigrationStage(StrEnum):
    """Migration step in which a failure occurred."""

    SCHEMA_CHECK = "schema_check"
    VERSION_READ = "version_read"
    FILE_DISCOVERY = "file_discovery"
    FILE_READ = "file_read"
    APPLY = "apply"


class MigrationError(AuthStoreError):
    """Raised when a module migration fails; wraps the underlying cause."""

    def __init__(self, stage: MigrationStage, module: str, cause: BaseException) -> None:
        self.stage = stage
        self.module = module
        self.cause = cause
        super().__init__(f"Migration of module '{module}' failed during {stage}: {cause}")
