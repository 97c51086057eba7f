"""
Canonical Columns and Entity Decoders

Rows are decoded by position. Each entity has exactly one ``ColumnList``
that renders its SELECT/RETURNING list and resolves field positions by
name, so the query and the decoder can never disagree on order.

Only identifiers declared here (schema, tables, columns) are ever
interpolated into SQL; values are always bound.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from ipaddress import ip_address
from typing import Any, Iterator, Optional, Sequence
from uuid import UUID

from sqlalchemy.dialects import postgresql

from authstore.domain.enums import TokenType
from authstore.domain.exceptions import DecodeError
from authstore.domain.models import CacheEntry, IPAddress, OneTimeToken, Session, User
from authstore.infrastructure.database.codecs import (
    MetadataCodec,
    from_micros,
    optional_from_micros,
    timestamp_bind_sql,
    timestamp_select_sql,
)

SCHEMA = "authstore"

_PREPARER = postgresql.dialect().identifier_preparer


def quote_ident(name: str) -> str:
    """
    Quote an allow-listed SQL identifier.

    Names are always quoted, reserved word or not, so ``user`` and
    ``email`` render alike.
    """
    if not name or not all(c.isalnum() or c == "_" for c in name):
        raise ValueError(f"refusing to quote identifier {name!r}")
    return _PREPARER.quote_identifier(name)


def qualified_table(table: str) -> str:
    """Schema-qualified, quoted table name."""
    return f"{quote_ident(SCHEMA)}.{quote_ident(table)}"


USER_TABLE = qualified_table("user")
SESSION_TABLE = qualified_table("session")
TOKEN_TABLE = qualified_table("one_time_token")
CACHE_TABLE = qualified_table("cache")


class ColumnKind(Enum):
    """How a column is read from and written to SQL."""

    TEXT = "text"
    UUID = "uuid"
    TIMESTAMP = "timestamp"
    JSON = "json"
    INET = "inet"

    def select_sql(self, column_sql: str) -> str:
        """Expression used in SELECT/RETURNING lists."""
        if self is ColumnKind.TIMESTAMP:
            return timestamp_select_sql(column_sql)
        if self is ColumnKind.INET:
            return f"host({column_sql})"
        if self in (ColumnKind.UUID, ColumnKind.JSON):
            return f"{column_sql}::text"
        return column_sql

    def bind_sql(self, placeholder: str) -> str:
        """Expression wrapping a bound parameter on write."""
        if self is ColumnKind.TIMESTAMP:
            return timestamp_bind_sql(placeholder)
        if self is ColumnKind.JSON:
            return f"CAST({placeholder} AS jsonb)"
        if self is ColumnKind.INET:
            return f"CAST({placeholder} AS inet)"
        if self is ColumnKind.UUID:
            return f"CAST({placeholder} AS uuid)"
        return placeholder


@dataclass(frozen=True)
class Column:
    """A named column and its kind."""

    name: str
    kind: ColumnKind = ColumnKind.TEXT

    @property
    def sql(self) -> str:
        return quote_ident(self.name)


class ColumnList:
    """
    Ordered, named column list for one entity.

    Usage:
        USER_COLUMNS.select_sql()         # SELECT list
        USER_COLUMNS.position("email")    # index into a decoded row
    """

    def __init__(self, *columns: Column) -> None:
        self._columns = tuple(columns)
        self._positions = {column.name: i for i, column in enumerate(self._columns)}
        if len(self._positions) != len(self._columns):
            raise ValueError("duplicate column in column list")

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __getitem__(self, name: str) -> Column:
        return self._columns[self.position(name)]

    def position(self, name: str) -> int:
        """Position of ``name`` in decoded rows."""
        try:
            return self._positions[name]
        except KeyError:
            raise KeyError(f"unknown column {name!r}") from None

    def select_sql(self) -> str:
        """Comma-separated select expressions in canonical order."""
        return ", ".join(column.kind.select_sql(column.sql) for column in self._columns)


class RowReader:
    """
    Typed positional access to one row, addressed by column name.

    Every accessor raises ``DecodeError`` naming the field.
    """

    def __init__(self, columns: ColumnList, row: Sequence[Any]) -> None:
        if len(row) < len(columns):
            raise DecodeError("<row>", f"expected {len(columns)} columns, got {len(row)}")
        self._columns = columns
        self._row = row

    def raw(self, name: str) -> Any:
        return self._row[self._columns.position(name)]

    def text(self, name: str) -> str:
        value = self.raw(name)
        if not isinstance(value, str):
            raise DecodeError(name, f"expected text, got {type(value).__name__}")
        return value

    def optional_text(self, name: str) -> Optional[str]:
        if self.raw(name) is None:
            return None
        return self.text(name)

    def uuid(self, name: str) -> UUID:
        value = self.raw(name)
        if isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError as e:
            raise DecodeError(name, str(e)) from e

    def timestamp(self, name: str) -> datetime:
        return from_micros(self.raw(name), name)

    def optional_timestamp(self, name: str) -> Optional[datetime]:
        return optional_from_micros(self.raw(name), name)

    def optional_ip(self, name: str) -> Optional[IPAddress]:
        value = self.raw(name)
        if value is None:
            return None
        try:
            return ip_address(str(value))
        except ValueError as e:
            raise DecodeError(name, str(e)) from e


# Canonical column lists

USER_COLUMNS = ColumnList(
    Column("id", ColumnKind.UUID),
    Column("created_at", ColumnKind.TIMESTAMP),
    Column("updated_at", ColumnKind.TIMESTAMP),
    Column("deleted_at", ColumnKind.TIMESTAMP),
    Column("role"),
    Column("email"),
    Column("password_hash"),
    Column("email_confirmed_at", ColumnKind.TIMESTAMP),
    Column("phone_number_confirmed_at", ColumnKind.TIMESTAMP),
    Column("last_sign_in", ColumnKind.TIMESTAMP),
    Column("banned_until", ColumnKind.TIMESTAMP),
    Column("phone_number"),
    Column("app_metadata", ColumnKind.JSON),
    Column("user_metadata", ColumnKind.JSON),
)

SESSION_COLUMNS = ColumnList(
    Column("id", ColumnKind.UUID),
    Column("user_id", ColumnKind.UUID),
    Column("created_at", ColumnKind.TIMESTAMP),
    Column("expires_at", ColumnKind.TIMESTAMP),
    Column("ip", ColumnKind.INET),
    Column("user_agent"),
)

TOKEN_COLUMNS = ColumnList(
    Column("id", ColumnKind.UUID),
    Column("user_id", ColumnKind.UUID),
    Column("token_type"),
    Column("token_hash"),
    Column("created_at", ColumnKind.TIMESTAMP),
    Column("expires_at", ColumnKind.TIMESTAMP),
    Column("used_at", ColumnKind.TIMESTAMP),
    Column("deleted_at", ColumnKind.TIMESTAMP),
)

CACHE_COLUMNS = ColumnList(
    Column("resource_type"),
    Column("key"),
    Column("value"),
    Column("expires_at", ColumnKind.TIMESTAMP),
)


# Decoders

def decode_user(
    row: Sequence[Any],
    app_metadata: MetadataCodec[Any],
    user_metadata: MetadataCodec[Any],
) -> User[Any, Any]:
    """Decode a row selected with ``USER_COLUMNS``."""
    r = RowReader(USER_COLUMNS, row)
    return User(
        id=r.uuid("id"),
        created_at=r.timestamp("created_at"),
        updated_at=r.timestamp("updated_at"),
        deleted_at=r.optional_timestamp("deleted_at"),
        role=r.optional_text("role"),
        email=r.text("email"),
        password_hash=r.optional_text("password_hash"),
        email_confirmed_at=r.optional_timestamp("email_confirmed_at"),
        phone_number_confirmed_at=r.optional_timestamp("phone_number_confirmed_at"),
        last_sign_in=r.optional_timestamp("last_sign_in"),
        banned_until=r.optional_timestamp("banned_until"),
        phone_number=r.optional_text("phone_number"),
        app_metadata=app_metadata.decode(r.raw("app_metadata"), "app_metadata"),
        user_metadata=user_metadata.decode(r.raw("user_metadata"), "user_metadata"),
    )


def decode_session(row: Sequence[Any]) -> Session:
    """Decode a row selected with ``SESSION_COLUMNS``."""
    r = RowReader(SESSION_COLUMNS, row)
    return Session(
        id=r.uuid("id"),
        user_id=r.uuid("user_id"),
        created_at=r.timestamp("created_at"),
        expires_at=r.optional_timestamp("expires_at"),
        ip=r.optional_ip("ip"),
        user_agent=r.optional_text("user_agent"),
    )


def decode_token(row: Sequence[Any]) -> OneTimeToken:
    """Decode a row selected with ``TOKEN_COLUMNS``."""
    r = RowReader(TOKEN_COLUMNS, row)
    try:
        token_type = TokenType(r.text("token_type"))
    except ValueError as e:
        raise DecodeError("token_type", str(e)) from e
    return OneTimeToken(
        id=r.uuid("id"),
        user_id=r.uuid("user_id"),
        token_type=token_type,
        token_hash=r.text("token_hash"),
        created_at=r.timestamp("created_at"),
        expires_at=r.timestamp("expires_at"),
        used_at=r.optional_timestamp("used_at"),
        deleted_at=r.optional_timestamp("deleted_at"),
    )


def decode_cache_entry(row: Sequence[Any]) -> CacheEntry:
    """Decode a row selected with ``CACHE_COLUMNS``."""
    r = RowReader(CACHE_COLUMNS, row)
    return CacheEntry(
        resource_type=r.text("resource_type"),
        key=r.text("key"),
        value=r.text("value"),
        expires_at=r.optional_timestamp("expires_at"),
    )
