"""Fakes and row builders shared by the test suite."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Iterable, Optional
from uuid import uuid4

from authstore.infrastructure.database.codecs import to_micros
from authstore.infrastructure.database.columns import (
    CACHE_COLUMNS,
    SESSION_COLUMNS,
    TOKEN_COLUMNS,
    USER_COLUMNS,
    ColumnList,
)


NOW = datetime(2024, 6, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


class FakeResult:
    """Stand-in for a SQLAlchemy result."""

    def __init__(self, rows: Iterable[tuple] = (), rowcount: Optional[int] = None) -> None:
        self._rows = [tuple(row) for row in rows]
        self.rowcount = len(self._rows) if rowcount is None else rowcount

    def fetchall(self) -> list[tuple]:
        return list(self._rows)

    def scalar(self) -> Any:
        return self._rows[0][0] if self._rows else None


class FakeSession:
    """Records executed statements and replays queued results."""

    def __init__(self, *results: FakeResult) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def queue(self, *results: FakeResult) -> None:
        self.results.extend(results)

    async def execute(self, statement: Any, params: Optional[dict[str, Any]] = None) -> FakeResult:
        self.calls.append((str(statement), dict(params or {})))
        if self.results:
            return self.results.pop(0)
        return FakeResult()

    @property
    def last_sql(self) -> str:
        return self.calls[-1][0]

    @property
    def last_params(self) -> dict[str, Any]:
        return self.calls[-1][1]


class FakeDatabase:
    """DatabaseManager stand-in handing out one shared FakeSession."""

    def __init__(self, session: Optional[FakeSession] = None) -> None:
        self.fake_session = session or FakeSession()
        self.is_initialized = False
        self.commits = 0
        self.rollbacks = 0

    async def initialize(self) -> None:
        self.is_initialized = True

    async def close(self) -> None:
        self.is_initialized = False

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[FakeSession, None]:
        try:
            yield self.fake_session
            self.commits += 1
        except Exception:
            self.rollbacks += 1
            raise


def make_row(columns: ColumnList, **values: Any) -> tuple:
    """Build a row in canonical order from column names."""
    row: list[Any] = [None] * len(columns)
    for name, value in values.items():
        row[columns.position(name)] = value
    return tuple(row)


def user_row(**overrides: Any) -> tuple:
    values: dict[str, Any] = {
        "id": str(uuid4()),
        "created_at": to_micros(NOW),
        "updated_at": to_micros(NOW),
        "email": "ada@example.com",
        "app_metadata": "{}",
        "user_metadata": "{}",
    }
    values.update(overrides)
    return make_row(USER_COLUMNS, **values)


def session_row(**overrides: Any) -> tuple:
    values: dict[str, Any] = {
        "id": str(uuid4()),
        "user_id": str(uuid4()),
        "created_at": to_micros(NOW),
    }
    values.update(overrides)
    return make_row(SESSION_COLUMNS, **values)


def token_row(**overrides: Any) -> tuple:
    values: dict[str, Any] = {
        "id": str(uuid4()),
        "user_id": str(uuid4()),
        "token_type": "password_reset",
        "token_hash": "ab" * 32,
        "created_at": to_micros(NOW),
        "expires_at": to_micros(NOW) + 3_600_000_000,
    }
    values.update(overrides)
    return make_row(TOKEN_COLUMNS, **values)


def cache_row(**overrides: Any) -> tuple:
    values: dict[str, Any] = {
        "resource_type": "rate_limit",
        "key": "ip:10.0.0.1",
        "value": "3",
    }
    values.update(overrides)
    return make_row(CACHE_COLUMNS, **values)


