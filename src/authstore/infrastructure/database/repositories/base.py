"""
Base Repository

Shared plumbing for the SQL repositories: parameterized execution with
error translation, and the exactly-one-row rule used by every write
that returns its target.
"""

from typing import Any, Callable, Generic, Mapping, Optional, Sequence, TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from authstore.domain.exceptions import MultipleRowsError, NotFoundError
from authstore.infrastructure.database.errors import translate_errors

RecordT = TypeVar("RecordT")

Row = Sequence[Any]


class BaseRepository(Generic[RecordT]):
    """
    Base repository over a single async session.

    Subclasses set ``entity`` and supply a row decoder.

    Usage:
        class CacheRepository(BaseRepository[CacheEntry]):
            entity = "cache"

        repo = CacheRepository(session)
    """

    entity = "record"

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize repository with a session.

        Args:
            session: Async database session
        """
        self._session = session

    async def _fetch_all(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        operation: str,
    ) -> list[Row]:
        """Execute ``sql`` and return every row as a tuple."""
        async with translate_errors(operation):
            result = await self._session.execute(text(sql), dict(params or {}))
            return [tuple(row) for row in result.fetchall()]

    async def _execute(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        operation: str,
    ) -> int:
        """Execute a statement without a result set and return the row count."""
        async with translate_errors(operation):
            result = await self._session.execute(text(sql), dict(params or {}))
            return result.rowcount

    def _exactly_one(self, rows: Sequence[Row], decode: Callable[[Row], RecordT]) -> RecordT:
        """
        Decode the single row of a unique-target statement.

        Raises:
            NotFoundError: If no row was returned
            MultipleRowsError: If more than one row was returned
        """
        if not rows:
            raise NotFoundError(self.entity)
        if len(rows) > 1:
            raise MultipleRowsError(self.entity, len(rows))
        return decode(rows[0])
