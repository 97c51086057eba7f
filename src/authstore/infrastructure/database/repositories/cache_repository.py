"""
Cache Repository

Namespaced key/value storage in ``authstore."cache"``, identified by
(resource_type, key). Expired entries read as absent and are purged in
the background.
"""

from datetime import timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from authstore.domain.models import CacheEntry
from authstore.infrastructure.database.columns import CACHE_COLUMNS, CACHE_TABLE, decode_cache_entry
from authstore.infrastructure.database.expiry import ExpiryReaper, expired_flag_sql, resolve_expiring
from authstore.infrastructure.database.query_builder import ParameterBinder
from authstore.infrastructure.database.repositories.base import BaseRepository


class CacheRepository(BaseRepository[CacheEntry]):
    """Repository for cache entries."""

    entity = "cache"

    def __init__(
        self,
        session: AsyncSession,
        reaper: Optional[ExpiryReaper] = None,
        purge: Optional[Callable[[str, str], Awaitable[object]]] = None,
    ) -> None:
        super().__init__(session)
        self._reaper = reaper
        self._purge = purge

    def _identity(self, binder: ParameterBinder, resource_type: str, key: str) -> str:
        columns = CACHE_COLUMNS
        return (
            f"{columns['resource_type'].sql} = {binder.bind(resource_type)} "
            f"AND {columns['key'].sql} = {binder.bind(key)}"
        )

    async def set(
        self,
        resource_type: str,
        key: str,
        value: str,
        *,
        ttl: Optional[timedelta] = None,
    ) -> None:
        """
        Insert or replace an entry.

        Replacing also replaces the expiry: an entry set without ``ttl``
        never expires, even if the previous value did.
        """
        binder = ParameterBinder()
        columns = CACHE_COLUMNS
        if ttl is None:
            expires_at = "NULL"
        else:
            micros = binder.bind(ttl // timedelta(microseconds=1))
            expires_at = f"now() + CAST({micros} AS bigint) * interval '1 microsecond'"

        sql = (
            f"INSERT INTO {CACHE_TABLE} "
            f"({columns['resource_type'].sql}, {columns['key'].sql}, {columns['value'].sql}, {columns['expires_at'].sql}) "
            f"VALUES ({binder.bind(resource_type)}, {binder.bind(key)}, {binder.bind(value)}, {expires_at}) "
            f"ON CONFLICT ({columns['resource_type'].sql}, {columns['key'].sql}) DO UPDATE "
            f"SET {columns['value'].sql} = EXCLUDED.{columns['value'].sql}, "
            f"{columns['expires_at'].sql} = EXCLUDED.{columns['expires_at'].sql}"
        )
        await self._execute(sql, binder.params, operation="cache_set")

    async def get(self, resource_type: str, key: str) -> CacheEntry:
        """
        Get a live entry.

        Raises:
            NotFoundError: If the entry is absent or expired
        """
        binder = ParameterBinder()
        sql = (
            f"SELECT {CACHE_COLUMNS.select_sql()}, {expired_flag_sql(CACHE_COLUMNS['expires_at'].sql)} "
            f"FROM {CACHE_TABLE} WHERE {self._identity(binder, resource_type, key)}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="cache_get")

        cleanup = None
        if self._purge is not None:
            purge = self._purge
            cleanup = lambda: purge(resource_type, key)  # noqa: E731
        return resolve_expiring(
            rows,
            decode_cache_entry,
            entity=self.entity,
            reaper=self._reaper,
            cleanup=cleanup,
        )

    async def delete(self, resource_type: str, key: str) -> None:
        """Delete an entry; deleting a missing entry is not an error."""
        binder = ParameterBinder()
        sql = f"DELETE FROM {CACHE_TABLE} WHERE {self._identity(binder, resource_type, key)}"
        await self._execute(sql, binder.params, operation="cache_delete")

    async def purge_expired(self, resource_type: str, key: str) -> int:
        """Delete an entry only if it is still expired."""
        binder = ParameterBinder()
        expires_at = CACHE_COLUMNS["expires_at"].sql
        sql = (
            f"DELETE FROM {CACHE_TABLE} WHERE {self._identity(binder, resource_type, key)} "
            f"AND {expires_at} IS NOT NULL AND {expires_at} <= now()"
        )
        return await self._execute(sql, binder.params, operation="purge_cache")
