"""
Session Repository

Data access for ``authstore."session"``. Reads go through the
lazy-expiry path: an expired session reads as absent and is purged in
the background.
"""

from datetime import timedelta
from typing import Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from authstore.domain.models import IPAddress, Session
from authstore.infrastructure.database.columns import SESSION_COLUMNS, SESSION_TABLE, decode_session
from authstore.infrastructure.database.expiry import ExpiryReaper, expired_flag_sql, resolve_expiring
from authstore.infrastructure.database.query_builder import ParameterBinder
from authstore.infrastructure.database.repositories.base import BaseRepository


class SessionRepository(BaseRepository[Session]):
    """
    Repository for session records.

    ``purge_expired`` is handed to the reaper with a factory that opens a
    fresh session, since the reading session is closed by the time the
    purge runs.
    """

    entity = "session"

    def __init__(
        self,
        session: AsyncSession,
        reaper: Optional[ExpiryReaper] = None,
        purge: Optional[Callable[[UUID], Awaitable[object]]] = None,
    ) -> None:
        super().__init__(session)
        self._reaper = reaper
        self._purge = purge

    async def get(
        self,
        session_id: UUID,
        *,
        ip: Optional[IPAddress] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        """
        Get a live session, optionally requiring a matching ip and user agent.

        Raises:
            NotFoundError: If the session is absent, expired, or does not match
        """
        binder = ParameterBinder()
        columns = SESSION_COLUMNS
        predicates = [f"{columns['id'].sql} = {binder.bind_column(columns['id'], session_id)}"]
        if ip is not None:
            predicates.append(f"{columns['ip'].sql} = {binder.bind_column(columns['ip'], str(ip))}")
        if user_agent is not None:
            predicates.append(f"{columns['user_agent'].sql} = {binder.bind(user_agent)}")

        sql = (
            f"SELECT {columns.select_sql()}, {expired_flag_sql(columns['expires_at'].sql)} "
            f"FROM {SESSION_TABLE} WHERE {' AND '.join(predicates)}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="get_session")

        cleanup = None
        if self._purge is not None:
            purge = self._purge
            cleanup = lambda: purge(session_id)  # noqa: E731
        return resolve_expiring(
            rows,
            decode_session,
            entity=self.entity,
            reaper=self._reaper,
            cleanup=cleanup,
        )

    async def create(
        self,
        user_id: UUID,
        *,
        ttl: Optional[timedelta] = None,
        ip: Optional[IPAddress] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        """
        Create a session.

        Args:
            user_id: Owning user
            ttl: Lifetime from now; None creates a session that never expires
            ip: Client address
            user_agent: Client user agent

        Returns:
            The created session
        """
        binder = ParameterBinder()
        columns = SESSION_COLUMNS
        if ttl is None:
            expires_at = "NULL"
        else:
            micros = binder.bind(ttl // timedelta(microseconds=1))
            expires_at = f"now() + CAST({micros} AS bigint) * interval '1 microsecond'"

        sql = (
            f"INSERT INTO {SESSION_TABLE} "
            f"({columns['user_id'].sql}, {columns['expires_at'].sql}, {columns['ip'].sql}, {columns['user_agent'].sql}) "
            f"VALUES ({binder.bind_column(columns['user_id'], user_id)}, {expires_at}, "
            f"{binder.bind_column(columns['ip'], str(ip) if ip is not None else None)}, "
            f"{binder.bind(user_agent)}) "
            f"RETURNING {columns.select_sql()}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="create_session")
        return self._exactly_one(rows, decode_session)

    async def delete(self, session_id: UUID) -> None:
        """
        Delete a session.

        Raises:
            NotFoundError: If no session has this id
        """
        binder = ParameterBinder()
        id_column = SESSION_COLUMNS["id"]
        sql = (
            f"DELETE FROM {SESSION_TABLE} "
            f"WHERE {id_column.sql} = {binder.bind_column(id_column, session_id)} "
            f"RETURNING {id_column.sql}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="delete_session")
        self._exactly_one(rows, lambda row: None)

    async def delete_for_user(self, user_id: UUID) -> int:
        """
        Delete every session of a user.

        Returns:
            Number of sessions removed
        """
        binder = ParameterBinder()
        column = SESSION_COLUMNS["user_id"]
        sql = f"DELETE FROM {SESSION_TABLE} WHERE {column.sql} = {binder.bind_column(column, user_id)}"
        return await self._execute(sql, binder.params, operation="delete_user_sessions")

    async def purge_expired(self, session_id: UUID) -> int:
        """
        Delete a session only if it is still expired.

        A session refreshed since it was read is left alone.
        """
        binder = ParameterBinder()
        columns = SESSION_COLUMNS
        expires_at = columns["expires_at"].sql
        sql = (
            f"DELETE FROM {SESSION_TABLE} "
            f"WHERE {columns['id'].sql} = {binder.bind_column(columns['id'], session_id)} "
            f"AND {expires_at} IS NOT NULL AND {expires_at} <= now()"
        )
        return await self._execute(sql, binder.params, operation="purge_session")
