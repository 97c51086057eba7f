"""
User Repository

Data access for ``authstore."user"``. Soft-deleted rows are invisible to
every method except ``get_including_deleted``.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from authstore.domain.enums import UserSelector
from authstore.domain.models import User, UserUpdate
from authstore.infrastructure.database.codecs import MetadataCodec, optional_to_micros
from authstore.infrastructure.database.columns import USER_COLUMNS, USER_TABLE, decode_user
from authstore.infrastructure.database.query_builder import (
    ParameterBinder,
    build_or_filters,
    build_update,
    user_changes,
)
from authstore.infrastructure.database.repositories.base import BaseRepository, Row


class UserRepository(BaseRepository[User[Any, Any]]):
    """
    Repository for user records.

    Metadata columns are decoded with the codecs given at construction.
    """

    entity = "user"

    def __init__(
        self,
        session: AsyncSession,
        app_metadata: MetadataCodec[Any],
        user_metadata: MetadataCodec[Any],
    ) -> None:
        super().__init__(session)
        self._app_metadata = app_metadata
        self._user_metadata = user_metadata

    def _decode(self, row: Row) -> User[Any, Any]:
        return decode_user(row, self._app_metadata, self._user_metadata)

    async def list_users(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        id: Optional[UUID] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> list[User[Any, Any]]:
        """
        List live users, optionally filtered.

        Filters are OR-combined: a user matching any given filter is
        returned. Without filters every live user is paged through.

        Args:
            limit: Maximum results
            offset: Pagination offset
            id: Match this user id
            email: Match this email
            phone_number: Match this phone number

        Returns:
            Users ordered by creation time
        """
        binder = ParameterBinder()
        predicates = [f"{USER_COLUMNS['deleted_at'].sql} IS NULL"]
        filters = build_or_filters(
            binder,
            USER_COLUMNS,
            [("id", id), ("email", email), ("phone_number", phone_number)],
        )
        if filters:
            predicates.append(filters)

        sql = (
            f"SELECT {USER_COLUMNS.select_sql()} FROM {USER_TABLE} "
            f"WHERE {' AND '.join(predicates)} "
            f"ORDER BY {USER_COLUMNS['created_at'].sql}, {USER_COLUMNS['id'].sql} "
            f"LIMIT {binder.bind(limit)} OFFSET {binder.bind(offset)}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="list_users")
        return [self._decode(row) for row in rows]

    async def get(self, selector: UserSelector, value: Any) -> User[Any, Any]:
        """
        Get a live user by a unique column.

        Raises:
            NotFoundError: If no live user matches
        """
        return await self._get(selector, value, include_deleted=False)

    async def get_including_deleted(self, selector: UserSelector, value: Any) -> User[Any, Any]:
        """
        Get a user regardless of soft deletion.

        For administrative tooling only; normal reads must use ``get``.
        """
        return await self._get(selector, value, include_deleted=True)

    async def _get(self, selector: UserSelector, value: Any, *, include_deleted: bool) -> User[Any, Any]:
        binder = ParameterBinder()
        column = USER_COLUMNS[UserSelector(selector).value]
        predicates = [f"{column.sql} = {binder.bind_column(column, value)}"]
        if not include_deleted:
            predicates.append(f"{USER_COLUMNS['deleted_at'].sql} IS NULL")

        sql = (
            f"SELECT {USER_COLUMNS.select_sql()} FROM {USER_TABLE} "
            f"WHERE {' AND '.join(predicates)}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="get_user")
        return self._exactly_one(rows, self._decode)

    async def create(
        self,
        *,
        email: str,
        password_hash: Optional[str] = None,
        role: Optional[str] = None,
        phone_number: Optional[str] = None,
        email_confirmed_at: Optional[datetime] = None,
        phone_number_confirmed_at: Optional[datetime] = None,
        app_metadata: Any = None,
        user_metadata: Any = None,
    ) -> User[Any, Any]:
        """
        Insert a user and return the stored record.

        Missing metadata is stored as the codec's zero value.

        Raises:
            ConstraintViolationError: If the email is already taken
        """
        if app_metadata is None:
            app_metadata = self._app_metadata.zero()
        if user_metadata is None:
            user_metadata = self._user_metadata.zero()

        values = [
            ("email", email),
            ("password_hash", password_hash),
            ("role", role),
            ("phone_number", phone_number),
            ("email_confirmed_at", optional_to_micros(email_confirmed_at)),
            ("phone_number_confirmed_at", optional_to_micros(phone_number_confirmed_at)),
            ("app_metadata", self._app_metadata.encode(app_metadata)),
            ("user_metadata", self._user_metadata.encode(user_metadata)),
        ]
        binder = ParameterBinder()
        names = ", ".join(USER_COLUMNS[name].sql for name, _ in values)
        binds = ", ".join(binder.bind_column(USER_COLUMNS[name], value) for name, value in values)

        sql = (
            f"INSERT INTO {USER_TABLE} ({names}) VALUES ({binds}) "
            f"RETURNING {USER_COLUMNS.select_sql()}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="create_user")
        return self._exactly_one(rows, self._decode)

    async def update(self, selector: UserSelector, value: Any, update: UserUpdate) -> User[Any, Any]:
        """
        Apply a partial update to a live user.

        Only fields tagged ``SetTo`` are written; ``updated_at`` is
        always bumped.

        Raises:
            NotFoundError: If no live user matches
            MultipleRowsError: If the selector matched several users
        """
        changes = user_changes(
            update,
            USER_COLUMNS,
            self._app_metadata.encode,
            self._user_metadata.encode,
        )
        statement = build_update(
            table=USER_TABLE,
            columns=USER_COLUMNS,
            changes=changes,
            selector=UserSelector(selector).value,
            selector_value=value,
        )
        rows = await self._fetch_all(statement.sql, statement.params, operation="update_user")
        return self._exactly_one(rows, self._decode)

    async def soft_delete(self, selector: UserSelector, value: Any) -> User[Any, Any]:
        """
        Soft delete a user (set deleted_at timestamp).

        Returns:
            The deleted record

        Raises:
            NotFoundError: If no live user matches
        """
        binder = ParameterBinder()
        column = USER_COLUMNS[UserSelector(selector).value]
        deleted_at = USER_COLUMNS["deleted_at"].sql
        sql = (
            f"UPDATE {USER_TABLE} "
            f"SET {deleted_at} = now(), {USER_COLUMNS['updated_at'].sql} = now() "
            f"WHERE {column.sql} = {binder.bind_column(column, value)} AND {deleted_at} IS NULL "
            f"RETURNING {USER_COLUMNS.select_sql()}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="delete_user")
        return self._exactly_one(rows, self._decode)
