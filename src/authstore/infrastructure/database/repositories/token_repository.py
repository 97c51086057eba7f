"""
One-Time Token Repository

Data access for ``authstore."one_time_token"``. Tokens are looked up by
(user_id, token_type, token_hash). Rows are never physically removed:
use and revocation are one-way timestamp transitions kept for audit.
"""

from datetime import timedelta
from uuid import UUID

from authstore.domain.enums import TokenType
from authstore.domain.models import OneTimeToken
from authstore.infrastructure.database.columns import TOKEN_COLUMNS, TOKEN_TABLE, decode_token
from authstore.infrastructure.database.expiry import expired_flag_sql, resolve_expiring
from authstore.infrastructure.database.query_builder import ParameterBinder
from authstore.infrastructure.database.repositories.base import BaseRepository


class TokenRepository(BaseRepository[OneTimeToken]):
    """Repository for one-time tokens."""

    entity = "one_time_token"

    def _identity(
        self,
        binder: ParameterBinder,
        user_id: UUID,
        token_type: TokenType,
        token_hash: str,
    ) -> str:
        columns = TOKEN_COLUMNS
        return (
            f"{columns['user_id'].sql} = {binder.bind_column(columns['user_id'], user_id)} "
            f"AND {columns['token_type'].sql} = {binder.bind(TokenType(token_type).value)} "
            f"AND {columns['token_hash'].sql} = {binder.bind(token_hash)}"
        )

    async def create(
        self,
        user_id: UUID,
        token_type: TokenType,
        token_hash: str,
        *,
        ttl: timedelta,
    ) -> OneTimeToken:
        """Persist a token hash expiring ``ttl`` from now."""
        binder = ParameterBinder()
        columns = TOKEN_COLUMNS
        sql = (
            f"INSERT INTO {TOKEN_TABLE} "
            f"({columns['user_id'].sql}, {columns['token_type'].sql}, {columns['token_hash'].sql}, {columns['expires_at'].sql}) "
            f"VALUES ({binder.bind_column(columns['user_id'], user_id)}, {binder.bind(TokenType(token_type).value)}, "
            f"{binder.bind(token_hash)}, "
            f"now() + CAST({binder.bind(ttl // timedelta(microseconds=1))} AS bigint) * interval '1 microsecond') "
            f"RETURNING {columns.select_sql()}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="create_token")
        return self._exactly_one(rows, decode_token)

    async def get_usable(self, user_id: UUID, token_type: TokenType, token_hash: str) -> OneTimeToken:
        """
        Read a token that is neither used, revoked nor expired.

        Raises:
            NotFoundError: Otherwise
        """
        binder = ParameterBinder()
        columns = TOKEN_COLUMNS
        sql = (
            f"SELECT {columns.select_sql()}, {expired_flag_sql(columns['expires_at'].sql)} "
            f"FROM {TOKEN_TABLE} WHERE {self._identity(binder, user_id, token_type, token_hash)} "
            f"AND {columns['used_at'].sql} IS NULL AND {columns['deleted_at'].sql} IS NULL"
        )
        rows = await self._fetch_all(sql, binder.params, operation="validate_token")
        return resolve_expiring(rows, decode_token, entity=self.entity)

    async def mark_used(self, user_id: UUID, token_type: TokenType, token_hash: str) -> OneTimeToken:
        """
        Consume a usable token.

        The usability check and the transition are one statement, so two
        concurrent uses cannot both succeed.

        Raises:
            NotFoundError: If the token is unknown, used, revoked or expired
        """
        binder = ParameterBinder()
        columns = TOKEN_COLUMNS
        sql = (
            f"UPDATE {TOKEN_TABLE} SET {columns['used_at'].sql} = now() "
            f"WHERE {self._identity(binder, user_id, token_type, token_hash)} "
            f"AND {columns['used_at'].sql} IS NULL AND {columns['deleted_at'].sql} IS NULL "
            f"AND {columns['expires_at'].sql} > now() "
            f"RETURNING {columns.select_sql()}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="use_token")
        return self._exactly_one(rows, decode_token)

    async def revoke(self, user_id: UUID, token_type: TokenType, token_hash: str) -> OneTimeToken:
        """
        Revoke a token by setting ``deleted_at``.

        Raises:
            NotFoundError: If the token is unknown or already revoked
        """
        binder = ParameterBinder()
        columns = TOKEN_COLUMNS
        sql = (
            f"UPDATE {TOKEN_TABLE} SET {columns['deleted_at'].sql} = now() "
            f"WHERE {self._identity(binder, user_id, token_type, token_hash)} "
            f"AND {columns['deleted_at'].sql} IS NULL "
            f"RETURNING {columns.select_sql()}"
        )
        rows = await self._fetch_all(sql, binder.params, operation="delete_token")
        return self._exactly_one(rows, decode_token)
