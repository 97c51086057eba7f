"""
authstore Driver

The operation set the identity framework calls. Every operation runs
in its own pooled session, committed on success and rolled back on
error. Expired sessions and cache entries are purged by detached
background tasks that the caller never waits for.

Usage:
    driver = Driver(settings, user_metadata=MetadataCodec(Profile, Profile))
    await driver.connect()
    user = await driver.create_user("ada@example.com")
    await driver.disconnect()
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Generic, Optional, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from authstore.config import Settings, get_settings
from authstore.config.logging_config import get_logger
from authstore.domain.enums import TokenType, UserSelector
from authstore.domain.exceptions import AlreadyConnectedError, NotConnectedError
from authstore.domain.models import IPAddress, Session, User, UserUpdate
from authstore.infrastructure.database.codecs import MetadataCodec
from authstore.infrastructure.database.connection import DatabaseManager
from authstore.infrastructure.database.errors import translate_errors
from authstore.infrastructure.database.expiry import ExpiryReaper
from authstore.infrastructure.database.repositories import (
    CacheRepository,
    SessionRepository,
    TokenRepository,
    UserRepository,
)
from authstore.security.tokens import generate_token, hash_token

logger = get_logger(__name__)

AppMetadataT = TypeVar("AppMetadataT")
UserMetadataT = TypeVar("UserMetadataT")


class Driver(Generic[AppMetadataT, UserMetadataT]):
    """
    Storage driver for users, sessions, one-time tokens and cache entries.

    Metadata codecs default to untyped JSON objects.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        app_metadata: Optional[MetadataCodec[AppMetadataT]] = None,
        user_metadata: Optional[MetadataCodec[UserMetadataT]] = None,
        database: Optional[DatabaseManager] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._app_metadata: MetadataCodec[Any] = app_metadata or MetadataCodec.plain()
        self._user_metadata: MetadataCodec[Any] = user_metadata or MetadataCodec.plain()
        self._db = database or DatabaseManager(self._settings)
        self._reaper = ExpiryReaper()

    # Lifecycle

    @property
    def is_connected(self) -> bool:
        return self._db.is_initialized

    @property
    def reaper(self) -> ExpiryReaper:
        """Background purges started by lazy-expiry reads."""
        return self._reaper

    async def connect(self) -> "Driver[AppMetadataT, UserMetadataT]":
        """
        Open the connection pool.

        Raises:
            AlreadyConnectedError: If the driver is connected
        """
        if self.is_connected:
            raise AlreadyConnectedError()
        await self._db.initialize()
        logger.info("Driver connected")
        return self

    async def disconnect(self) -> None:
        """
        Finish outstanding purges and close the pool.

        Raises:
            NotConnectedError: If the driver is not connected
        """
        if not self.is_connected:
            raise NotConnectedError()
        await self._reaper.drain()
        await self._db.close()
        logger.info("Driver disconnected")

    async def __aenter__(self) -> "Driver[AppMetadataT, UserMetadataT]":
        return await self.connect()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        if not self.is_connected:
            raise NotConnectedError()
        async with translate_errors(operation):
            async with self._db.session() as session:
                yield session

    def _users(self, session: AsyncSession) -> UserRepository:
        return UserRepository(session, self._app_metadata, self._user_metadata)

    # Users

    async def list_users(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        id: Optional[UUID] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> list[User[AppMetadataT, UserMetadataT]]:
        """List live users; given filters are OR-combined."""
        async with self._session("list_users") as session:
            return await self._users(session).list_users(
                limit=limit,
                offset=offset,
                id=id,
                email=email,
                phone_number=phone_number,
            )

    async def get_user(self, selector: UserSelector, value: Any) -> User[AppMetadataT, UserMetadataT]:
        """Get a live user by id, email or phone number."""
        async with self._session("get_user") as session:
            return await self._users(session).get(selector, value)

    async def get_user_including_deleted(
        self,
        selector: UserSelector,
        value: Any,
    ) -> User[AppMetadataT, UserMetadataT]:
        """Administrative read that also returns soft-deleted users."""
        async with self._session("get_user") as session:
            return await self._users(session).get_including_deleted(selector, value)

    async def create_user(
        self,
        email: str,
        *,
        password_hash: Optional[str] = None,
        role: Optional[str] = None,
        phone_number: Optional[str] = None,
        email_confirmed_at: Optional[datetime] = None,
        phone_number_confirmed_at: Optional[datetime] = None,
        app_metadata: Optional[AppMetadataT] = None,
        user_metadata: Optional[UserMetadataT] = None,
    ) -> User[AppMetadataT, UserMetadataT]:
        """Create a user; the email must be unused."""
        async with self._session("create_user") as session:
            user = await self._users(session).create(
                email=email,
                password_hash=password_hash,
                role=role,
                phone_number=phone_number,
                email_confirmed_at=email_confirmed_at,
                phone_number_confirmed_at=phone_number_confirmed_at,
                app_metadata=app_metadata,
                user_metadata=user_metadata,
            )
        logger.info("User created", user_id=str(user.id))
        return user

    async def update_user(
        self,
        selector: UserSelector,
        value: Any,
        update: UserUpdate,
    ) -> User[AppMetadataT, UserMetadataT]:
        """Apply a partial update to a live user."""
        async with self._session("update_user") as session:
            return await self._users(session).update(selector, value, update)

    async def delete_user(self, selector: UserSelector, value: Any) -> User[AppMetadataT, UserMetadataT]:
        """Soft delete a live user and return the deleted record."""
        async with self._session("delete_user") as session:
            user = await self._users(session).soft_delete(selector, value)
        logger.info("User soft deleted", user_id=str(user.id))
        return user

    # Sessions

    async def get_session(
        self,
        session_id: UUID,
        *,
        ip: Optional[IPAddress] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        """
        Get a live session.

        When ``ip`` or ``user_agent`` is given the stored value must match.
        An expired session raises NotFoundError and is purged in the background.
        """
        async with self._session("get_session") as session:
            repo = SessionRepository(session, self._reaper, self._purge_session)
            return await repo.get(session_id, ip=ip, user_agent=user_agent)

    async def create_session(
        self,
        user_id: UUID,
        *,
        ttl: Optional[timedelta] = None,
        ip: Optional[IPAddress] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        """Create a session; without ``ttl`` it never expires."""
        async with self._session("create_session") as session:
            return await SessionRepository(session).create(user_id, ttl=ttl, ip=ip, user_agent=user_agent)

    async def delete_session(self, session_id: UUID) -> None:
        """Delete a session; raises NotFoundError if there is none."""
        async with self._session("delete_session") as session:
            await SessionRepository(session).delete(session_id)

    async def delete_user_sessions(self, user_id: UUID) -> int:
        """Delete every session of a user and return how many were removed."""
        async with self._session("delete_user_sessions") as session:
            return await SessionRepository(session).delete_for_user(user_id)

    async def _purge_session(self, session_id: UUID) -> int:
        async with self._session("purge_session") as session:
            return await SessionRepository(session).purge_expired(session_id)

    # One-time tokens

    def _token_ttl(self, token_type: TokenType) -> timedelta:
        tokens = self._settings.tokens
        seconds = {
            TokenType.PASSWORD_RESET: tokens.password_reset_ttl,
            TokenType.EMAIL_CONFIRMATION: tokens.email_confirmation_ttl,
            TokenType.PHONE_CONFIRMATION: tokens.phone_confirmation_ttl,
            TokenType.MAGIC_LINK: tokens.magic_link_ttl,
        }[TokenType(token_type)]
        return timedelta(seconds=seconds)

    async def create_token(
        self,
        user_id: UUID,
        token_type: TokenType,
        *,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """
        Issue a one-time token.

        Only the token's hash is stored; the returned raw token cannot be
        recovered later.
        """
        token = generate_token(self._settings.tokens.token_bytes)
        token_hash = hash_token(token)
        async with self._session("create_token") as session:
            await TokenRepository(session).create(
                user_id,
                token_type,
                token_hash,
                ttl=ttl if ttl is not None else self._token_ttl(token_type),
            )
        logger.info("One-time token issued", user_id=str(user_id), kind=str(token_type))
        return token

    async def validate_token(self, user_id: UUID, token_type: TokenType, token: str) -> None:
        """
        Check that a token is usable without consuming it.

        Raises:
            NotFoundError: If the token is unknown, used, revoked or expired
            TokenHashError: If the token cannot be hashed
        """
        token_hash = hash_token(token)
        async with self._session("validate_token") as session:
            await TokenRepository(session).get_usable(user_id, token_type, token_hash)

    async def use_token(self, user_id: UUID, token_type: TokenType, token: str) -> None:
        """
        Consume a token; a second use raises NotFoundError.

        Raises:
            NotFoundError: If the token is unknown, used, revoked or expired
            TokenHashError: If the token cannot be hashed
        """
        token_hash = hash_token(token)
        async with self._session("use_token") as session:
            await TokenRepository(session).mark_used(user_id, token_type, token_hash)

    async def delete_token(self, user_id: UUID, token_type: TokenType, token: str) -> None:
        """
        Revoke a token.

        Raises:
            NotFoundError: If the token is unknown or already revoked
            TokenHashError: If the token cannot be hashed
        """
        token_hash = hash_token(token)
        async with self._session("delete_token") as session:
            await TokenRepository(session).revoke(user_id, token_type, token_hash)

    # Cache

    async def cache_set(
        self,
        resource_type: str,
        key: str,
        value: str,
        *,
        ttl: Optional[timedelta] = None,
    ) -> None:
        """Insert or replace a cache entry."""
        async with self._session("cache_set") as session:
            await CacheRepository(session).set(resource_type, key, value, ttl=ttl)

    async def cache_get(self, resource_type: str, key: str) -> str:
        """
        Get a cached value.

        An expired entry raises NotFoundError and is purged in the background.
        """
        async with self._session("cache_get") as session:
            repo = CacheRepository(session, self._reaper, self._purge_cache)
            entry = await repo.get(resource_type, key)
        return entry.value

    async def cache_delete(self, resource_type: str, key: str) -> None:
        """Delete a cache entry if present."""
        async with self._session("cache_delete") as session:
            await CacheRepository(session).delete(resource_type, key)

    async def _purge_cache(self, resource_type: str, key: str) -> int:
        async with self._session("purge_cache") as session:
            return await CacheRepository(session).purge_expired(resource_type, key)
