"""
Unit Tests for the SQL Repositories

Runs repositories against a recording fake session and checks the SQL
they issue and how they interpret results.
"""

from datetime import timedelta
from ipaddress import IPv4Address
from uuid import uuid4

import pytest

from authstore.domain.enums import TokenType, UserSelector
from authstore.domain.exceptions import MultipleRowsError, NotFoundError
from authstore.domain.models import SetTo, UserUpdate
from authstore.infrastructure.database.codecs import MetadataCodec
from authstore.infrastructure.database.expiry import ExpiryReaper
from authstore.infrastructure.database.repositories import (
    CacheRepository,
    SessionRepository,
    TokenRepository,
    UserRepository,
)
from support import FakeResult, FakeSession, cache_row, session_row, token_row, user_row


@pytest.fixture
def users(fake_session: FakeSession) -> UserRepository:
    codec = MetadataCodec.plain()
    return UserRepository(fake_session, codec, codec)


class TestUserRepository:
    """Test suite for UserRepository."""

    async def test_list_without_filters(self, users: UserRepository, fake_session: FakeSession) -> None:
        """Test that listing pages through live users only."""
        fake_session.queue(FakeResult([user_row(email="a@example.com"), user_row(email="b@example.com")]))

        result = await users.list_users(limit=10, offset=20)

        assert [u.email for u in result] == ["a@example.com", "b@example.com"]
        assert 'WHERE "deleted_at" IS NULL ORDER BY "created_at", "id" LIMIT :p0 OFFSET :p1' in fake_session.last_sql
        assert fake_session.last_params == {"p0": 10, "p1": 20}

    async def test_list_filters_or_combined(self, users: UserRepository, fake_session: FakeSession) -> None:
        """Test that list filters are OR-combined within the live-user predicate."""
        await users.list_users(email="a@example.com", phone_number="+15550100")

        assert 'WHERE "deleted_at" IS NULL AND ("email" = :p0 OR "phone_number" = :p1)' in fake_session.last_sql
        assert fake_session.last_params == {"p0": "a@example.com", "p1": "+15550100", "p2": 100, "p3": 0}

    async def test_get_excludes_deleted(self, users: UserRepository, fake_session: FakeSession) -> None:
        """Test that normal reads filter soft-deleted rows and admin reads do not."""
        fake_session.queue(FakeResult([user_row()]), FakeResult([user_row(deleted_at=1)]))

        await users.get(UserSelector.EMAIL, "ada@example.com")
        assert '"deleted_at" IS NULL' in fake_session.last_sql

        deleted = await users.get_including_deleted(UserSelector.EMAIL, "ada@example.com")
        assert '"deleted_at" IS NULL' not in fake_session.last_sql.split("WHERE")[1]
        assert deleted.is_deleted

    async def test_get_missing(self, users: UserRepository) -> None:
        """Test that a missing user is not-found."""
        with pytest.raises(NotFoundError):
            await users.get(UserSelector.ID, uuid4())

    async def test_create_fills_zero_metadata(self, users: UserRepository, fake_session: FakeSession) -> None:
        """Test that create binds every value and defaults metadata."""
        fake_session.queue(FakeResult([user_row()]))

        await users.create(email="ada@example.com")

        sql, params = fake_session.calls[-1]
        assert sql.startswith('INSERT INTO "authstore"."user" ("email", "password_hash", "role"')
        assert "RETURNING" in sql
        assert params["p0"] == "ada@example.com"
        assert params["p6"] == "{}"
        assert params["p7"] == "{}"

    async def test_create_zero_rows(self, users: UserRepository) -> None:
        """Test that an insert returning nothing is not-found."""
        with pytest.raises(NotFoundError):
            await users.create(email="ada@example.com")

    async def test_update_multiple_rows(self, users: UserRepository, fake_session: FakeSession) -> None:
        """Test that an update hitting several rows is an integrity error."""
        fake_session.queue(FakeResult([user_row(), user_row()]))

        with pytest.raises(MultipleRowsError):
            await users.update(UserSelector.EMAIL, "ada@example.com", UserUpdate(role=SetTo("admin")))

    async def test_update_sends_only_set_fields(self, users: UserRepository, fake_session: FakeSession) -> None:
        """Test that an email-only update writes only email and updated_at."""
        fake_session.queue(FakeResult([user_row(email="new@example.com")]))
        user_id = uuid4()

        user = await users.update(UserSelector.ID, user_id, UserUpdate(email=SetTo("new@example.com")))

        sql = fake_session.last_sql
        assignments = sql.split(" SET ")[1].split(" WHERE ")[0]
        assert assignments == '"email" = :p0, "updated_at" = now()'
        assert fake_session.last_params == {"p0": "new@example.com", "p1": user_id}
        assert user.email == "new@example.com"

    async def test_soft_delete(self, users: UserRepository, fake_session: FakeSession) -> None:
        """Test that delete sets deleted_at on a live row instead of removing it."""
        fake_session.queue(FakeResult([user_row(deleted_at=1)]))

        user = await users.soft_delete(UserSelector.EMAIL, "ada@example.com")

        assert fake_session.last_sql.startswith('UPDATE "authstore"."user" SET "deleted_at" = now()')
        assert 'AND "deleted_at" IS NULL' in fake_session.last_sql
        assert user.is_deleted

    async def test_soft_delete_twice(self, users: UserRepository) -> None:
        """Test that deleting an already deleted user is not-found."""
        with pytest.raises(NotFoundError):
            await users.soft_delete(UserSelector.EMAIL, "ada@example.com")


class TestSessionRepository:
    """Test suite for SessionRepository."""

    async def test_get_valid(self, fake_session: FakeSession) -> None:
        """Test that a live session is returned with match filters applied."""
        fake_session.queue(FakeResult([session_row(ip="10.0.0.1", user_agent="curl/8") + (False,)]))
        session_id = uuid4()

        session = await SessionRepository(fake_session).get(
            session_id, ip=IPv4Address("10.0.0.1"), user_agent="curl/8"
        )

        assert session.ip == IPv4Address("10.0.0.1")
        sql = fake_session.last_sql
        assert "AS expired" in sql
        assert '"ip" = CAST(:p1 AS inet)' in sql
        assert '"user_agent" = :p2' in sql
        assert fake_session.last_params == {"p0": session_id, "p1": "10.0.0.1", "p2": "curl/8"}

    async def test_get_expired_purges_in_background(self, fake_session: FakeSession) -> None:
        """Test that an expired session is not-found and handed to the reaper."""
        fake_session.queue(FakeResult([session_row() + (True,)]))
        reaper = ExpiryReaper()
        purged = []

        async def purge(session_id):
            purged.append(session_id)

        session_id = uuid4()
        with pytest.raises(NotFoundError):
            await SessionRepository(fake_session, reaper, purge).get(session_id)

        await reaper.drain()
        assert purged == [session_id]

    async def test_create_with_ttl(self, fake_session: FakeSession) -> None:
        """Test that the ttl is bound as integer microseconds."""
        fake_session.queue(FakeResult([session_row()]))

        await SessionRepository(fake_session).create(uuid4(), ttl=timedelta(minutes=5))

        assert "now() + CAST(:p0 AS bigint) * interval '1 microsecond'" in fake_session.last_sql
        assert fake_session.last_params["p0"] == 300_000_000

    async def test_create_without_ttl_never_expires(self, fake_session: FakeSession) -> None:
        """Test that a session without ttl stores NULL expiry."""
        fake_session.queue(FakeResult([session_row()]))

        session = await SessionRepository(fake_session).create(uuid4())

        assert "CAST(:p0 AS uuid), NULL," in fake_session.last_sql
        assert session.expires_at is None

    async def test_delete_missing(self, fake_session: FakeSession) -> None:
        """Test that deleting an unknown session is not-found."""
        with pytest.raises(NotFoundError):
            await SessionRepository(fake_session).delete(uuid4())

    async def test_purge_only_if_still_expired(self, fake_session: FakeSession) -> None:
        """Test that the purge re-checks expiry at delete time."""
        fake_session.queue(FakeResult(rowcount=1))

        assert await SessionRepository(fake_session).purge_expired(uuid4()) == 1
        assert '"expires_at" IS NOT NULL AND "expires_at" <= now()' in fake_session.last_sql


class TestCacheRepository:
    """Test suite for CacheRepository."""

    async def test_set_upserts(self, fake_session: FakeSession) -> None:
        """Test that set replaces the value and expiry on conflict."""
        await CacheRepository(fake_session).set("rate_limit", "ip:1", "3", ttl=timedelta(seconds=1))

        sql = fake_session.last_sql
        assert 'ON CONFLICT ("resource_type", "key") DO UPDATE' in sql
        assert '"expires_at" = EXCLUDED."expires_at"' in sql
        assert fake_session.last_params == {"p0": 1_000_000, "p1": "rate_limit", "p2": "ip:1", "p3": "3"}

    async def test_get_valid(self, fake_session: FakeSession) -> None:
        """Test that a live entry is returned."""
        fake_session.queue(FakeResult([cache_row(value="3") + (False,)]))

        entry = await CacheRepository(fake_session).get("rate_limit", "ip:10.0.0.1")

        assert entry.value == "3"

    async def test_get_expired(self, fake_session: FakeSession) -> None:
        """Test that an expired entry is not-found and purged."""
        fake_session.queue(FakeResult([cache_row() + (True,)]))
        reaper = ExpiryReaper()
        purged = []

        async def purge(resource_type, key):
            purged.append((resource_type, key))

        with pytest.raises(NotFoundError):
            await CacheRepository(fake_session, reaper, purge).get("rate_limit", "ip:10.0.0.1")

        await reaper.drain()
        assert purged == [("rate_limit", "ip:10.0.0.1")]

    async def test_delete_is_idempotent(self, fake_session: FakeSession) -> None:
        """Test that deleting a missing entry does not raise."""
        fake_session.queue(FakeResult(rowcount=0))

        await CacheRepository(fake_session).delete("rate_limit", "missing")


class TestTokenRepository:
    """Test suite for TokenRepository."""

    async def test_get_usable_filters_used_and_deleted(self, fake_session: FakeSession) -> None:
        """Test that validation only considers unused, unrevoked tokens."""
        fake_session.queue(FakeResult([token_row() + (False,)]))

        await TokenRepository(fake_session).get_usable(uuid4(), TokenType.PASSWORD_RESET, "ab" * 32)

        sql = fake_session.last_sql
        assert '"used_at" IS NULL AND "deleted_at" IS NULL' in sql
        assert "AS expired" in sql

    async def test_get_usable_expired(self, fake_session: FakeSession) -> None:
        """Test that an expired token is not-found."""
        fake_session.queue(FakeResult([token_row() + (True,)]))

        with pytest.raises(NotFoundError):
            await TokenRepository(fake_session).get_usable(uuid4(), TokenType.PASSWORD_RESET, "ab" * 32)

    async def test_mark_used_requires_unexpired(self, fake_session: FakeSession) -> None:
        """Test that use is a single conditional update requiring a future expiry."""
        fake_session.queue(FakeResult([token_row(used_at=1)]))

        token = await TokenRepository(fake_session).mark_used(uuid4(), TokenType.MAGIC_LINK, "ab" * 32)

        sql = fake_session.last_sql
        assert sql.startswith('UPDATE "authstore"."one_time_token" SET "used_at" = now()')
        assert '"expires_at" > now()' in sql
        assert token.used_at is not None

    async def test_mark_used_twice(self, fake_session: FakeSession) -> None:
        """Test that a used token cannot be used again."""
        with pytest.raises(NotFoundError):
            await TokenRepository(fake_session).mark_used(uuid4(), TokenType.MAGIC_LINK, "ab" * 32)

    async def test_create_binds_type_value(self, fake_session: FakeSession) -> None:
        """Test that the token type is stored by value."""
        fake_session.queue(FakeResult([token_row()]))

        await TokenRepository(fake_session).create(
            uuid4(), TokenType.EMAIL_CONFIRMATION, "cd" * 32, ttl=timedelta(hours=1)
        )

        assert fake_session.last_params["p1"] == "email_confirmation"
        assert fake_session.last_params["p3"] == 3_600_000_000
