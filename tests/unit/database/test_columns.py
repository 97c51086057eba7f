"""
Unit Tests for Canonical Columns and Entity Decoders

Tests positional decoding against the shared column lists.
"""

from ipaddress import IPv4Address, IPv6Address
from uuid import uuid4

import pytest

from authstore.domain.enums import TokenType
from authstore.domain.exceptions import DecodeError
from authstore.infrastructure.database.codecs import MetadataCodec, to_micros
from authstore.infrastructure.database.columns import (
    USER_COLUMNS,
    Column,
    ColumnKind,
    ColumnList,
    decode_cache_entry,
    decode_session,
    decode_token,
    decode_user,
    quote_ident,
)
from support import NOW, cache_row, session_row, token_row, user_row


class TestColumnList:
    """Test suite for ColumnList."""

    def test_select_sql_follows_declared_order(self) -> None:
        """Test that the SELECT list is rendered in canonical order."""
        columns = ColumnList(
            Column("id", ColumnKind.UUID),
            Column("seen_at", ColumnKind.TIMESTAMP),
            Column("ip", ColumnKind.INET),
            Column("data", ColumnKind.JSON),
            Column("name"),
        )

        assert columns.select_sql() == (
            '"id"::text, (extract(epoch from "seen_at") * 1000000)::bigint, '
            'host("ip"), "data"::text, "name"'
        )

    def test_positions_match_declaration(self) -> None:
        """Test that positions are resolved by name."""
        assert USER_COLUMNS.position("id") == 0
        assert USER_COLUMNS.position("user_metadata") == len(USER_COLUMNS) - 1

    def test_unknown_column_rejected(self) -> None:
        """Test that unknown names raise KeyError."""
        with pytest.raises(KeyError):
            USER_COLUMNS.position("nickname")

    def test_duplicate_columns_rejected(self) -> None:
        """Test that a column list cannot name a column twice."""
        with pytest.raises(ValueError):
            ColumnList(Column("id"), Column("id"))

    def test_quote_ident_always_quotes(self) -> None:
        """Test that reserved and plain names are both quoted."""
        assert quote_ident("user") == '"user"'
        assert quote_ident("email") == '"email"'

    @pytest.mark.parametrize("name", ["", 'user"; DROP TABLE x; --', "a b"])
    def test_quote_ident_rejects_unsafe_names(self, name: str) -> None:
        """Test that only plain identifiers can be interpolated."""
        with pytest.raises(ValueError):
            quote_ident(name)


class TestDecodeUser:
    """Test suite for the user decoder."""

    @pytest.fixture
    def codec(self) -> MetadataCodec[dict]:
        return MetadataCodec.plain()

    def test_full_row(self, codec: MetadataCodec[dict]) -> None:
        """Test that every column lands in its field."""
        user_id = uuid4()
        row = user_row(
            id=str(user_id),
            role="admin",
            email="ada@example.com",
            password_hash="$argon2id$...",
            email_confirmed_at=to_micros(NOW),
            phone_number="+15550100",
            app_metadata='{"provider": "email"}',
            user_metadata='{"name": "Ada"}',
        )

        user = decode_user(row, codec, codec)

        assert user.id == user_id
        assert user.created_at == NOW
        assert user.role == "admin"
        assert user.password_hash == "$argon2id$..."
        assert user.email_confirmed_at == NOW
        assert user.phone_number == "+15550100"
        assert user.app_metadata == {"provider": "email"}
        assert user.user_metadata == {"name": "Ada"}
        assert user.deleted_at is None
        assert not user.is_deleted

    def test_malformed_metadata_does_not_fail_row(self, codec: MetadataCodec[dict]) -> None:
        """Test that a bad metadata blob only zeroes that field."""
        row = user_row(app_metadata="{broken", user_metadata='{"ok": true}')

        user = decode_user(row, codec, codec)

        assert user.app_metadata == {}
        assert user.user_metadata == {"ok": True}
        assert user.email == "ada@example.com"

    def test_bad_timestamp_names_field(self, codec: MetadataCodec[dict]) -> None:
        """Test that decode errors identify the offending field."""
        row = user_row(updated_at="yesterday")

        with pytest.raises(DecodeError) as exc_info:
            decode_user(row, codec, codec)

        assert exc_info.value.field == "updated_at"

    def test_missing_email_rejected(self, codec: MetadataCodec[dict]) -> None:
        """Test that a NULL required text column is a decode error."""
        with pytest.raises(DecodeError) as exc_info:
            decode_user(user_row(email=None), codec, codec)

        assert exc_info.value.field == "email"

    def test_short_row_rejected(self, codec: MetadataCodec[dict]) -> None:
        """Test that rows shorter than the column list are rejected."""
        with pytest.raises(DecodeError):
            decode_user(user_row()[:-1], codec, codec)


class TestDecodeOthers:
    """Test suite for session, token and cache decoders."""

    def test_session_with_ipv4(self) -> None:
        """Test that inet text decodes to an address object."""
        session = decode_session(session_row(ip="10.0.0.1", user_agent="curl/8"))

        assert session.ip == IPv4Address("10.0.0.1")
        assert session.user_agent == "curl/8"
        assert session.expires_at is None

    def test_session_with_ipv6(self) -> None:
        """Test that IPv6 addresses decode."""
        assert decode_session(session_row(ip="::1")).ip == IPv6Address("::1")

    def test_session_bad_ip(self) -> None:
        """Test that an unparsable address names the ip field."""
        with pytest.raises(DecodeError) as exc_info:
            decode_session(session_row(ip="not-an-ip"))

        assert exc_info.value.field == "ip"

    def test_session_accepts_native_uuid(self) -> None:
        """Test that drivers returning UUID objects are accepted."""
        session_id = uuid4()

        assert decode_session(session_row(id=session_id)).id == session_id

    def test_token(self) -> None:
        """Test that token rows decode with their type."""
        token = decode_token(token_row(token_type="magic_link"))

        assert token.token_type is TokenType.MAGIC_LINK
        assert token.is_usable(NOW)

    def test_token_unknown_type(self) -> None:
        """Test that a token type outside the enum is a decode error."""
        with pytest.raises(DecodeError) as exc_info:
            decode_token(token_row(token_type="sms_code"))

        assert exc_info.value.field == "token_type"

    def test_cache_entry(self) -> None:
        """Test that cache rows decode."""
        entry = decode_cache_entry(cache_row(value="42", expires_at=to_micros(NOW)))

        assert entry.value == "42"
        assert entry.expires_at == NOW

    def test_bad_uuid(self) -> None:
        """Test that a malformed id names the id field."""
        with pytest.raises(DecodeError) as exc_info:
            decode_session(session_row(id="1234"))

        assert exc_info.value.field == "id"
