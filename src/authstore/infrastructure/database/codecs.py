"""
Column Codecs

Timestamps travel as signed 64-bit microseconds since the Unix epoch.
Extracting float seconds and widening would lose precision, so both
directions are integer-exact, in Python and in the generated SQL.

Metadata columns hold JSON text decoded with a caller-supplied type.
A blob that fails to decode yields the caller's zero value instead of
failing the whole row.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from authstore.config.logging_config import get_logger
from authstore.domain.exceptions import DecodeError

logger = get_logger(__name__)

T = TypeVar("T")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)
_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1


# Timestamps

def to_micros(value: datetime) -> int:
    """
    Convert an aware datetime to microseconds since the epoch.

    Raises:
        ValueError: If ``value`` is naive
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("naive datetime cannot be stored; attach a timezone")
    return (value - EPOCH) // _MICROSECOND


def from_micros(value: Any, field: str = "timestamp") -> datetime:
    """
    Convert microseconds since the epoch to an aware UTC datetime.

    Raises:
        DecodeError: If ``value`` is not a 64-bit integer
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(field, f"expected integer microseconds, got {type(value).__name__}")
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise DecodeError(field, "microsecond value out of 64-bit range")
    try:
        return EPOCH + timedelta(microseconds=value)
    except OverflowError as e:
        raise DecodeError(field, str(e)) from e


def optional_from_micros(value: Any, field: str = "timestamp") -> Optional[datetime]:
    """Like ``from_micros`` but passes NULL through."""
    if value is None:
        return None
    return from_micros(value, field)


def optional_to_micros(value: Optional[datetime]) -> Optional[int]:
    """Like ``to_micros`` but passes None through."""
    if value is None:
        return None
    return to_micros(value)


def timestamp_select_sql(column_sql: str) -> str:
    """SQL expression reading a timestamptz column as bigint microseconds."""
    return f"(extract(epoch from {column_sql}) * 1000000)::bigint"


def timestamp_bind_sql(placeholder: str) -> str:
    """SQL expression turning a bigint microsecond parameter into a timestamptz."""
    return f"('epoch'::timestamptz + CAST({placeholder} AS bigint) * interval '1 microsecond')"


# Metadata

class MetadataCodec(Generic[T]):
    """
    JSON codec for a caller-defined metadata type.

    Any type pydantic can validate works: a ``BaseModel`` subclass, a
    ``TypedDict``, or plain ``dict[str, Any]``.

    Usage:
        codec = MetadataCodec(Preferences, Preferences)
        prefs = codec.decode('{"theme": "dark"}')
    """

    def __init__(self, type_: Any, zero: Callable[[], T]) -> None:
        """
        Args:
            type_: Type the JSON is validated into
            zero: Factory for the value used when decoding fails
        """
        self._adapter: TypeAdapter[T] = TypeAdapter(type_)
        self._zero = zero

    @classmethod
    def plain(cls) -> "MetadataCodec[dict[str, Any]]":
        """Codec for untyped JSON objects, falling back to ``{}``."""
        return cls(dict[str, Any], dict)

    def zero(self) -> T:
        """Fresh zero value."""
        return self._zero()

    def decode(self, raw: Optional[str | bytes], field: str = "metadata") -> T:
        """
        Decode JSON text, substituting the zero value on failure.

        A NULL column also yields the zero value.
        """
        if raw is None:
            return self._zero()
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Metadata decode failed, using zero value",
                field=field,
                error_count=e.error_count(),
            )
            return self._zero()

    def encode(self, value: T) -> str:
        """Encode a metadata value as JSON text."""
        return self._adapter.dump_json(value).decode("utf-8")
