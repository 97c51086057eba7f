"""
Tagged Field Updates

A partial update names, per field, whether the column is left alone
or set to a value. ``SetTo(None)`` clears a nullable column, which is
why "not mentioned" cannot be expressed as ``None``.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class Unchanged:
    """Marker for a column the update must not touch."""

    _instance: "Unchanged | None" = None

    def __new__(cls) -> "Unchanged":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = Unchanged()


@dataclass(frozen=True)
class SetTo(Generic[T]):
    """Set the column to ``value``."""

    value: T


FieldUpdate = Union[Unchanged, SetTo[T]]


def is_set(update: "FieldUpdate[T]") -> bool:
    """Whether the update changes its column."""
    return isinstance(update, SetTo)
