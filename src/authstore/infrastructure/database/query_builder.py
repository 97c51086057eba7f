"""
Parameterized Query Builder

Builds UPDATE statements that touch only the fields a caller tagged
with ``SetTo`` and OR-combined equality filters for list queries.

Values are bound through ``ParameterBinder``; the only text ever
interpolated is identifiers taken from a ``ColumnList``.
"""

from dataclasses import dataclass, fields
from typing import Any, Callable, Optional, Sequence

from authstore.domain.models import UserUpdate, is_set
from authstore.infrastructure.database.codecs import optional_to_micros
from authstore.infrastructure.database.columns import Column, ColumnKind, ColumnList


class ParameterBinder:
    """
    Ordered ``(placeholder, value)`` pairs for one statement.

    Placeholders are generated in bind order (``:p0``, ``:p1``, ...), so
    their order always matches the order of the clauses that use them.
    """

    def __init__(self) -> None:
        self._pairs: list[tuple[str, Any]] = []

    def bind(self, value: Any) -> str:
        """Register ``value`` and return its placeholder."""
        name = f"p{len(self._pairs)}"
        self._pairs.append((name, value))
        return f":{name}"

    def bind_column(self, column: Column, value: Any) -> str:
        """Register ``value`` for ``column`` and return the cast bind expression."""
        return column.kind.bind_sql(self.bind(value))

    @property
    def params(self) -> dict[str, Any]:
        """Parameters as accepted by ``session.execute``."""
        return dict(self._pairs)


@dataclass(frozen=True)
class Change:
    """One column assignment of an UPDATE."""

    column: Column
    value: Any


@dataclass(frozen=True)
class Statement:
    """SQL text with its bound parameters."""

    sql: str
    params: dict[str, Any]


def build_update(
    *,
    table: str,
    columns: ColumnList,
    changes: Sequence[Change],
    selector: str,
    selector_value: Any,
    soft_delete: bool = True,
) -> Statement:
    """
    Build an UPDATE touching only ``changes``.

    ``updated_at`` is always bumped, so an empty change list still
    produces a valid statement that selects the target row. The selector
    value is bound last.

    Args:
        table: Qualified table name
        columns: Canonical columns, used for RETURNING and selector lookup
        changes: Assignments in the order they should appear
        selector: Name of a unique column selecting the row
        selector_value: Value the selector must equal
        soft_delete: Exclude rows whose ``deleted_at`` is set

    Returns:
        Statement returning the canonical columns
    """
    binder = ParameterBinder()
    assignments = [
        f"{change.column.sql} = {binder.bind_column(change.column, change.value)}"
        for change in changes
    ]
    assignments.append(f"{columns['updated_at'].sql} = now()")

    selector_column = columns[selector]
    predicates = [f"{selector_column.sql} = {binder.bind_column(selector_column, selector_value)}"]
    if soft_delete:
        predicates.append(f"{columns['deleted_at'].sql} IS NULL")

    sql = (
        f"UPDATE {table} SET {', '.join(assignments)} "
        f"WHERE {' AND '.join(predicates)} "
        f"RETURNING {columns.select_sql()}"
    )
    return Statement(sql, binder.params)


def build_or_filters(
    binder: ParameterBinder,
    columns: ColumnList,
    filters: Sequence[tuple[str, Optional[Any]]],
) -> Optional[str]:
    """
    OR-combine equality filters, skipping those whose value is None.

    Returns:
        Parenthesized predicate, or None when no filter applies
    """
    clauses = [
        f"{columns[name].sql} = {binder.bind_column(columns[name], value)}"
        for name, value in filters
        if value is not None
    ]
    if not clauses:
        return None
    return "(" + " OR ".join(clauses) + ")"


def user_changes(
    update: UserUpdate,
    columns: ColumnList,
    encode_app_metadata: Callable[[Any], str],
    encode_user_metadata: Callable[[Any], str],
) -> list[Change]:
    """
    Collect the ``SetTo`` fields of a user update, in declaration order.

    Timestamps are encoded to microseconds and metadata to JSON text.
    """
    encoders: dict[str, Callable[[Any], Any]] = {
        "app_metadata": encode_app_metadata,
        "user_metadata": encode_user_metadata,
    }
    changes = []
    for f in fields(update):
        tagged = getattr(update, f.name)
        if not is_set(tagged):
            continue
        column = columns[f.name]
        value = tagged.value
        if column.kind is ColumnKind.TIMESTAMP:
            value = optional_to_micros(value)
        elif f.name in encoders:
            value = encoders[f.name](value)
        changes.append(Change(column, value))
    return changes
