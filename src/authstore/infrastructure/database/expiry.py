"""
Lazy-Expiry Read Path

Session, cache and token reads compute an ``expired`` flag in the same
statement that fetches the row, so the decision is made atomically with
the read. A matched row is one of:

- absent: nothing matched -> NotFoundError
- expired: expiry set and passed -> NotFoundError, plus a detached purge
- valid: decoded and returned

Purges run as unsupervised background tasks. The reader never awaits
them and their failures are only logged.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from authstore.config.logging_config import get_logger
from authstore.domain.exceptions import MultipleRowsError, NotFoundError

logger = get_logger(__name__)

T = TypeVar("T")

Cleanup = Callable[[], Awaitable[Any]]


def expired_flag_sql(expires_at_sql: str = '"expires_at"') -> str:
    """Boolean select expression appended after the canonical columns."""
    return f"({expires_at_sql} IS NOT NULL AND {expires_at_sql} <= now()) AS expired"


class ExpiryReaper:
    """
    Runs cleanup coroutines detached from the reads that triggered them.

    Tasks are referenced until they finish so the event loop cannot
    drop them mid-flight.

    Usage:
        reaper = ExpiryReaper()
        reaper.spawn(lambda: repo.purge(id), entity="session")
        ...
        await reaper.drain()  # on shutdown
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """Number of cleanups still running."""
        return len(self._tasks)

    def spawn(self, cleanup: Cleanup, *, entity: str) -> asyncio.Task[Any]:
        """Start ``cleanup`` in the background and return immediately."""
        task = asyncio.create_task(self._run(cleanup, entity))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every running cleanup to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    async def _run(cleanup: Cleanup, entity: str) -> None:
        try:
            await cleanup()
            logger.debug("Expired row purged", entity=entity)
        except Exception as e:
            logger.warning(
                "Expired row purge failed",
                entity=entity,
                error_type=type(e).__name__,
                error=str(e),
            )


def resolve_expiring(
    rows: Sequence[Sequence[Any]],
    decode: Callable[[Sequence[Any]], T],
    *,
    entity: str,
    reaper: Optional[ExpiryReaper] = None,
    cleanup: Optional[Cleanup] = None,
) -> T:
    """
    Resolve rows fetched with a trailing ``expired`` column.

    Args:
        rows: Fetched rows; the last column of each is the expired flag
        decode: Decoder applied to the canonical columns of a valid row
        entity: Entity name used in errors and logs
        reaper: Reaper that runs ``cleanup`` for expired rows
        cleanup: Purge of the expired row; omitted for entities kept for audit

    Returns:
        The decoded record

    Raises:
        NotFoundError: If the row is absent or expired
        MultipleRowsError: If more than one row matched
    """
    if not rows:
        raise NotFoundError(entity)
    if len(rows) > 1:
        raise MultipleRowsError(entity, len(rows))

    row = rows[0]
    *columns, expired = row
    if expired:
        if reaper is not None and cleanup is not None:
            reaper.spawn(cleanup, entity=entity)
        raise NotFoundError(entity, "expired")
    return decode(columns)
