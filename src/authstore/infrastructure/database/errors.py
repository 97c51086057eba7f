"""
Storage Error Translation

Maps SQLAlchemy/asyncpg failures onto the authstore storage errors.
The asyncpg exception travels as the ``__cause__`` of SQLAlchemy's
adapted DBAPI error and carries ``sqlstate``, ``constraint_name`` and
``detail``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy import exc as sa_exc

from authstore.config.logging_config import get_logger
from authstore.domain.exceptions import (
    ConnectionUnavailableError,
    ConstraintViolationError,
    DatabaseEngineError,
    StorageError,
)

logger = get_logger(__name__)

# SQLSTATE class 08: connection exception; 57P0x: server shutting down
_CONNECTION_SQLSTATE_PREFIXES = ("08", "57P01", "57P02", "57P03")


def _driver_error(error: sa_exc.DBAPIError) -> Any:
    """Innermost driver exception behind a SQLAlchemy error."""
    inner: Any = error.orig
    cause = getattr(inner, "__cause__", None)
    return cause if cause is not None else inner


def _attr(error: Any, *names: str) -> Optional[str]:
    for name in names:
        value = getattr(error, name, None)
        if value:
            return str(value)
    return None


def translate(error: sa_exc.SQLAlchemyError) -> StorageError:
    """Convert a SQLAlchemy error into a storage error."""
    if isinstance(error, sa_exc.DBAPIError):
        driver = _driver_error(error)
        code = _attr(driver, "sqlstate") or _attr(error.orig, "sqlstate", "pgcode")

        if isinstance(error, sa_exc.IntegrityError):
            return ConstraintViolationError(
                _attr(driver, "constraint_name"),
                _attr(driver, "detail") or str(driver),
            )
        if error.connection_invalidated or (code or "").startswith(_CONNECTION_SQLSTATE_PREFIXES):
            return ConnectionUnavailableError(str(driver))
        if isinstance(error, (sa_exc.InterfaceError, sa_exc.OperationalError)) and code is None:
            return ConnectionUnavailableError(str(driver))
        return DatabaseEngineError(code, type(driver).__name__, str(driver))

    if isinstance(error, (sa_exc.TimeoutError, sa_exc.DisconnectionError)):
        return ConnectionUnavailableError(str(error))
    return DatabaseEngineError(None, type(error).__name__, str(error))


@asynccontextmanager
async def translate_errors(operation: str) -> AsyncIterator[None]:
    """
    Re-raise SQLAlchemy and socket errors as storage errors.

    Usage:
        async with translate_errors("create_user"):
            await session.execute(...)
    """
    try:
        yield
    except sa_exc.SQLAlchemyError as e:
        storage_error = translate(e)
        logger.error(
            "Storage operation failed",
            operation=operation,
            error_type=type(storage_error).__name__,
            error=str(storage_error),
        )
        raise storage_error from e
    except OSError as e:
        logger.error("Database unreachable", operation=operation, error=str(e))
        raise ConnectionUnavailableError(str(e)) from e
