"""
Database Connection Management

Async PostgreSQL connection with:
- Connection pooling
- Graceful shutdown
- Transaction management

SECURITY: Connection strings contain credentials and must
never be logged.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authstore.config import Settings, get_settings
from authstore.config.logging_config import get_logger

logger = get_logger(__name__)


class DatabaseManager:
    """
    Manages database connections and sessions.

    Provides connection pooling and lifecycle management
    for the storage driver.

    Usage:
        db = DatabaseManager(settings)
        await db.initialize()
        async with db.session() as session:
            # use session
        await db.close()
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize database manager (connection not established)."""
        self._settings = settings or get_settings()
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """
        Initialize database engine and session factory.

        Called once by the driver on connect.
        """
        database = self._settings.database

        self._engine = create_async_engine(
            database.async_url,
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
            echo=self._settings.debug,
        )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        self._initialized = True
        logger.info("Database connection pool initialized")

    async def close(self) -> None:
        """Dispose of the pool and its connections."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._initialized = False
            logger.info("Database connections closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session with automatic cleanup.

        Commits when the block exits cleanly, rolls back otherwise.

        Usage:
            async with db.session() as session:
                result = await session.execute(...)

        Yields:
            AsyncSession: Database session
        """
        if not self._session_factory:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @property
    def is_initialized(self) -> bool:
        """Check if database is initialized."""
        return self._initialized
