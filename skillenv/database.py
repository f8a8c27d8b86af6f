"""Async SQLAlchemy database setup."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Database:
    """Async database connection manager.

    Provides async session management with automatic transaction handling.
    All database operations should use the session() context manager.
    """

    def __init__(self, database_url: str):
        """Initialize database with connection URL.

        Args:
            database_url: SQLAlchemy database URL. If using sqlite:///, it will
                         be automatically converted to sqlite+aiosqlite:///.
        """
        is_sqlite = database_url.startswith("sqlite")
        if database_url.startswith("sqlite:///"):
            database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

        connect_args = {}
        if is_sqlite:
            # Ledger writes are read-modify-write; wait instead of failing
            # with "database is locked".
            connect_args["timeout"] = 30

        self._engine: AsyncEngine = create_async_engine(
            database_url,
            echo=False,
            connect_args=connect_args,
        )
        self._async_session: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        """Get the async engine instance."""
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope around a series of operations.

        Usage:
            async with db.session() as session:
                session.add(model)
                # commit happens automatically on success
                # rollback happens automatically on exception

        Yields:
            AsyncSession: An async SQLAlchemy session.
        """
        async with self._async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create all tables defined in Base.metadata if they don't exist."""
        async with self._engine.begin() as conn:
            if conn.dialect.name == "sqlite" and ":memory:" not in str(self._engine.url):
                await conn.execute(text("PRAGMA journal_mode=WAL"))
                await conn.execute(text("PRAGMA busy_timeout=30000"))
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections and dispose of the engine."""
        await self._engine.dispose()
