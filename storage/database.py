"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages the async engine and sessions.

- Provides connection pooling
- Manages database sessions
- Handles connection lifecycle
- Health checks

============================================================
DATABASE REQUIREMENTS
============================================================
- PostgreSQL via asyncpg in production
- SQLite via aiosqlite for tests and local runs
- SQLAlchemy 2.0 async ORM

============================================================
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from storage.models.base import Base


@dataclass
class DatabaseConfig:
    """Connection settings."""

    url: str = "postgresql+asyncpg://localhost:5432/signals"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout_seconds: int = 30
    pool_recycle_seconds: int = 1800
    echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def safe_url(self) -> str:
        """URL without credentials, for logs."""
        return self.url.split("@")[-1]

    @classmethod
    def for_testing(cls) -> "DatabaseConfig":
        return cls(url="sqlite+aiosqlite://")


class Database:
    """
    Async engine plus session factory.

    Usage:
        db = Database(DatabaseConfig(url=...))
        db.connect()
        async with db.session() as session:
            ...
        await db.disconnect()
    """

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or DatabaseConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    def connect(self) -> None:
        """Create the engine and session factory (idempotent)."""
        if self._engine is not None:
            return

        self._logger.info(f"Creating database engine for: {self._config.safe_url()}")

        if self._config.is_sqlite:
            # One shared connection so in-memory databases survive across sessions
            engine = create_async_engine(
                self._config.url,
                echo=self._config.echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_async_engine(
                self._config.url,
                echo=self._config.echo,
                pool_size=self._config.pool_size,
                max_overflow=self._config.max_overflow,
                pool_timeout=self._config.pool_timeout_seconds,
                pool_recycle=self._config.pool_recycle_seconds,
                pool_pre_ping=True,
            )

        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._logger.info("Database engine disposed")

    def get_engine(self) -> AsyncEngine:
        self.connect()
        assert self._engine is not None
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Transactional session scope.

        Commits if the block completes, rolls back on ANY exception
        and re-raises it.
        """
        self.connect()
        assert self._session_factory is not None
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create every table that does not exist yet."""
        async with self.get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._logger.info("Database schema ensured")

    async def drop_all(self) -> None:
        async with self.get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def health_check(self) -> bool:
        """True when a trivial query succeeds."""
        try:
            async with self.get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            self._logger.error(f"Database health check failed: {e}")
            return False


__all__ = ["Database", "DatabaseConfig"]
