# provisioning/services/database_service.py
"""
Database service for async SQLAlchemy session management.

Provides the service object that owns the engine and session factory used by
every store. SQLite (aiosqlite) is supported for development and tests,
PostgreSQL (asyncpg) for deployments.

Usage:
    from provisioning.services.database_service import database_service

    # Get async session (context manager)
    async with database_service.get_session() as session:
        result = await session.execute(select(Freelancer).where(Freelancer.id == fid))
        freelancer = result.scalar_one_or_none()

    # Initialize database (create tables)
    await database_service.init_db()

    # Health check
    health = await database_service.health_check()

Error handling:
    Any SQLAlchemy error raised inside get_session() rolls the session back and
    is re-raised as PersistenceError, so callers see one error type for
    "the store failed" regardless of driver.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import settings
from ..database.base import Base
from ..exceptions import PersistenceError


class DatabaseService:
    """
    Database service for managing async SQLAlchemy sessions.

    Attributes:
        _engine: Async SQLAlchemy engine
        _session_factory: Async session factory
        _logger: Logger instance

    Methods:
        get_session(): Get async database session (context manager)
        init_db(): Initialize database (create all tables)
        health_check(): Check database connectivity
        close(): Close database engine and connections
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize database service.

        Args:
            database_url: Overrides settings.database_url (used by tests)
        """
        self._logger = logging.getLogger("provisioning.database")
        self._database_url = database_url or settings.database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._initialize_engine()

    @property
    def database_url(self) -> str:
        return self._database_url

    def _initialize_engine(self) -> None:
        """
        Initialize database engine based on the configured URL.

        SQLite Configuration:
            - Uses aiosqlite async driver
            - check_same_thread=False for async support
            - Creates data directory if needed

        PostgreSQL Configuration:
            - Uses asyncpg async driver
            - Connection pooling from settings
            - Pool pre-ping for connection health
        """
        database_url = self._database_url
        self._logger.info(f"Initializing database: {database_url.split('@')[-1].split('?')[0]}")

        if database_url.startswith("sqlite"):
            if ":///" in database_url:
                db_path = database_url.split("///")[1].split("?")[0]
                db_dir = os.path.dirname(db_path)
                if db_dir and db_path != ":memory:" and not os.path.exists(db_dir):
                    os.makedirs(db_dir, exist_ok=True)
                    self._logger.info(f"Created database directory: {db_dir}")

            self._engine = create_async_engine(
                database_url,
                connect_args={"check_same_thread": False},
                pool_pre_ping=True,
                echo=settings.sql_echo,
            )
            self._logger.info("Using SQLite database (development mode)")
        else:
            self._engine = create_async_engine(
                database_url,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=True,
                pool_recycle=settings.db_pool_recycle,
                echo=settings.sql_echo,
            )
            self._logger.info(
                f"Using PostgreSQL database (pool_size={settings.db_pool_size}, "
                f"max_overflow={settings.db_max_overflow})"
            )

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get async database session as context manager.

        Commits on success and rolls back on error.

        Yields:
            AsyncSession: Async database session

        Raises:
            RuntimeError: If database is not initialized
            PersistenceError: On any SQLAlchemy error (after rollback)
        """
        if not self._session_factory:
            raise RuntimeError("Database not initialized")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                self._logger.error(f"Database operation failed: {e}")
                raise PersistenceError(f"Record store unavailable: {e}") from e
            except BaseException:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """
        Create all tables defined in SQLAlchemy models if they don't exist.

        Safe to call multiple times.
        """
        if not self._engine:
            raise RuntimeError("Database engine not initialized")

        self._logger.info("Creating database tables...")

        async with self._engine.begin() as conn:
            # Import all models to ensure they're registered with Base
            from ..database import models  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)

        self._logger.info("Database tables created successfully")

    async def health_check(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict with status ("healthy"/"unhealthy"), database_type and error (if any)
        """
        db_type = "sqlite" if self._database_url.startswith("sqlite") else "postgresql"
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "healthy", "database_type": db_type}
        except Exception as e:
            self._logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "database_type": db_type, "error": str(e)}

    async def close(self) -> None:
        """Dispose the engine and close pooled connections."""
        if self._engine:
            await self._engine.dispose()
            self._logger.info("Database connections closed")


database_service = DatabaseService()
