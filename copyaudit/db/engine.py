# =============================================================================
# Database Handle — Async Engine & Session Lifecycle
# =============================================================================
#
# One `Database` per process, created at startup and passed to whatever
# needs it (stores, usage logger, auth). Nothing in the services layer
# reaches for a module-level engine.
#
#   API process:    main.py lifespan → Database(settings.database_url)
#                   → app.state.db
#   Celery worker:  each task run → Database(..., null_pool=True)
#                   (asyncio.run creates a fresh event loop per task, and
#                   pooled asyncpg connections cannot cross event loops)
#
# SESSION LIFECYCLE (`async with db.session() as session:`):
#   create → yield → commit (or rollback on error) → close
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


class Database:
    """
    Lazily-connected async SQLAlchemy engine plus session factory.

    `connect()` is idempotent; `is_ready` reports whether it has run.
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        null_pool: bool = False,
    ) -> None:
        self._url = url
        self._echo = echo
        self._null_pool = null_pool
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_ready(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database.connect() has not been called")
        return self._engine

    def connect(self) -> None:
        """Create the engine and session factory once."""
        if self._engine is not None:
            return

        engine_kwargs: dict = {"echo": self._echo}
        if self._null_pool:
            engine_kwargs["poolclass"] = NullPool
        else:
            engine_kwargs["pool_size"] = 5
            engine_kwargs["max_overflow"] = 10

        self._engine = create_async_engine(self._url, **engine_kwargs)

        # expire_on_commit=False: loaded attributes stay readable after
        # commit without a new query (which would fail outside the session).
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine created (null_pool=%s)", self._null_pool)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session: commits on success, rolls back on error."""
        self.connect()
        assert self._session_factory is not None
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create the pgvector extension and all tables if missing."""
        from copyaudit.db.models import Base

        self.connect()
        async with self.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

