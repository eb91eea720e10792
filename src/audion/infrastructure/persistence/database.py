"""Database session management."""

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from audion.config import Settings

logger = logging.getLogger(__name__)


def _json_serializer(value: Any) -> str:
    # Keep non-ASCII titles readable in the JSON columns (and searchable).
    return json.dumps(value, ensure_ascii=False)


class Database:
    """Database connection and session manager."""

    def __init__(self, settings: Settings) -> None:
        """Initialize database with settings."""
        self.settings = settings
        url = settings.database.url

        engine_kwargs: dict[str, Any] = {
            "echo": settings.database.echo,
            "pool_pre_ping": settings.database.pool_pre_ping,
            "json_serializer": _json_serializer,
        }

        if "sqlite" in url:
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
            # In-memory SQLite lives inside ONE connection - share it across sessions.
            if ":memory:" in url:
                engine_kwargs["poolclass"] = StaticPool

        self._engine = create_async_engine(url, **engine_kwargs)

        if "sqlite" in url:
            self._enable_sqlite_savepoints()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # Hey future me - add_many runs each insert in a SAVEPOINT (session.begin_nested()).
    # The sqlite driver manages BEGIN on its own and breaks SAVEPOINT semantics, so we switch
    # that off and emit BEGIN ourselves. This is the documented SQLAlchemy recipe for
    # pysqlite/aiosqlite - don't remove it or per-item isolation silently stops working.
    def _enable_sqlite_savepoints(self) -> None:
        @event.listens_for(self._engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_conn: Any, _connection_record: Any) -> None:
            dbapi_conn.isolation_level = None

        @event.listens_for(self._engine.sync_engine, "begin")
        def _emit_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN")

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all tables (run at startup; the schema has no migrations)."""
        from audion.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()
