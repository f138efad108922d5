"""Database utilities for the AnimeHub service."""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, event, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base with consistent naming conventions."""

    metadata = MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the async engine and hands out sessions.

    SQLite connections get foreign key enforcement switched on so the
    ``ON DELETE`` rules declared on the models apply there as well.
    """

    def __init__(self, database_url: str):
        url = make_url(database_url)
        self.is_sqlite = url.get_backend_name() == "sqlite"
        engine_options = {} if self.is_sqlite else {"pool_pre_ping": True}
        self._engine: AsyncEngine = create_async_engine(url, **engine_options)
        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    async def create_all(self) -> None:
        """Create missing tables and columns."""

        # Register every mapped class on the metadata before creating tables.
        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection) -> None:
        """Add report columns missing from databases created before they existed."""

        inspector = inspect(sync_connection)
        if "reports" not in inspector.get_table_names():
            return
        existing_columns = {column["name"] for column in inspector.get_columns("reports")}

        def _ensure_column(name: str, ddl: str, init_sql: str | None = None) -> None:
            if name in existing_columns:
                return
            logger.info("Adding missing column reports.%s", name)
            sync_connection.execute(text(ddl))
            if init_sql:
                sync_connection.execute(text(init_sql))
            existing_columns.add(name)

        _ensure_column(
            "page_path",
            "ALTER TABLE reports ADD COLUMN page_path VARCHAR(1024) DEFAULT ''",
            "UPDATE reports SET page_path = '' WHERE page_path IS NULL",
        )
        _ensure_column(
            "status",
            "ALTER TABLE reports ADD COLUMN status VARCHAR(32) DEFAULT 'new'",
            "UPDATE reports SET status = 'new' WHERE status IS NULL",
        )

    async def dispose(self) -> None:
        await self._engine.dispose()

