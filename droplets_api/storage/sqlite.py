"""Relational store built on ``databases`` and SQLAlchemy Core."""

from pathlib import Path

import databases
import sqlalchemy as sa
from loguru import logger
from sqlalchemy.dialects import sqlite
from sqlalchemy.schema import CreateIndex, CreateTable

from .schema import metadata, now_iso, world_state


class SQLDatabase:
    """SQLite connection holder that owns schema creation."""

    def __init__(self, database_url: str):
        """Initialize the database.

        Args:
            database_url: Database connection URL.
        """
        self.database = databases.Database(database_url)
        self.metadata = metadata

    async def startup(self) -> None:
        """Connect, create tables and seed the world_state singleton."""
        self._ensure_sqlite_directory()
        await self.database.connect()
        await self._create_tables()
        await self._seed_world_state()

    async def shutdown(self) -> None:
        """Close database connection."""
        await self.database.disconnect()

    async def health_check(self) -> bool:
        """Check if database is accessible.

        Returns:
            True if database is healthy, False otherwise.
        """
        try:
            await self.database.execute("SELECT 1")
            return True
        except Exception:  # noqa: BLE001
            logger.exception("Database health check failed")
            return False

    def _ensure_sqlite_directory(self) -> None:
        url = self.database.url
        if url.dialect == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    async def _create_tables(self) -> None:
        """Create tables and indexes if they don't exist."""
        dialect = sqlite.dialect()
        for table in self.metadata.sorted_tables:
            ddl = CreateTable(table, if_not_exists=True).compile(dialect=dialect)
            await self.database.execute(str(ddl))
            for index in table.indexes:
                ddl = CreateIndex(index, if_not_exists=True).compile(dialect=dialect)
                await self.database.execute(str(ddl))

    async def _seed_world_state(self) -> None:
        existing = await self.database.fetch_val(
            sa.select(sa.func.count()).select_from(world_state).where(world_state.c.id == 1)
        )
        if not existing:
            await self.database.execute(
                world_state.insert()
                .prefix_with("OR IGNORE", dialect="sqlite")
                .values(
                    id=1,
                    total_characters=0,
                    total_waters=0,
                    season="spring",
                    last_milestone_reached=0,
                    current_phase="day",
                    updated_at=now_iso(),
                )
            )
            logger.info("Initialized world_state singleton")
