"""Database session management."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase

from workdesk.db.models import ALL_MODELS, database_proxy


class RowSqliteDatabase(SqliteExtDatabase):
    """SQLite database subclass that configures the row factory for dict-like access."""

    def _connect(self) -> sqlite3.Connection:
        conn = super()._connect()
        conn.row_factory = sqlite3.Row
        return conn


@dataclass
class DatabaseSessionManager:
    """Peewee-backed database session manager.

    Attributes:
        path: Path to the SQLite database file
    """

    path: str
    _logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _database: peewee.SqliteDatabase = field(init=False)

    def __post_init__(self) -> None:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._database = RowSqliteDatabase(
            self.path,
            pragmas={
                "journal_mode": "wal",
                "synchronous": "normal",
            },
            check_same_thread=False,
        )
        database_proxy.initialize(self._database)

    @property
    def database(self) -> peewee.SqliteDatabase:
        """Access the underlying Peewee database instance."""
        return self._database

    def connection_context(self) -> Any:
        """Return a connection context manager."""
        return self._database.connection_context()

    def migrate(self) -> None:
        """Create tables."""
        with self._database.connection_context(), self._database.bind_ctx(ALL_MODELS):
            self._database.create_tables(ALL_MODELS, safe=True)
        self._logger.info("db_migrated", extra={"path": self.path})

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()
