"""
SQLite store for the on-device entity tables.

Portable single-file database, one table per entity kind. Records are kept
whole as JSON documents; indexed attributes are mirrored into columns.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any

from hooked.errors import StorageUnavailable
from hooked.schema.records import Record, Table
from hooked.storage.base import (
    TABLE_INDEXES,
    TABLE_MODELS,
    BaseStore,
    index_attribute,
    index_value,
)

logger = logging.getLogger(__name__)


class SQLiteStore(BaseStore):
    """
    SQLite-based entity store.

    Features:
    - Human-inspectable database
    - ACID writes, committed before each call returns
    - Secondary indexes as real SQLite indexes
    - WAL journal
    """

    def __init__(self, db_path: str | Path):
        self._db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Open the database and create tables and indexes."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")

            for table in Table:
                columns = "".join(f", {attr}" for attr in TABLE_INDEXES[table].values())
                self._conn.execute(
                    f'CREATE TABLE IF NOT EXISTS "{table.value}" '
                    f"(key TEXT PRIMARY KEY{columns}, data TEXT NOT NULL)"
                )
                for attr in TABLE_INDEXES[table].values():
                    self._conn.execute(
                        f'CREATE INDEX IF NOT EXISTS "idx_{table.value}_{attr}" '
                        f'ON "{table.value}"({attr})'
                    )
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            self._conn = None
            raise StorageUnavailable(f"Cannot open {self._db_path}: {e}") from e

        logger.debug("Opened SQLite store at %s", self._db_path)

    async def close(self) -> None:
        """Close SQLite connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    async def get(self, table: Table, key: str) -> Record | None:
        rows = self._query(f'SELECT data FROM "{table.value}" WHERE key = ?', (key,))
        return self._row_to_record(table, rows[0]) if rows else None

    async def get_all(self, table: Table) -> list[Record]:
        rows = self._query(f'SELECT data FROM "{table.value}" ORDER BY key')
        return [self._row_to_record(table, row) for row in rows]

    async def get_all_by_index(self, table: Table, index: str, value: Any) -> list[Record]:
        attr = index_attribute(table, index)
        rows = self._query(
            f'SELECT data FROM "{table.value}" WHERE {attr} = ? ORDER BY key',
            (index_value(value),),
        )
        return [self._row_to_record(table, row) for row in rows]

    async def put(self, table: Table, record: Record) -> Record:
        if not isinstance(record, TABLE_MODELS[table]):
            raise TypeError(f"{type(record).__name__} cannot be stored in {table.value}")

        attrs = list(TABLE_INDEXES[table].values())
        columns = ", ".join(["key", *attrs, "data"])
        placeholders = ", ".join("?" for _ in range(len(attrs) + 2))
        params = (
            record.storage_key(),
            *(index_value(getattr(record, attr)) for attr in attrs),
            record.model_dump_json(),
        )

        async with self._lock:
            self._execute(
                f'INSERT OR REPLACE INTO "{table.value}" ({columns}) VALUES ({placeholders})',
                params,
            )
        logger.debug("put %s/%s", table.value, record.storage_key())
        return record

    async def delete(self, table: Table, key: str) -> bool:
        async with self._lock:
            cursor = self._execute(f'DELETE FROM "{table.value}" WHERE key = ?', (key,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug("delete %s/%s", table.value, key)
        return deleted

    async def clear(self, table: Table) -> None:
        async with self._lock:
            self._execute(f'DELETE FROM "{table.value}"')

    async def count(self, table: Table) -> int:
        rows = self._query(f'SELECT COUNT(*) AS n FROM "{table.value}"')
        return int(rows[0]["n"])

    # Private methods
    def _connection(self) -> sqlite3.Connection:
        if not self._conn:
            raise StorageUnavailable("Store not initialized")
        return self._conn

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._connection()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(str(e)) from e

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        conn = self._connection()
        try:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageUnavailable(str(e)) from e

    def _row_to_record(self, table: Table, row: sqlite3.Row) -> Record:
        return TABLE_MODELS[table].model_validate_json(row["data"])
