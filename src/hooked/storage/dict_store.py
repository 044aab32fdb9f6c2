"""
In-memory dictionary store.

Fast, ephemeral storage used for tests and throwaway sessions.
"""

from __future__ import annotations

import logging
from collections import defaultdict
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


class DictStore(BaseStore):
    """
    In-memory dictionary-based entity store.

    Features:
    - O(1) access by key
    - Maintained secondary indexes (no full-table scans for index queries)
    - Records are copied in and out, callers never share stored state
    - No persistence (ephemeral)
    """

    def __init__(self) -> None:
        self._tables: dict[Table, dict[str, Record]] = {table: {} for table in Table}
        # (table, attribute) -> indexed value -> keys
        self._indexes: dict[tuple[Table, str], dict[Any, set[str]]] = {
            (table, attr): defaultdict(set)
            for table, indexes in TABLE_INDEXES.items()
            for attr in indexes.values()
        }
        self._open = False

    async def initialize(self) -> None:
        self._open = True

    async def close(self) -> None:
        self._open = False

    async def get(self, table: Table, key: str) -> Record | None:
        self._check_open()
        record = self._tables[table].get(key)
        return record.model_copy(deep=True) if record else None

    async def get_all(self, table: Table) -> list[Record]:
        self._check_open()
        return [r.model_copy(deep=True) for r in self._tables[table].values()]

    async def get_all_by_index(self, table: Table, index: str, value: Any) -> list[Record]:
        self._check_open()
        attr = index_attribute(table, index)
        keys = self._indexes[(table, attr)].get(index_value(value), set())
        rows = self._tables[table]
        return [rows[k].model_copy(deep=True) for k in sorted(keys) if k in rows]

    async def put(self, table: Table, record: Record) -> Record:
        self._check_open()
        if not isinstance(record, TABLE_MODELS[table]):
            raise TypeError(f"{type(record).__name__} cannot be stored in {table.value}")

        key = record.storage_key()
        previous = self._tables[table].get(key)
        if previous is not None:
            self._unindex(table, key, previous)

        stored = record.model_copy(deep=True)
        self._tables[table][key] = stored
        self._index(table, key, stored)
        logger.debug("put %s/%s", table.value, key)
        return record

    async def delete(self, table: Table, key: str) -> bool:
        self._check_open()
        record = self._tables[table].pop(key, None)
        if record is None:
            return False
        self._unindex(table, key, record)
        logger.debug("delete %s/%s", table.value, key)
        return True

    async def clear(self, table: Table) -> None:
        self._check_open()
        self._tables[table].clear()
        for attr in TABLE_INDEXES[table].values():
            self._indexes[(table, attr)].clear()

    async def count(self, table: Table) -> int:
        self._check_open()
        return len(self._tables[table])

    # Private methods
    def _check_open(self) -> None:
        if not self._open:
            raise StorageUnavailable("Store not initialized")

    def _index(self, table: Table, key: str, record: Record) -> None:
        for attr in TABLE_INDEXES[table].values():
            self._indexes[(table, attr)][index_value(getattr(record, attr))].add(key)

    def _unindex(self, table: Table, key: str, record: Record) -> None:
        for attr in TABLE_INDEXES[table].values():
            bucket = self._indexes[(table, attr)].get(index_value(getattr(record, attr)))
            if bucket is not None:
                bucket.discard(key)
