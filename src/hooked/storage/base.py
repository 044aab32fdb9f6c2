"""
Base storage interface for the on-device entity store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from hooked.schema.records import (
    Category,
    Material,
    MetadataEntry,
    Note,
    Photo,
    Project,
    Record,
    Session,
    Table,
    Tombstone,
)

# Record class stored in each table
TABLE_MODELS: dict[Table, type[Record]] = {
    Table.PROJECTS: Project,
    Table.MATERIALS: Material,
    Table.SESSIONS: Session,
    Table.NOTES: Note,
    Table.PHOTOS: Photo,
    Table.CATEGORIES: Category,
    Table.DELETIONS: Tombstone,
    Table.METADATA: MetadataEntry,
}

# Secondary indexes per table: index name -> record attribute
TABLE_INDEXES: dict[Table, dict[str, str]] = {
    Table.PROJECTS: {"by-sync": "sync_status", "by-updated": "local_updated_at"},
    Table.MATERIALS: {"by-sync": "sync_status", "by-updated": "local_updated_at"},
    Table.SESSIONS: {"by-project": "project_id", "by-sync": "sync_status"},
    Table.NOTES: {"by-project": "project_id", "by-sync": "sync_status"},
    Table.PHOTOS: {"by-project": "project_id", "by-sync": "sync_status"},
    Table.CATEGORIES: {},
    Table.DELETIONS: {"by-entity-type": "entity_type"},
    Table.METADATA: {},
}

# Every indexed attribute, used for column layouts
INDEXED_ATTRIBUTES: tuple[str, ...] = tuple(
    sorted({attr for indexes in TABLE_INDEXES.values() for attr in indexes.values()})
)


def index_attribute(table: Table, index: str) -> str:
    """Resolve an index name to the attribute it covers."""
    try:
        return TABLE_INDEXES[table][index]
    except KeyError:
        raise ValueError(f"Table {table.value} has no index {index!r}") from None


def index_value(value: Any) -> Any:
    """Normalise a value for index comparison (enums compare by value)."""
    return getattr(value, "value", value)


class BaseStore(ABC):
    """
    Abstract base class for entity store backends.

    Each call is its own transaction: a record is written whole and is
    durable once the call returns. Backends raise StorageUnavailable when
    used before initialize() or when the medium fails.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open the backend (create tables, indexes, etc.)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the backend and release resources."""
        pass

    @abstractmethod
    async def get(self, table: Table, key: str) -> Record | None:
        """Retrieve a record by key."""
        pass

    @abstractmethod
    async def get_all(self, table: Table) -> list[Record]:
        """Retrieve every record of a table."""
        pass

    @abstractmethod
    async def get_all_by_index(self, table: Table, index: str, value: Any) -> list[Record]:
        """Retrieve the records whose indexed attribute equals value."""
        pass

    @abstractmethod
    async def put(self, table: Table, record: Record) -> Record:
        """Insert or replace a record under its storage key."""
        pass

    @abstractmethod
    async def delete(self, table: Table, key: str) -> bool:
        """Delete a record by key. Returns True if deleted, False if not found."""
        pass

    @abstractmethod
    async def clear(self, table: Table) -> None:
        """Remove every record of a table."""
        pass

    async def count(self, table: Table) -> int:
        """Count records of a table. Default implementation loads them all."""
        return len(await self.get_all(table))

    async def clear_all(self) -> None:
        for table in Table:
            await self.clear(table)
