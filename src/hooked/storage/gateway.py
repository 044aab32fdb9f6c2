"""
Mutation gateway - the only write path for application data.

Every create, update and delete lands in the local store first, whatever
the connectivity. The gateway recomputes sync metadata on each write,
records tombstones for deletions the server must learn about, and offers
the bookkeeping primitives the sync engine uses (mark synced, id remap).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, cast

from hooked.schema.records import (
    PROJECT_CHILDREN,
    Category,
    EntityKind,
    LocalClock,
    Material,
    MetadataEntry,
    Note,
    Photo,
    Project,
    RecordPatch,
    Session,
    SyncedRecord,
    SyncStatus,
    Table,
    Tombstone,
    generate_local_id,
    spec_for,
    utc_now_iso,
)
from hooked.storage.base import BaseStore

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "lastSync"


class MutationGateway:
    """
    Read-before-write access to the entity store.

    Usage:
        gateway = MutationGateway(store)

        project = await gateway.create_project(title="Granny square blanket")
        await gateway.save_project(id=project.id, current_row=12)
        await gateway.delete(EntityKind.PROJECT, project.id)
    """

    def __init__(self, store: BaseStore, clock: LocalClock | None = None):
        self._store = store
        self._clock = clock or LocalClock()

    @property
    def store(self) -> BaseStore:
        return self._store

    @property
    def clock(self) -> LocalClock:
        return self._clock

    # === Reads ===

    async def get(self, kind: EntityKind, record_id: str) -> SyncedRecord | None:
        return cast(SyncedRecord | None, await self._store.get(spec_for(kind).table, record_id))

    async def list_all(self, kind: EntityKind) -> list[SyncedRecord]:
        return cast(list[SyncedRecord], await self._store.get_all(spec_for(kind).table))

    async def pending(self, kind: EntityKind) -> list[SyncedRecord]:
        """Records of a kind with changes the server has not acknowledged."""
        records = await self._store.get_all_by_index(
            spec_for(kind).table, "by-sync", SyncStatus.PENDING
        )
        return cast(list[SyncedRecord], records)

    async def children(self, kind: EntityKind, project_id: str) -> list[SyncedRecord]:
        spec = spec_for(kind)
        if spec.parent_field is None:
            raise ValueError(f"{kind.value} records have no owning project")
        records = await self._store.get_all_by_index(spec.table, "by-project", project_id)
        return cast(list[SyncedRecord], records)

    async def note_for_project(self, project_id: str) -> Note | None:
        """The note of a project (one note per project)."""
        notes = await self.children(EntityKind.NOTE, project_id)
        return cast(Note, notes[0]) if notes else None

    # === Saves ===

    async def save(
        self,
        kind: EntityKind,
        partial: Mapping[str, Any] | RecordPatch,
    ) -> SyncedRecord:
        """
        Merge a partial record over the stored one and write it.

        Fields the caller omits keep their stored value (or the record
        default on first write). Any local edit makes the record pending
        unless the caller states a sync status explicitly, which only
        server imports do.
        """
        spec = spec_for(kind)
        if isinstance(partial, spec.patch_cls):
            patch = partial
        else:
            patch = spec.patch_cls.model_validate(dict(partial))

        updates = patch.model_dump(exclude_unset=True)
        record_id: str | None = updates.pop("id", None)
        explicit_status: SyncStatus | None = updates.pop("sync_status", None)
        explicit_local: bool | None = updates.pop("is_local_only", None)

        # Drop None for fields that cannot hold it
        updates = {
            name: value
            for name, value in updates.items()
            if value is not None or spec.record_cls.model_fields[name].default is None
        }

        if record_id is None and kind is EntityKind.NOTE and updates.get("project_id"):
            current = await self.note_for_project(updates["project_id"])
            if current is not None:
                record_id = current.id

        existing = await self.get(kind, record_id) if record_id else None

        if explicit_local is not None:
            local_only = explicit_local
        elif explicit_status is SyncStatus.SYNCED:
            local_only = False
        elif existing is not None:
            local_only = existing.is_local_only
        else:
            local_only = True

        status = explicit_status or SyncStatus.PENDING
        if local_only:
            status = SyncStatus.PENDING

        meta: dict[str, Any] = {
            "sync_status": status,
            "is_local_only": local_only,
            "local_updated_at": self._clock.now_ms(),
        }
        if spec.stamps_updated_at:
            meta["updated_at"] = utc_now_iso()

        if existing is not None:
            updates.pop("created_at", None)
            data = {**existing.model_dump(), **updates, **meta}
        else:
            data = {**updates, **meta, "id": record_id or generate_local_id()}

        record = spec.record_cls.model_validate(data)
        await self._store.put(spec.table, record)
        logger.debug(
            "Saved %s %s (%s)", kind.value, record.id, record.sync_status.value
        )
        return record

    async def save_project(self, **fields: Any) -> Project:
        return cast(Project, await self.save(EntityKind.PROJECT, fields))

    async def save_material(self, **fields: Any) -> Material:
        return cast(Material, await self.save(EntityKind.MATERIAL, fields))

    async def save_session(self, **fields: Any) -> Session:
        return cast(Session, await self.save(EntityKind.SESSION, fields))

    async def save_note(self, **fields: Any) -> Note:
        return cast(Note, await self.save(EntityKind.NOTE, fields))

    async def save_photo(self, **fields: Any) -> Photo:
        return cast(Photo, await self.save(EntityKind.PHOTO, fields))

    async def create_project(self, title: str, **fields: Any) -> Project:
        return await self.save_project(id=generate_local_id(), title=title, **fields)

    async def create_material(self, name: str, **fields: Any) -> Material:
        return await self.save_material(id=generate_local_id(), name=name, **fields)

    async def create_session(self, project_id: str, **fields: Any) -> Session:
        return await self.save_session(id=generate_local_id(), project_id=project_id, **fields)

    async def add_photo(
        self,
        project_id: str,
        data: bytes,
        file_name: str = "photo.jpg",
        content_type: str = "image/jpeg",
    ) -> Photo:
        """Keep a photo locally until it can be uploaded."""
        return await self.save_photo(
            id=generate_local_id(),
            project_id=project_id,
            content=Photo.encode_payload(data),
            file_name=file_name,
            content_type=content_type,
        )

    # === Deletes ===

    async def delete(self, kind: EntityKind, record_id: str) -> bool:
        """
        Delete a record, leaving a tombstone if the server knows it.

        Deleting a project also removes its sessions, notes and photos.
        Those children only get their own tombstones when the project did
        not, since the server drops them along with the project.
        """
        existing = await self.get(kind, record_id)
        if existing is None:
            return False

        tombstoned = await self._remove(kind, existing, tombstone=not existing.is_local_only)

        if kind is EntityKind.PROJECT:
            for child_kind in PROJECT_CHILDREN:
                for child in await self.children(child_kind, record_id):
                    await self._remove(
                        child_kind,
                        child,
                        tombstone=not child.is_local_only and not tombstoned,
                    )

        logger.info("Deleted %s %s", kind.value, record_id)
        return True

    async def _remove(self, kind: EntityKind, record: SyncedRecord, tombstone: bool) -> bool:
        if tombstone:
            marker = Tombstone.for_entity(kind, record.id, self._clock.now_ms())
            await self._store.put(Table.DELETIONS, marker)
        await self._store.delete(spec_for(kind).table, record.id)
        return tombstone

    # === Tombstones ===

    async def tombstones(self, kind: EntityKind | None = None) -> list[Tombstone]:
        if kind is None:
            records = await self._store.get_all(Table.DELETIONS)
        else:
            records = await self._store.get_all_by_index(Table.DELETIONS, "by-entity-type", kind)
        return cast(list[Tombstone], records)

    async def has_tombstone(self, kind: EntityKind, entity_id: str) -> bool:
        return await self._store.get(Table.DELETIONS, Tombstone.key_for(kind, entity_id)) is not None

    async def tombstone_remote(self, kind: EntityKind, server_id: str) -> Tombstone:
        """Queue the deletion of a server record that has no local row."""
        marker = Tombstone.for_entity(kind, server_id, self._clock.now_ms())
        await self._store.put(Table.DELETIONS, marker)
        logger.info("%s %s was deleted locally during its push", kind.value, server_id)
        return marker

    async def remove_tombstone(self, tombstone: Tombstone) -> bool:
        return await self._store.delete(Table.DELETIONS, tombstone.storage_key())

    # === Sync bookkeeping ===

    async def mark_synced(
        self,
        kind: EntityKind,
        record_id: str,
        server_id: str | None = None,
        pushed_version: int | None = None,
    ) -> SyncedRecord | None:
        """
        Record that the server acknowledged a push.

        pushed_version is the local_updated_at of the copy that was sent.
        If the record was edited again while the request was in flight it
        stays pending, so that edit is pushed on the next pass. If it was
        deleted meanwhile, the new server copy gets a tombstone instead.
        """
        record = await self.get(kind, record_id)
        if record is None:
            if server_id and server_id != record_id:
                await self.tombstone_remote(kind, server_id)
            return None

        edited_since = pushed_version is not None and record.local_updated_at > pushed_version
        status = SyncStatus.PENDING if edited_since else SyncStatus.SYNCED
        record = record.model_copy(update={"sync_status": status, "is_local_only": False})

        if server_id and server_id != record_id:
            return await self._rekey(kind, record, server_id)

        await self._store.put(spec_for(kind).table, record)
        return record

    async def remap_id(self, kind: EntityKind, old_id: str, new_id: str) -> SyncedRecord | None:
        """Move a record to a new id and rewrite every reference to it."""
        record = await self.get(kind, old_id)
        if record is None:
            return None
        return await self._rekey(kind, record, new_id)

    async def put_remote(self, kind: EntityKind, record: SyncedRecord) -> SyncedRecord:
        """Write a record produced by a pull merge as-is."""
        await self._store.put(spec_for(kind).table, record)
        return record

    async def discard(self, kind: EntityKind, record_id: str) -> bool:
        """Drop a row superseded by its server copy. No tombstone, no cascade."""
        return await self._store.delete(spec_for(kind).table, record_id)

    async def _rekey(self, kind: EntityKind, record: SyncedRecord, new_id: str) -> SyncedRecord:
        old_id = record.id
        moved = record.model_copy(update={"id": new_id})
        table = spec_for(kind).table
        await self._store.put(table, moved)
        await self._store.delete(table, old_id)
        rewritten = await self._rewrite_references(kind, old_id, new_id)
        logger.info(
            "Remapped %s %s -> %s (%d references)", kind.value, old_id, new_id, rewritten
        )
        return moved

    async def _rewrite_references(self, kind: EntityKind, old_id: str, new_id: str) -> int:
        """
        Point dependent records at a remapped id.

        Dependents keep their own sync status: the remap is bookkeeping,
        not a user edit.
        """
        count = 0
        if kind is EntityKind.PROJECT:
            for child_kind in PROJECT_CHILDREN:
                for child in await self.children(child_kind, old_id):
                    await self._store.put(
                        spec_for(child_kind).table,
                        child.model_copy(update={"project_id": new_id}),
                    )
                    count += 1
        elif kind is EntityKind.MATERIAL:
            for project in cast(list[Project], await self.list_all(EntityKind.PROJECT)):
                if old_id in project.material_ids:
                    material_ids = [new_id if m == old_id else m for m in project.material_ids]
                    await self._store.put(
                        Table.PROJECTS, project.model_copy(update={"material_ids": material_ids})
                    )
                    count += 1
        return count

    # === Categories ===

    async def categories(self) -> list[Category]:
        return cast(list[Category], await self._store.get_all(Table.CATEGORIES))

    async def put_category(self, category: Category) -> Category:
        await self._store.put(Table.CATEGORIES, category)
        return category

    async def replace_category(self, old_id: str, category: Category) -> int:
        """Swap a category for one with another id, repointing projects."""
        await self._store.put(Table.CATEGORIES, category)
        if old_id == category.id:
            return 0
        await self._store.delete(Table.CATEGORIES, old_id)

        count = 0
        for project in cast(list[Project], await self.list_all(EntityKind.PROJECT)):
            if project.category_id == old_id:
                await self._store.put(
                    Table.PROJECTS, project.model_copy(update={"category_id": category.id})
                )
                count += 1
        logger.info("Category %s -> %s (%d projects)", old_id, category.id, count)
        return count

    # === Metadata ===

    async def get_metadata(self, key: str, default: Any = None) -> Any:
        entry = await self._store.get(Table.METADATA, key)
        return cast(MetadataEntry, entry).value if entry else default

    async def set_metadata(self, key: str, value: Any) -> None:
        await self._store.put(Table.METADATA, MetadataEntry(key=key, value=value))

    async def last_sync_time(self) -> int | None:
        return await self.get_metadata(LAST_SYNC_KEY)

    async def set_last_sync_time(self, time_ms: int) -> None:
        await self.set_metadata(LAST_SYNC_KEY, time_ms)

    # === Maintenance ===

    async def clear_all(self) -> None:
        """Full local reset."""
        await self._store.clear_all()
        logger.info("All local data cleared")

    async def summary(self) -> dict[str, Any]:
        """Counts of stored and pending records per kind."""
        kinds = {}
        for kind in (
            EntityKind.PROJECT,
            EntityKind.MATERIAL,
            EntityKind.SESSION,
            EntityKind.NOTE,
            EntityKind.PHOTO,
        ):
            table = spec_for(kind).table
            kinds[kind.value] = {
                "total": await self._store.count(table),
                "pending": len(await self.pending(kind)),
            }
        return {
            "kinds": kinds,
            "categories": await self._store.count(Table.CATEGORIES),
            "tombstones": await self._store.count(Table.DELETIONS),
            "last_sync": await self.last_sync_time(),
        }
