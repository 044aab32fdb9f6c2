"""
Sync orchestrator for the local store.

One pass pushes local changes, then pulls the server's collections and
merges them back:
- Single-flight: a request while a pass runs is skipped, not queued
- Partial-failure isolation: one failing record never aborts the batch
- Tombstones keep deleted records from coming back with a stale pull
- Accumulating counters never go backwards
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, cast

from pydantic import ValidationError

from hooked.errors import AuthExpired, RemoteNotFound, StorageUnavailable, SyncError
from hooked.schema.records import (
    EntityKind,
    Material,
    Note,
    Photo,
    Project,
    Session,
    is_local_id,
    is_server_id,
    spec_for,
    utc_now_iso,
)
from hooked.storage.gateway import MutationGateway
from hooked.sync.merge import (
    local_wins,
    material_payload,
    merge_categories,
    merge_remote,
    note_payload,
    photo_upload,
    project_payload,
    resolve_category_id,
    session_payload,
)
from hooked.sync.remote import RemoteAPI

logger = logging.getLogger(__name__)

PUSH_KEYS = ("project", "material", "session", "note", "photo", "deletion")
PULL_KEYS = ("category", "project", "material", "note", "photo")


class SyncState(str, Enum):
    """State of the orchestrator."""

    IDLE = "idle"
    SYNCING = "syncing"


@dataclass
class SyncResult:
    """Outcome of one sync pass (or of a request that did not run one)."""

    success: bool = True
    pushed: dict[str, int] = field(default_factory=lambda: dict.fromkeys(PUSH_KEYS, 0))
    pulled: dict[str, int] = field(default_factory=lambda: dict.fromkeys(PULL_KEYS, 0))
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    reason: str | None = None
    started_at: str | None = None
    finished_at: str | None = None

    @classmethod
    def skip(cls, reason: str) -> SyncResult:
        return cls(success=False, skipped=True, reason=reason)

    @property
    def total_pushed(self) -> int:
        return sum(self.pushed.values())

    @property
    def total_pulled(self) -> int:
        return sum(self.pulled.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "pushed": dict(self.pushed),
            "pulled": dict(self.pulled),
            "errors": list(self.errors),
            "skipped": self.skipped,
            "reason": self.reason,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


StatusCallback = Callable[[SyncState, "SyncResult | None"], None]


class _PassAborted(Exception):
    """Stops the current pass; the cause is already recorded."""


class SyncOrchestrator:
    """
    Runs push-then-pull passes between the local store and the remote API.

    Usage:
        orchestrator = SyncOrchestrator(gateway, api)
        result = await orchestrator.sync()
        if not result.success:
            print(result.errors)
    """

    def __init__(self, gateway: MutationGateway, api: RemoteAPI):
        self.gateway = gateway
        self.api = api
        self._state = SyncState.IDLE
        self._last_result: SyncResult | None = None
        self._listeners: list[StatusCallback] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state is SyncState.SYNCING

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    def on_status(self, callback: StatusCallback) -> Callable[[], None]:
        """Register a state listener. Returns a callable that removes it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def sync(self) -> SyncResult:
        """Run one pass, or skip it if another pass is running."""
        if self._state is SyncState.SYNCING:
            logger.debug("Sync already running, request skipped")
            return SyncResult.skip("already syncing")

        # Set before the first await so a concurrent call sees it
        self._state = SyncState.SYNCING
        self._notify(None)

        result = SyncResult(started_at=utc_now_iso())
        logger.info("Sync started")
        try:
            await self._run(result)
        finally:
            result.finished_at = utc_now_iso()
            result.success = not result.errors
            self._state = SyncState.IDLE
            self._last_result = result
            self._notify(result)

        logger.info(
            "Sync finished: %d pushed, %d pulled, %d errors",
            result.total_pushed,
            result.total_pulled,
            len(result.errors),
        )
        return result

    async def _run(self, result: SyncResult) -> None:
        confirmed: set[tuple[EntityKind, str]] = set()
        try:
            # Categories first so project pushes can resolve them
            await self._pull_categories(result)

            # Materials before projects: their server ids go into material_ids
            await self._push_materials(result)
            await self._push_projects(result)
            await self._push_sessions(result)
            await self._push_notes(result)
            await self._push_photos(result)
            await self._push_deletions(result, confirmed)

            await self._pull_projects(result, confirmed)
            await self._pull_materials(result, confirmed)

            await self.gateway.set_last_sync_time(self.gateway.clock.now_ms())
        except _PassAborted:
            pass
        except StorageUnavailable as e:
            result.errors.append(f"storage: {e}")
            logger.error("Sync aborted, local store unavailable: %s", e)

    # === Push ===

    async def _push_materials(self, result: SyncResult) -> None:
        kind = EntityKind.MATERIAL
        for material in cast(list[Material], await self.gateway.pending(kind)):
            version = material.local_updated_at
            try:
                if material.is_local_only:
                    created = await self.api.create(kind, material_payload(material))
                    await self.gateway.mark_synced(kind, material.id, created["id"], version)
                else:
                    try:
                        await self.api.update(kind, material.id, material_payload(material))
                    except RemoteNotFound:
                        logger.info("Material %s is gone upstream, left for the pull", material.id)
                        continue
                    await self.gateway.mark_synced(kind, material.id, pushed_version=version)
                result.pushed["material"] += 1
            except SyncError as e:
                self._record_error(result, kind, material.name, e)

    async def _push_projects(self, result: SyncResult) -> None:
        kind = EntityKind.PROJECT
        categories = await self.gateway.categories()
        server_labels = {c.natural_key: c.id for c in categories if is_server_id(c.id)}

        for project in cast(list[Project], await self.gateway.pending(kind)):
            version = project.local_updated_at
            category_id = resolve_category_id(project.category_id, categories, server_labels)
            try:
                if project.is_local_only:
                    payload = project_payload(project, category_id, create=True)
                    created = await self.api.create(kind, payload)
                    await self.gateway.mark_synced(kind, project.id, created["id"], version)
                else:
                    payload = project_payload(project, category_id, create=False)
                    try:
                        await self.api.update(kind, project.id, payload)
                    except RemoteNotFound:
                        logger.info("Project %s is gone upstream, left for the pull", project.id)
                        continue
                    await self.gateway.mark_synced(kind, project.id, pushed_version=version)
                result.pushed["project"] += 1
            except SyncError as e:
                self._record_error(result, kind, project.title, e)

    async def _push_sessions(self, result: SyncResult) -> None:
        kind = EntityKind.SESSION
        for session in cast(list[Session], await self.gateway.pending(kind)):
            # Sessions are append-only on the server
            if not session.is_local_only:
                continue
            if self._awaits_parent(session.project_id):
                logger.debug("Session %s waits for project %s", session.id, session.project_id)
                continue
            try:
                created = await self.api.create(kind, session_payload(session))
                await self.gateway.mark_synced(
                    kind, session.id, created["id"], session.local_updated_at
                )
                result.pushed["session"] += 1
            except SyncError as e:
                self._record_error(result, kind, session.id, e)

    async def _push_notes(self, result: SyncResult) -> None:
        kind = EntityKind.NOTE
        for note in cast(list[Note], await self.gateway.pending(kind)):
            if self._awaits_parent(note.project_id):
                continue
            try:
                payload = note_payload(note)
                saved = await self.api.save_note(payload["project_id"], payload["content"])
                await self.gateway.mark_synced(kind, note.id, saved["id"], note.local_updated_at)
                result.pushed["note"] += 1
            except SyncError as e:
                self._record_error(result, kind, note.project_id, e)

    async def _push_photos(self, result: SyncResult) -> None:
        kind = EntityKind.PHOTO
        for photo in cast(list[Photo], await self.gateway.pending(kind)):
            if self._awaits_parent(photo.project_id):
                continue
            upload = photo_upload(photo)
            if upload is None:
                # Already hosted, nothing to send
                await self.gateway.mark_synced(kind, photo.id)
                continue
            content, file_name, content_type = upload
            try:
                hosted = await self.api.upload_photo(
                    photo.project_id, content, file_name, content_type
                )
            except SyncError as e:
                self._record_error(result, kind, photo.file_name, e)
                continue

            result.pushed["photo"] += 1
            if await self.gateway.get(kind, photo.id) is None:
                # Deleted while uploading
                await self.gateway.tombstone_remote(kind, str(hosted["id"]))
                continue

            # Keep only the server copy, without the payload
            hosted = {"project_id": photo.project_id, **hosted}
            record = self._merge(result, kind, None, hosted)
            if record is not None:
                await self.gateway.put_remote(kind, record)
                if record.id != photo.id:
                    await self.gateway.discard(kind, photo.id)

    async def _push_deletions(
        self, result: SyncResult, confirmed: set[tuple[EntityKind, str]]
    ) -> None:
        for tombstone in await self.gateway.tombstones():
            kind = tombstone.entity_type
            try:
                await self.api.delete(kind, tombstone.entity_id)
            except RemoteNotFound:
                logger.debug("%s %s already gone upstream", kind.value, tombstone.entity_id)
            except SyncError as e:
                self._record_error(result, kind, tombstone.entity_id, e)
                continue
            await self.gateway.remove_tombstone(tombstone)
            # The server may still list it for a moment
            confirmed.add((kind, tombstone.entity_id))
            result.pushed["deletion"] += 1

    # === Pull ===

    async def _pull_categories(self, result: SyncResult) -> None:
        try:
            remote = await self.api.list(EntityKind.CATEGORY)
        except SyncError as e:
            self._record_error(result, EntityKind.CATEGORY, "list", e)
            return

        local = await self.gateway.categories()
        for change in merge_categories(local, remote):
            if change.replaces:
                await self.gateway.replace_category(change.replaces, change.category)
            else:
                await self.gateway.put_category(change.category)
        result.pulled["category"] = len(remote)

    async def _pull_projects(
        self, result: SyncResult, confirmed: set[tuple[EntityKind, str]]
    ) -> None:
        kind = EntityKind.PROJECT
        try:
            remote = await self.api.list(kind)
        except SyncError as e:
            self._record_error(result, kind, "list", e)
            return

        for item in remote:
            if not await self._apply_remote(result, kind, item, confirmed):
                continue
            project_id = str(item["id"])
            await self._pull_photos(result, project_id, confirmed)
            await self._pull_note(result, project_id, confirmed)

    async def _pull_materials(
        self, result: SyncResult, confirmed: set[tuple[EntityKind, str]]
    ) -> None:
        kind = EntityKind.MATERIAL
        try:
            remote = await self.api.list(kind)
        except SyncError as e:
            self._record_error(result, kind, "list", e)
            return
        for item in remote:
            await self._apply_remote(result, kind, item, confirmed)

    async def _pull_photos(
        self, result: SyncResult, project_id: str, confirmed: set[tuple[EntityKind, str]]
    ) -> None:
        kind = EntityKind.PHOTO
        try:
            remote = await self.api.list_photos(project_id)
        except SyncError as e:
            self._record_error(result, kind, f"list for {project_id}", e)
            return

        local = cast(list[Photo], await self.gateway.children(kind, project_id))
        hosted_paths = {p.file_path for p in local if p.file_path}
        for item in remote:
            item = {"project_id": project_id, **item}
            if item.get("file_path") in hosted_paths and not any(
                p.id == item.get("id") for p in local
            ):
                continue
            await self._apply_remote(result, kind, item, confirmed)

    async def _pull_note(
        self, result: SyncResult, project_id: str, confirmed: set[tuple[EntityKind, str]]
    ) -> None:
        kind = EntityKind.NOTE
        try:
            item = await self.api.get_note(project_id)
        except SyncError as e:
            self._record_error(result, kind, project_id, e)
            return
        if item is None:
            return
        item = {"project_id": project_id, **item}

        # One note per project: a local note under another id is the same note
        current = await self.gateway.note_for_project(project_id)
        if current is not None and current.id != item["id"]:
            if await self._is_suppressed(kind, str(item["id"]), confirmed):
                return
            if local_wins(current, item):
                return
            record = self._merge(result, kind, current, item)
            if record is None:
                return
            await self.gateway.put_remote(kind, record)
            await self.gateway.discard(kind, current.id)
            result.pulled["note"] += 1
            return

        await self._apply_remote(result, kind, item, confirmed)

    async def _apply_remote(
        self,
        result: SyncResult,
        kind: EntityKind,
        item: dict[str, Any],
        confirmed: set[tuple[EntityKind, str]],
    ) -> bool:
        """
        Merge one remote record into the store.

        Returns False when the record is unusable or locally deleted.
        """
        if not item.get("id"):
            return False
        record_id = str(item["id"])
        if await self._is_suppressed(kind, record_id, confirmed):
            logger.debug("Ignoring deleted %s %s from pull", kind.value, record_id)
            return False

        local = await self.gateway.get(kind, record_id)
        if local_wins(local, item):
            return True
        record = self._merge(result, kind, local, item)
        if record is None:
            return False
        await self.gateway.put_remote(kind, record)
        result.pulled[kind.value] += 1
        return True

    def _merge(
        self,
        result: SyncResult,
        kind: EntityKind,
        local: Any,
        item: dict[str, Any],
    ) -> Any:
        try:
            return merge_remote(kind, local, item, self.gateway.clock.now_ms())
        except ValidationError as e:
            label = item.get(spec_for(kind).label_field) or item.get("id")
            error = SyncError(f"invalid remote record ({e.error_count()} errors)")
            self._record_error(result, kind, str(label), error)
            return None

    async def _is_suppressed(
        self, kind: EntityKind, record_id: str, confirmed: set[tuple[EntityKind, str]]
    ) -> bool:
        return (kind, record_id) in confirmed or await self.gateway.has_tombstone(kind, record_id)

    # Private helpers
    def _notify(self, result: SyncResult | None) -> None:
        for callback in list(self._listeners):
            try:
                callback(self._state, result)
            except Exception:
                logger.exception("Sync status listener failed")

    @staticmethod
    def _awaits_parent(project_id: str) -> bool:
        """Children of a project the server does not know yet wait a pass."""
        return is_local_id(project_id)

    def _record_error(
        self, result: SyncResult, kind: EntityKind, label: str, error: SyncError
    ) -> None:
        message = f"{kind.value} {label}: {error}"
        result.errors.append(message)
        logger.warning("Sync error: %s", message)
        if isinstance(error, AuthExpired):
            raise _PassAborted() from error

