"""
Client facade wiring the store, the sync engine and its triggers.

Usage:
    async with HookedClient(HookedConfig.from_env()) as client:
        project = await client.create_project("Raglan sweater")
        await client.increment_row(project.id)
        result = await client.sync_now()
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, cast

import httpx

from hooked.config import HookedConfig
from hooked.errors import SyncError
from hooked.schema.records import (
    Category,
    EntityKind,
    Material,
    Note,
    Photo,
    Project,
    Session,
    parse_timestamp_ms,
    utc_now_iso,
)
from hooked.storage.base import BaseStore
from hooked.storage.defaults import seed_default_categories
from hooked.storage.gateway import MutationGateway
from hooked.storage.sqlite_store import SQLiteStore
from hooked.sync.credentials import CredentialStore
from hooked.sync.orchestrator import SyncOrchestrator, SyncResult
from hooked.sync.remote import RemoteAPI
from hooked.sync.triggers import ConnectivityMonitor, SyncGate, SyncTriggers

logger = logging.getLogger(__name__)


def week_start_ms(now: datetime | None = None) -> int:
    """Epoch ms of the most recent Sunday 00:00, local time."""
    now = (now or datetime.now()).astimezone()
    days_since_sunday = (now.weekday() + 1) % 7
    start = (now - timedelta(days=days_since_sunday)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return int(start.timestamp() * 1000)


class HookedClient:
    """
    Everything the application needs, behind one object.

    Mutations always land in the local store; each one then asks for a
    background sync, which only runs when the gate allows it.
    """

    def __init__(
        self,
        config: HookedConfig | None = None,
        store: BaseStore | None = None,
        credentials: CredentialStore | None = None,
        connectivity: ConnectivityMonitor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or HookedConfig.from_env()
        self.store = store or SQLiteStore(self.config.db_path)
        self.credentials = credentials or CredentialStore(self.config.credentials_path)

        self.gateway = MutationGateway(self.store)
        self.api = RemoteAPI(
            self.config.api_base_url,
            self.credentials,
            timeout=self.config.request_timeout,
            transport=transport,
        )
        self.connectivity = connectivity or ConnectivityMonitor(online=True, api=self.api)
        self.gate = SyncGate(self.credentials, self.connectivity, self.config.sync_enabled)
        self.orchestrator = SyncOrchestrator(self.gateway, self.api)
        self.triggers = SyncTriggers(
            self.orchestrator, self.gate, heartbeat_interval=self.config.heartbeat_interval
        )
        self._initialized = False

    async def __aenter__(self) -> HookedClient:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def initialize(self, sync_on_start: bool = False) -> None:
        """Open the store and seed reference data."""
        if self._initialized:
            return
        await self.store.initialize()
        await seed_default_categories(self.gateway)
        self._initialized = True
        if sync_on_start:
            await self.triggers.on_startup()

    async def close(self) -> None:
        if not self._initialized:
            return
        await self.triggers.stop()
        self.triggers.close()
        await self.api.close()
        await self.store.close()
        self._initialized = False

    # === Reads ===

    async def projects(self) -> list[Project]:
        projects = cast(list[Project], await self.gateway.list_all(EntityKind.PROJECT))
        return sorted(projects, key=lambda p: p.updated_at, reverse=True)

    async def project(self, project_id: str) -> Project | None:
        return cast(Project | None, await self.gateway.get(EntityKind.PROJECT, project_id))

    async def materials(self) -> list[Material]:
        return cast(list[Material], await self.gateway.list_all(EntityKind.MATERIAL))

    async def sessions(self, project_id: str) -> list[Session]:
        return cast(list[Session], await self.gateway.children(EntityKind.SESSION, project_id))

    async def note(self, project_id: str) -> Note | None:
        return await self.gateway.note_for_project(project_id)

    async def photos(self, project_id: str) -> list[Photo]:
        return cast(list[Photo], await self.gateway.children(EntityKind.PHOTO, project_id))

    async def categories(self) -> list[Category]:
        return await self.gateway.categories()

    # === Mutations ===

    async def create_project(self, title: str, **fields: Any) -> Project:
        project = await self.gateway.create_project(title, **fields)
        self._changed("project created")
        return project

    async def update_project(self, project_id: str, **fields: Any) -> Project:
        project = await self.gateway.save_project(id=project_id, **fields)
        self._changed("project updated")
        return project

    async def increment_row(self, project_id: str, by: int = 1) -> Project:
        """Move the row counter, never below zero."""
        project = await self._require_project(project_id)
        return await self.update_project(project_id, current_row=max(0, project.current_row + by))

    async def record_session(
        self,
        project_id: str,
        duration_seconds: int,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> Session:
        """Store a work session and add its time to the project total."""
        project = await self._require_project(project_id)
        end_time = end_time or utc_now_iso()
        if start_time is None:
            end_ms = parse_timestamp_ms(end_time)
            start_time = (
                datetime.fromtimestamp((end_ms / 1000) - duration_seconds).astimezone()
                .isoformat()
            )
        session = await self.gateway.create_session(
            project_id,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=duration_seconds,
        )
        await self.gateway.save_project(
            id=project_id, total_duration=project.total_duration + duration_seconds
        )
        self._changed("session recorded")
        return session

    async def create_material(self, name: str, **fields: Any) -> Material:
        material = await self.gateway.create_material(name, **fields)
        self._changed("material created")
        return material

    async def update_material(self, material_id: str, **fields: Any) -> Material:
        material = await self.gateway.save_material(id=material_id, **fields)
        self._changed("material updated")
        return material

    async def save_note(self, project_id: str, content: str) -> Note:
        note = await self.gateway.save_note(project_id=project_id, content=content)
        self._changed("note saved")
        return note

    async def add_photo(
        self,
        project_id: str,
        data: bytes,
        file_name: str = "photo.jpg",
        content_type: str = "image/jpeg",
    ) -> Photo:
        photo = await self.gateway.add_photo(project_id, data, file_name, content_type)
        self._changed("photo added")
        return photo

    async def delete(self, kind: EntityKind, record_id: str) -> bool:
        deleted = await self.gateway.delete(kind, record_id)
        if deleted:
            self._changed(f"{kind.value} deleted")
        return deleted

    async def delete_project(self, project_id: str) -> bool:
        return await self.delete(EntityKind.PROJECT, project_id)

    async def delete_material(self, material_id: str) -> bool:
        return await self.delete(EntityKind.MATERIAL, material_id)

    # === Sync control ===

    async def sync_now(self) -> SyncResult:
        return await self.triggers.sync_now()

    def login(self, token: str) -> None:
        """Link an account by storing its bearer token."""
        self.credentials.set_token(token)
        self.triggers.request_sync("account linked")

    def logout(self) -> None:
        self.credentials.clear()

    def set_sync_enabled(self, enabled: bool) -> None:
        """Turn cloud sync on or off and remember the choice."""
        self.config.sync_enabled = enabled
        self.gate.sync_enabled = enabled
        self.config.save_settings()
        if enabled:
            self.triggers.request_sync("sync enabled")

    def set_online(self, online: bool) -> None:
        self.connectivity.set_online(online)

    async def status(self) -> dict[str, Any]:
        summary = await self.gateway.summary()
        summary.update(
            state=self.orchestrator.state.value,
            can_sync=self.gate.can_sync(),
            blocked_by=self.gate.reason(),
            sync_enabled=self.gate.sync_enabled,
            logged_in=self.credentials.get_token() is not None,
        )
        return summary

    async def weekly_time(self) -> int:
        """
        Seconds worked since the start of the week.

        Asks the server when sync is possible, else (or if that fails) sums
        the sessions stored locally.
        """
        if self.gate.can_sync():
            try:
                return await self.api.weekly_time()
            except SyncError as e:
                logger.info("Weekly time from server failed, using local sessions: %s", e)

        since = week_start_ms()
        total = 0
        for session in cast(list[Session], await self.gateway.list_all(EntityKind.SESSION)):
            if parse_timestamp_ms(session.start_time) >= since:
                total += session.duration_seconds
        return total

    async def reset(self) -> None:
        """Drop all local data, keeping built-in categories."""
        await self.gateway.clear_all()
        await seed_default_categories(self.gateway, force=True)

    # Private methods
    async def _require_project(self, project_id: str) -> Project:
        project = await self.project(project_id)
        if project is None:
            raise KeyError(f"Unknown project {project_id}")
        return project

    def _changed(self, reason: str) -> None:
        self.triggers.request_sync(reason)
