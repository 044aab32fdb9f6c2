"""
Record schema for the on-device store.

Every synchronizable entity carries the same sync metadata (status, local
write time, local-only flag). Relations between entities are plain id
references, resolved by lookup rather than embedded.
"""

from __future__ import annotations

import base64
import re
import secrets
import string
import time
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

LOCAL_ID_PREFIX = "local-"

_BASE36 = string.digits + string.ascii_lowercase
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class SyncStatus(str, Enum):
    """Sync state of a local record."""

    SYNCED = "synced"  # Matches the last known server state
    PENDING = "pending"  # Has local changes the server has not acknowledged
    CONFLICT = "conflict"  # Reserved, nothing sets it yet


class EntityKind(str, Enum):
    """Kinds of entity held in the local store."""

    PROJECT = "project"
    MATERIAL = "material"
    SESSION = "session"
    NOTE = "note"
    PHOTO = "photo"
    CATEGORY = "category"


class Table(str, Enum):
    """Tables of the local store."""

    PROJECTS = "projects"
    MATERIALS = "materials"
    SESSIONS = "sessions"
    NOTES = "notes"
    PHOTOS = "photos"
    CATEGORIES = "categories"
    DELETIONS = "deletions"
    METADATA = "metadata"


class ProjectStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MaterialType(str, Enum):
    HOOK = "hook"
    YARN = "yarn"
    NEEDLE = "needle"


# === Ids and time ===


def generate_local_id() -> str:
    """Generate an id for a record created on this device."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{LOCAL_ID_PREFIX}{int(time.time() * 1000)}-{suffix}"


def is_local_id(record_id: str) -> bool:
    """Check whether an id was generated locally."""
    return record_id.startswith(LOCAL_ID_PREFIX)


def is_server_id(record_id: str | None) -> bool:
    """Check whether an id looks like a server-issued UUID."""
    return bool(record_id) and bool(_UUID_RE.match(record_id))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp_ms(value: Any) -> int:
    """
    Convert a remote timestamp to epoch milliseconds.

    Accepts ISO-8601 strings (with or without a trailing Z) and numbers
    already expressed in milliseconds. Anything else counts as 0.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class LocalClock:
    """
    Device clock in milliseconds that never runs backwards.

    Wall-clock adjustments would otherwise reorder local writes.
    """

    def __init__(self) -> None:
        self._last = 0

    def now_ms(self) -> int:
        now = int(time.time() * 1000)
        if now <= self._last:
            now = self._last + 1
        self._last = now
        return now


def normalize_label(label: str) -> str:
    """Natural key for reference data: case, accents and spacing ignored."""
    decomposed = unicodedata.normalize("NFKD", label)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(stripped.casefold().split())


# === Records ===


class Record(BaseModel):
    """Anything stored in a table of the local store."""

    model_config = {"extra": "ignore"}

    def storage_key(self) -> str:
        return getattr(self, "id")


class SyncedRecord(Record):
    """Fields shared by every synchronizable entity."""

    id: str = Field(default_factory=generate_local_id)
    sync_status: SyncStatus = SyncStatus.PENDING
    local_updated_at: int = 0  # Device ms, never sent to the server
    is_local_only: bool = True  # Until the first successful push


class Project(SyncedRecord):
    title: str = "Untitled"
    current_row: int = 0
    goal_rows: int | None = None
    total_duration: int = 0  # Seconds
    status: ProjectStatus = ProjectStatus.IN_PROGRESS
    category_id: str | None = None
    material_ids: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    end_date: str | None = None


class Material(SyncedRecord):
    category_type: MaterialType = MaterialType.HOOK
    name: str = ""
    size: str | None = None
    brand: str | None = None
    material_composition: str | None = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class Session(SyncedRecord):
    project_id: str
    start_time: str = Field(default_factory=utc_now_iso)
    end_time: str = Field(default_factory=utc_now_iso)
    duration_seconds: int = 0


class Note(SyncedRecord):
    project_id: str
    content: str = ""
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class Photo(SyncedRecord):
    project_id: str
    file_path: str | None = None  # Set once the server hosts the file
    content: str | None = None  # Base64 payload awaiting upload
    content_type: str = "image/jpeg"
    file_name: str = "photo.jpg"
    created_at: str = Field(default_factory=utc_now_iso)

    @staticmethod
    def encode_payload(data: bytes) -> str:
        return base64.b64encode(data).decode("ascii")

    def payload(self) -> bytes | None:
        """Decoded binary payload, if the photo still holds one."""
        if not self.content:
            return None
        return base64.b64decode(self.content)


class Category(Record):
    id: str
    label: str
    icon: str | None = None

    @property
    def natural_key(self) -> str:
        return normalize_label(self.label)


class Tombstone(Record):
    """Marker for a deleted entity the server still has to forget."""

    id: str
    entity_type: EntityKind
    entity_id: str
    deleted_at: int

    @classmethod
    def for_entity(cls, kind: EntityKind, entity_id: str, deleted_at: int) -> Tombstone:
        return cls(
            id=f"del-{kind.value}-{entity_id}",
            entity_type=kind,
            entity_id=entity_id,
            deleted_at=deleted_at,
        )

    @staticmethod
    def key_for(kind: EntityKind, entity_id: str) -> str:
        return f"{kind.value}:{entity_id}"

    def storage_key(self) -> str:
        return self.key_for(self.entity_type, self.entity_id)


class MetadataEntry(Record):
    key: str
    value: Any = None

    def storage_key(self) -> str:
        return self.key


# === Partial records accepted by the mutation gateway ===


class RecordPatch(BaseModel):
    """Partial record; only explicitly set fields are merged."""

    model_config = {"extra": "forbid"}

    id: str | None = None
    sync_status: SyncStatus | None = None
    is_local_only: bool | None = None


class ProjectPatch(RecordPatch):
    title: str | None = None
    current_row: int | None = None
    goal_rows: int | None = None
    total_duration: int | None = None
    status: ProjectStatus | None = None
    category_id: str | None = None
    material_ids: list[str] | None = None
    created_at: str | None = None
    end_date: str | None = None


class MaterialPatch(RecordPatch):
    category_type: MaterialType | None = None
    name: str | None = None
    size: str | None = None
    brand: str | None = None
    material_composition: str | None = None
    created_at: str | None = None


class SessionPatch(RecordPatch):
    project_id: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    duration_seconds: int | None = None


class NotePatch(RecordPatch):
    project_id: str | None = None
    content: str | None = None


class PhotoPatch(RecordPatch):
    project_id: str | None = None
    file_path: str | None = None
    content: str | None = None
    content_type: str | None = None
    file_name: str | None = None
    created_at: str | None = None


# === Per-kind registry ===


@dataclass(frozen=True)
class KindSpec:
    """Everything the store and sync engine need to know about a kind."""

    kind: EntityKind
    table: Table
    record_cls: type[SyncedRecord]
    patch_cls: type[RecordPatch]
    remote_path: str
    label_field: str  # Used in error messages
    parent_field: str | None = None
    monotonic_fields: tuple[str, ...] = ()
    stamps_updated_at: bool = True


KIND_SPECS: dict[EntityKind, KindSpec] = {
    EntityKind.PROJECT: KindSpec(
        kind=EntityKind.PROJECT,
        table=Table.PROJECTS,
        record_cls=Project,
        patch_cls=ProjectPatch,
        remote_path="/projects",
        label_field="title",
        monotonic_fields=("current_row", "total_duration"),
    ),
    EntityKind.MATERIAL: KindSpec(
        kind=EntityKind.MATERIAL,
        table=Table.MATERIALS,
        record_cls=Material,
        patch_cls=MaterialPatch,
        remote_path="/materials",
        label_field="name",
    ),
    EntityKind.SESSION: KindSpec(
        kind=EntityKind.SESSION,
        table=Table.SESSIONS,
        record_cls=Session,
        patch_cls=SessionPatch,
        remote_path="/sessions",
        label_field="id",
        parent_field="project_id",
        stamps_updated_at=False,
    ),
    EntityKind.NOTE: KindSpec(
        kind=EntityKind.NOTE,
        table=Table.NOTES,
        record_cls=Note,
        patch_cls=NotePatch,
        remote_path="/notes",
        label_field="project_id",
        parent_field="project_id",
    ),
    EntityKind.PHOTO: KindSpec(
        kind=EntityKind.PHOTO,
        table=Table.PHOTOS,
        record_cls=Photo,
        patch_cls=PhotoPatch,
        remote_path="/photos",
        label_field="id",
        parent_field="project_id",
        stamps_updated_at=False,
    ),
}

# Children removed together with their project
PROJECT_CHILDREN: tuple[EntityKind, ...] = (
    EntityKind.SESSION,
    EntityKind.NOTE,
    EntityKind.PHOTO,
)


def spec_for(kind: EntityKind) -> KindSpec:
    try:
        return KIND_SPECS[kind]
    except KeyError:
        raise ValueError(f"{kind.value} is not a synchronizable kind") from None
