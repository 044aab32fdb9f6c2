"""Record schema definitions."""

from hooked.schema.records import (
    KIND_SPECS,
    LOCAL_ID_PREFIX,
    PROJECT_CHILDREN,
    Category,
    EntityKind,
    KindSpec,
    LocalClock,
    Material,
    MaterialPatch,
    MaterialType,
    MetadataEntry,
    Note,
    NotePatch,
    Photo,
    PhotoPatch,
    Project,
    ProjectPatch,
    ProjectStatus,
    Record,
    RecordPatch,
    Session,
    SessionPatch,
    SyncedRecord,
    SyncStatus,
    Table,
    Tombstone,
    generate_local_id,
    is_local_id,
    is_server_id,
    normalize_label,
    parse_timestamp_ms,
    spec_for,
    utc_now_iso,
)

__all__ = [
    "KIND_SPECS",
    "LOCAL_ID_PREFIX",
    "PROJECT_CHILDREN",
    "Category",
    "EntityKind",
    "KindSpec",
    "LocalClock",
    "Material",
    "MaterialPatch",
    "MaterialType",
    "MetadataEntry",
    "Note",
    "NotePatch",
    "Photo",
    "PhotoPatch",
    "Project",
    "ProjectPatch",
    "ProjectStatus",
    "Record",
    "RecordPatch",
    "Session",
    "SessionPatch",
    "SyncedRecord",
    "SyncStatus",
    "Table",
    "Tombstone",
    "generate_local_id",
    "is_local_id",
    "is_server_id",
    "normalize_label",
    "parse_timestamp_ms",
    "spec_for",
    "utc_now_iso",
]
