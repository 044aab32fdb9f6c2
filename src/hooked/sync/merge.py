"""
Typed conversions between local records and remote representations.

Pull side: merge_remote() folds a remote record into the local copy, one
explicit field mapping per kind. Push side: *_payload() builds the bodies
the API expects. Category reference data merges by label instead of id.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from hooked.schema.records import (
    Category,
    EntityKind,
    Material,
    Note,
    Photo,
    Project,
    Session,
    SyncedRecord,
    SyncStatus,
    is_server_id,
    normalize_label,
    parse_timestamp_ms,
    spec_for,
)

# === Pull: remote -> local ===


def _pick(remote: dict[str, Any], names: Iterable[str]) -> dict[str, Any]:
    return {name: remote[name] for name in names if name in remote}


def _project_fields(remote: dict[str, Any]) -> dict[str, Any]:
    fields = _pick(
        remote,
        (
            "title",
            "current_row",
            "goal_rows",
            "total_duration",
            "status",
            "category_id",
            "material_ids",
            "created_at",
            "updated_at",
            "end_date",
        ),
    )
    # Some endpoints embed materials instead of listing their ids
    if "material_ids" not in fields and isinstance(remote.get("materials"), list):
        fields["material_ids"] = [
            m["id"] for m in remote["materials"] if isinstance(m, dict) and m.get("id")
        ]
    return fields


def _material_fields(remote: dict[str, Any]) -> dict[str, Any]:
    return _pick(
        remote,
        (
            "category_type",
            "name",
            "size",
            "brand",
            "material_composition",
            "created_at",
            "updated_at",
        ),
    )


def _session_fields(remote: dict[str, Any]) -> dict[str, Any]:
    return _pick(remote, ("project_id", "start_time", "end_time", "duration_seconds"))


def _note_fields(remote: dict[str, Any]) -> dict[str, Any]:
    return _pick(remote, ("project_id", "content", "created_at", "updated_at"))


def _photo_fields(remote: dict[str, Any]) -> dict[str, Any]:
    return _pick(remote, ("project_id", "file_path", "created_at"))


REMOTE_FIELDS: dict[EntityKind, Callable[[dict[str, Any]], dict[str, Any]]] = {
    EntityKind.PROJECT: _project_fields,
    EntityKind.MATERIAL: _material_fields,
    EntityKind.SESSION: _session_fields,
    EntityKind.NOTE: _note_fields,
    EntityKind.PHOTO: _photo_fields,
}


def local_wins(local: SyncedRecord | None, remote: dict[str, Any]) -> bool:
    """
    Whether a pending local copy was edited after the remote one.

    Remote records without updated_at count as older than any local edit.
    """
    if local is None or local.sync_status is not SyncStatus.PENDING:
        return False
    return local.local_updated_at > parse_timestamp_ms(remote.get("updated_at"))


def merge_remote(
    kind: EntityKind,
    local: SyncedRecord | None,
    remote: dict[str, Any],
    now_ms: int,
) -> SyncedRecord | None:
    """
    Fold a remote record into the local copy.

    Returns the record to store, or None when the local copy wins. Fields
    the remote omits keep their local value; accumulating counters keep the
    larger of both sides, and stay pending when the local side is ahead.
    """
    try:
        extract = REMOTE_FIELDS[kind]
    except KeyError:
        raise ValueError(f"No merge rule for {kind.value}") from None

    if local_wins(local, remote):
        return None

    spec = spec_for(kind)
    model_fields = spec.record_cls.model_fields
    incoming = {
        name: value
        for name, value in extract(remote).items()
        if value is not None or model_fields[name].default is None
    }

    data = local.model_dump() if local is not None else {}
    data.update(incoming)
    data.update(
        id=str(remote["id"]),
        sync_status=SyncStatus.SYNCED,
        is_local_only=False,
        local_updated_at=now_ms,
    )
    record = spec.record_cls.model_validate(data)

    if local is not None and spec.monotonic_fields:
        update: dict[str, Any] = {
            name: max(getattr(local, name), getattr(record, name))
            for name in spec.monotonic_fields
        }
        # The server fell behind: push the larger value back on the next pass
        if any(name in incoming and update[name] > getattr(record, name) for name in update):
            update["sync_status"] = SyncStatus.PENDING
        record = record.model_copy(update=update)
    return record


# === Push: local -> remote ===


def _server_ids(ids: Iterable[str]) -> list[str]:
    return [i for i in ids if is_server_id(i)]


def project_payload(project: Project, category_id: str | None, create: bool) -> dict[str, Any]:
    """
    Body for POST or PATCH /projects.

    category_id must already be resolved to a server id (or None). Local
    material ids are dropped: the server cannot know them yet.
    """
    payload: dict[str, Any] = {
        "title": project.title,
        "current_row": project.current_row,
        "goal_rows": project.goal_rows,
        "total_duration": project.total_duration,
        "status": project.status.value,
    }
    if category_id:
        payload["category_id"] = category_id
    material_ids = _server_ids(project.material_ids)
    if create:
        if material_ids:
            payload["material_ids"] = material_ids
    else:
        payload["material_ids"] = material_ids
        if project.end_date:
            payload["end_date"] = project.end_date
    return payload


def material_payload(material: Material) -> dict[str, Any]:
    return {
        "category_type": material.category_type.value,
        "name": material.name,
        "size": material.size,
        "brand": material.brand,
        "material_composition": material.material_composition,
    }


def session_payload(session: Session) -> dict[str, Any]:
    return {
        "project_id": session.project_id,
        "start_time": session.start_time,
        "end_time": session.end_time,
        "duration_seconds": session.duration_seconds,
    }


def note_payload(note: Note) -> dict[str, Any]:
    return {"project_id": note.project_id, "content": note.content}


def photo_upload(photo: Photo) -> tuple[bytes, str, str] | None:
    """(content, file name, content type) to upload, if any payload is held."""
    data = photo.payload()
    if data is None:
        return None
    return data, photo.file_name, photo.content_type


# === Categories ===


@dataclass
class CategoryChange:
    """One write produced by a category merge."""

    category: Category
    replaces: str | None = None  # Local id the server copy supersedes


def merge_categories(
    local: Iterable[Category], remote: Iterable[dict[str, Any]]
) -> list[CategoryChange]:
    """
    Merge server categories into the local set by label.

    A server category with the same label as a local one replaces it,
    taking over its projects. Server categories that match no local one
    are added. Local categories absent from the server stay.
    """
    by_id = {c.id: c for c in local}
    by_label = {c.natural_key: c for c in by_id.values()}

    changes: list[CategoryChange] = []
    for item in remote:
        if not item.get("id") or not item.get("label"):
            continue
        incoming = Category(
            id=str(item["id"]), label=str(item["label"]), icon=item.get("icon")
        )
        current = by_id.get(incoming.id)
        if current is not None:
            if incoming.icon is None:
                incoming.icon = current.icon
            if incoming != current:
                changes.append(CategoryChange(incoming))
            continue

        twin = by_label.get(incoming.natural_key)
        if incoming.icon is None and twin is not None:
            incoming.icon = twin.icon
        changes.append(CategoryChange(incoming, replaces=twin.id if twin else None))
        by_id[incoming.id] = incoming
        by_label[incoming.natural_key] = incoming
    return changes


def resolve_category_id(
    category_id: str | None, categories: Iterable[Category], server_labels: dict[str, str]
) -> str | None:
    """
    Map a local category id to the server's id for the same label.

    server_labels maps normalized labels to server ids. Returns None when
    no server category matches.
    """
    if not category_id:
        return None
    if is_server_id(category_id):
        return category_id
    for category in categories:
        if category.id == category_id:
            return server_labels.get(normalize_label(category.label))
    return None
