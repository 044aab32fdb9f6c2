"""Tests for remote/local merge rules and push payloads."""

import pytest

from hooked.schema import (
    Category,
    EntityKind,
    Material,
    Note,
    Photo,
    Project,
    SyncStatus,
    parse_timestamp_ms,
)
from hooked.sync.merge import (
    local_wins,
    material_payload,
    merge_categories,
    merge_remote,
    photo_upload,
    project_payload,
    resolve_category_id,
)

SERVER_ID = "44444444-4444-4444-4444-444444444444"
MATERIAL_ID = "55555555-5555-5555-5555-555555555555"
NOW = 1_900_000_000_000


def remote_project(**fields):
    return {"id": SERVER_ID, "title": "Remote", "updated_at": "2024-01-01T00:00:00Z", **fields}


class TestMergeRemote:
    """Tests for merge_remote."""

    def test_new_record(self):
        merged = merge_remote(EntityKind.PROJECT, None, remote_project(current_row=3), NOW)

        assert isinstance(merged, Project)
        assert merged.id == SERVER_ID
        assert merged.current_row == 3
        assert merged.sync_status == SyncStatus.SYNCED
        assert merged.is_local_only is False
        assert merged.local_updated_at == NOW

    def test_counters_take_maximum(self):
        """Accumulating counters never regress on either side."""
        local = Project(
            id=SERVER_ID,
            current_row=12,
            total_duration=100,
            sync_status=SyncStatus.SYNCED,
            is_local_only=False,
        )
        merged = merge_remote(
            EntityKind.PROJECT, local, remote_project(current_row=9, total_duration=500), NOW
        )

        assert merged.current_row == 12
        assert merged.total_duration == 500
        # Local row count is ahead of the server, so it goes back up
        assert merged.sync_status == SyncStatus.PENDING
        assert merged.is_local_only is False

    def test_counters_equal_stay_synced(self):
        local = Project(id=SERVER_ID, current_row=9, sync_status=SyncStatus.SYNCED)
        merged = merge_remote(EntityKind.PROJECT, local, remote_project(current_row=9), NOW)
        assert merged.sync_status == SyncStatus.SYNCED

    def test_pending_newer_local_wins(self):
        local = Project(
            id=SERVER_ID,
            title="Local edit",
            local_updated_at=parse_timestamp_ms("2024-06-01T00:00:00Z"),
            is_local_only=False,
        )
        assert local_wins(local, remote_project())
        assert merge_remote(EntityKind.PROJECT, local, remote_project(), NOW) is None

    def test_pending_older_local_is_overwritten(self):
        local = Project(
            id=SERVER_ID,
            title="Stale edit",
            local_updated_at=parse_timestamp_ms("2023-01-01T00:00:00Z"),
            is_local_only=False,
        )
        merged = merge_remote(EntityKind.PROJECT, local, remote_project(), NOW)
        assert merged.title == "Remote"
        assert merged.sync_status == SyncStatus.SYNCED

    def test_synced_local_never_wins(self):
        local = Project(
            id=SERVER_ID,
            local_updated_at=NOW,
            sync_status=SyncStatus.SYNCED,
            is_local_only=False,
        )
        assert not local_wins(local, remote_project())

    def test_omitted_fields_kept(self):
        local = Project(
            id=SERVER_ID,
            goal_rows=200,
            category_id="cat-gilet",
            material_ids=[MATERIAL_ID],
            sync_status=SyncStatus.SYNCED,
        )
        merged = merge_remote(EntityKind.PROJECT, local, remote_project(), NOW)

        assert merged.goal_rows == 200
        assert merged.category_id == "cat-gilet"
        assert merged.material_ids == [MATERIAL_ID]

    def test_explicit_null_clears_nullable_field(self):
        local = Project(id=SERVER_ID, goal_rows=200, sync_status=SyncStatus.SYNCED)
        merged = merge_remote(EntityKind.PROJECT, local, remote_project(goal_rows=None), NOW)
        assert merged.goal_rows is None

    def test_embedded_materials(self):
        remote = remote_project(materials=[{"id": MATERIAL_ID, "name": "Hook"}])
        merged = merge_remote(EntityKind.PROJECT, None, remote, NOW)
        assert merged.material_ids == [MATERIAL_ID]

    def test_photo_from_server_has_no_payload(self):
        remote = {"id": SERVER_ID, "project_id": "p1", "file_path": "/uploads/a.jpg"}
        merged = merge_remote(EntityKind.PHOTO, None, remote, NOW)

        assert isinstance(merged, Photo)
        assert merged.file_path == "/uploads/a.jpg"
        assert merged.payload() is None

    def test_note(self):
        remote = {"id": SERVER_ID, "project_id": "p1", "content": "Magic ring"}
        merged = merge_remote(EntityKind.NOTE, None, remote, NOW)
        assert isinstance(merged, Note)
        assert merged.content == "Magic ring"

    def test_invalid_remote_record(self):
        with pytest.raises(ValueError):
            merge_remote(EntityKind.PROJECT, None, remote_project(current_row="many"), NOW)

    def test_categories_have_their_own_merge(self):
        with pytest.raises(ValueError):
            merge_remote(EntityKind.CATEGORY, None, {"id": "c", "label": "Pull"}, NOW)


class TestPayloads:
    """Tests for push payloads."""

    def test_create_drops_local_material_ids(self):
        project = Project(title="Vest", material_ids=["local-1-abc", MATERIAL_ID])
        payload = project_payload(project, None, create=True)

        assert payload["material_ids"] == [MATERIAL_ID]
        assert "category_id" not in payload
        assert payload["status"] == "in_progress"

    def test_create_omits_empty_material_ids(self):
        payload = project_payload(Project(material_ids=["local-1-abc"]), None, create=True)
        assert "material_ids" not in payload

    def test_update_always_sends_material_ids(self):
        project = Project(end_date="2024-05-01", material_ids=[])
        payload = project_payload(project, SERVER_ID, create=False)

        assert payload["material_ids"] == []
        assert payload["end_date"] == "2024-05-01"
        assert payload["category_id"] == SERVER_ID

    def test_local_sync_fields_never_sent(self):
        payload = project_payload(Project(), None, create=True)
        assert "local_updated_at" not in payload
        assert "sync_status" not in payload
        assert "is_local_only" not in payload

    def test_material_payload(self):
        payload = material_payload(Material(name="Bamboo 4mm", size="4mm"))
        assert payload["category_type"] == "hook"
        assert payload["size"] == "4mm"

    def test_photo_upload(self):
        photo = Photo(project_id="p1", content=Photo.encode_payload(b"img"), file_name="a.png")
        assert photo_upload(photo) == (b"img", "a.png", "image/jpeg")
        assert photo_upload(Photo(project_id="p1", file_path="/uploads/x.jpg")) is None


class TestCategories:
    """Tests for category merge by label."""

    def test_server_copy_replaces_builtin(self):
        local = [Category(id="cat-echarpe", label="Écharpe", icon="wind")]
        changes = merge_categories(local, [{"id": SERVER_ID, "label": "echarpe"}])

        assert len(changes) == 1
        assert changes[0].replaces == "cat-echarpe"
        assert changes[0].category.id == SERVER_ID
        assert changes[0].category.icon == "wind"

    def test_new_and_unchanged(self):
        local = [Category(id=SERVER_ID, label="Pull")]
        changes = merge_categories(
            local,
            [{"id": SERVER_ID, "label": "Pull"}, {"id": MATERIAL_ID, "label": "Sac"}],
        )

        assert [(c.category.label, c.replaces) for c in changes] == [("Sac", None)]

    def test_incomplete_entries_ignored(self):
        assert merge_categories([], [{"id": SERVER_ID}, {"label": "Pull"}]) == []

    def test_resolve_category_id(self):
        categories = [Category(id="cat-pull", label="Pull")]
        server_labels = {"pull": SERVER_ID}

        assert resolve_category_id("cat-pull", categories, server_labels) == SERVER_ID
        assert resolve_category_id(MATERIAL_ID, categories, server_labels) == MATERIAL_ID
        assert resolve_category_id("cat-gilet", categories, server_labels) is None
        assert resolve_category_id(None, categories, server_labels) is None
