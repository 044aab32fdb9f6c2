"""Tests for the remote API client."""

import httpx
import pytest

from hooked.errors import (
    AuthExpired,
    NetworkUnreachable,
    RemoteNotFound,
    RemoteRejected,
    RemoteTimeout,
)
from hooked.schema import EntityKind
from hooked.sync import InMemoryCredentialStore, RemoteAPI

API_BASE = "https://api.test/api"


class TestRequests:
    """Tests for successful calls."""

    @pytest.mark.asyncio
    async def test_list_and_create(self, api, server):
        server.add("materials", name="Cotton")
        created = await api.create(EntityKind.MATERIAL, {"name": "Wool"})

        materials = await api.list(EntityKind.MATERIAL)
        assert {m["name"] for m in materials} == {"Cotton", "Wool"}
        assert created["id"] in server.data["materials"]
        assert server.calls("POST") == [("POST", "/materials")]

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self, credentials, server):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json=[])

        async with RemoteAPI(API_BASE, credentials, transport=httpx.MockTransport(handler)) as api:
            await api.list(EntityKind.PROJECT)
        assert seen == ["Bearer test-token"]

    @pytest.mark.asyncio
    async def test_update_and_delete(self, api, server):
        record = server.add("projects", title="Old")
        await api.update(EntityKind.PROJECT, record["id"], {"title": "New"})
        assert server.data["projects"][record["id"]]["title"] == "New"

        await api.delete(EntityKind.PROJECT, record["id"])
        assert record["id"] not in server.data["projects"]

    @pytest.mark.asyncio
    async def test_photos(self, api, server):
        project = server.add("projects", title="Bag")
        uploaded = await api.upload_photo(project["id"], b"binary", "bag.jpg")

        photos = await api.list_photos(project["id"])
        assert [p["id"] for p in photos] == [uploaded["id"]]
        assert uploaded["file_path"].startswith("/uploads/")

    @pytest.mark.asyncio
    async def test_notes(self, api, server):
        project = server.add("projects", title="Bag")
        assert await api.get_note(project["id"]) is None

        saved = await api.save_note(project["id"], "Use 2 strands")
        again = await api.save_note(project["id"], "Use 3 strands")
        assert again["id"] == saved["id"]
        assert (await api.get_note(project["id"]))["content"] == "Use 3 strands"

    @pytest.mark.asyncio
    async def test_weekly_time(self, api, server):
        server.weekly_seconds = 5400
        assert await api.weekly_time() == 5400

    @pytest.mark.asyncio
    async def test_ping(self, api, server):
        assert await api.ping() is True
        server.offline = True
        assert await api.ping() is False


class TestErrorMapping:
    """Transport failures and error statuses map to sync errors."""

    @pytest.mark.asyncio
    async def test_offline(self, api, server):
        server.offline = True
        with pytest.raises(NetworkUnreachable):
            await api.list(EntityKind.PROJECT)

    @pytest.mark.asyncio
    async def test_timeout(self, api, server):
        server.timeout = True
        with pytest.raises(RemoteTimeout):
            await api.list(EntityKind.PROJECT)

    def test_timeout_is_network_error(self):
        assert issubclass(RemoteTimeout, NetworkUnreachable)

    @pytest.mark.asyncio
    async def test_not_found(self, api):
        with pytest.raises(RemoteNotFound):
            await api.update(EntityKind.PROJECT, "missing", {"title": "x"})

    @pytest.mark.asyncio
    async def test_rejected(self, api, server):
        server.fail("POST", "/projects", 422)
        with pytest.raises(RemoteRejected) as excinfo:
            await api.create(EntityKind.PROJECT, {"title": ""})
        assert excinfo.value.status_code == 422
        assert "Injected 422" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_unauthorized_clears_credentials(self, server):
        credentials = InMemoryCredentialStore("expired")
        async with RemoteAPI(API_BASE, credentials, transport=server.transport()) as api:
            with pytest.raises(AuthExpired):
                await api.list(EntityKind.PROJECT)
        assert credentials.get_token() is None

    @pytest.mark.asyncio
    async def test_bad_body(self, credentials):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with RemoteAPI(API_BASE, credentials, transport=httpx.MockTransport(handler)) as api:
            with pytest.raises(RemoteRejected):
                await api.list(EntityKind.PROJECT)

    @pytest.mark.asyncio
    async def test_wrong_shape(self, credentials):
        def handler(request):
            return httpx.Response(200, json={"projects": []})

        async with RemoteAPI(API_BASE, credentials, transport=httpx.MockTransport(handler)) as api:
            with pytest.raises(RemoteRejected):
                await api.list(EntityKind.PROJECT)

    @pytest.mark.asyncio
    async def test_create_without_id(self, credentials):
        def handler(request):
            return httpx.Response(201, json={"title": "no id"})

        async with RemoteAPI(API_BASE, credentials, transport=httpx.MockTransport(handler)) as api:
            with pytest.raises(RemoteRejected):
                await api.create(EntityKind.PROJECT, {"title": "x"})
