"""
Pytest configuration and shared fixtures for hooked tests.
"""

import asyncio
import json
import tempfile
from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import httpx
import pytest

API_BASE = "https://api.test/api"
TOKEN = "test-token"


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class FakeServer:
    """
    In-process stand-in for the remote API, served through httpx.MockTransport.

    Collections live in plain dicts keyed by id. Every request is logged in
    `requests` as (method, path). Failures can be injected per route.
    """

    COLLECTIONS = ("projects", "materials", "sessions", "photos", "categories")

    def __init__(self, token: str = TOKEN):
        self.token = token
        self.data: dict[str, dict[str, dict]] = {name: {} for name in self.COLLECTIONS}
        self.notes: dict[str, dict] = {}  # project_id -> note
        self.requests: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.offline = False
        self.timeout = False
        self.weekly_seconds: int | None = None
        self.lagging_deletes = False  # DELETE succeeds but the record stays listed

    # === Test helpers ===

    def transport(self) -> httpx.MockTransport:
        async def handle(request: httpx.Request) -> httpx.Response:
            # Yield like a real network call would
            await asyncio.sleep(0)
            return self.handler(request)

        return httpx.MockTransport(handle)

    def add(self, collection: str, **fields) -> dict:
        record = {"id": fields.pop("id", None) or str(uuid4()), "updated_at": iso_now(), **fields}
        self.data[collection][record["id"]] = record
        return record

    def fail(self, method: str, path: str, status: int) -> None:
        """Answer `status` for method on paths starting with `path`."""
        self.failures[(method, path)] = status

    def calls(self, method: str | None = None, prefix: str = "") -> list[tuple[str, str]]:
        return [
            (m, p)
            for m, p in self.requests
            if (method is None or m == method) and p.startswith(prefix)
        ]

    def seed_categories(self) -> None:
        for label in ("Pull", "Bonnet", "Écharpe", "Couverture", "Gants", "Sac", "Amigurumi", "Autre"):
            self.add("categories", label=label)

    # === Request handling ===

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        method = request.method
        self.requests.append((method, path))

        if self.offline:
            raise httpx.ConnectError("Network unreachable", request=request)
        if self.timeout:
            raise httpx.ReadTimeout("Timed out", request=request)
        if path == "/":
            return httpx.Response(200, json={"status": "ok"})
        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"error": "Unauthorized"})
        for (fail_method, prefix), status in self.failures.items():
            if fail_method == method and path.startswith(prefix):
                return httpx.Response(status, json={"message": f"Injected {status}"})

        parts = [p for p in path.split("/") if p]
        collection = parts[0] if parts else ""
        record_id = parts[1] if len(parts) > 1 else None

        if collection == "notes":
            return self._notes(request, method)
        if collection == "photos" and method in ("GET", "POST") and record_id is None:
            return self._photos(request, method)
        if collection == "sessions" and record_id == "weekly":
            return self._weekly()
        if collection not in self.data:
            return httpx.Response(404, json={"error": "Not found"})

        store = self.data[collection]
        if method == "GET" and record_id is None:
            return httpx.Response(200, json=list(store.values()))
        if method == "POST" and record_id is None:
            record = self.add(collection, **json.loads(request.content))
            return httpx.Response(201, json=record)
        if record_id not in store:
            return httpx.Response(404, json={"error": "Not found"})
        if method == "PATCH":
            store[record_id].update(json.loads(request.content), updated_at=iso_now())
            return httpx.Response(200, json=store[record_id])
        if method == "DELETE":
            if not self.lagging_deletes:
                del store[record_id]
            return httpx.Response(204)
        return httpx.Response(405)

    def _notes(self, request: httpx.Request, method: str) -> httpx.Response:
        if method == "GET":
            project_id = request.url.params.get("project_id")
            return httpx.Response(200, json=self.notes.get(project_id, {"content": ""}))
        if method == "POST":
            body = json.loads(request.content)
            note = self.notes.get(body["project_id"]) or {"id": str(uuid4()), "created_at": iso_now()}
            note.update(project_id=body["project_id"], content=body["content"], updated_at=iso_now())
            self.notes[body["project_id"]] = note
            return httpx.Response(200, json=note)
        if method == "DELETE":
            note_id = request.url.path.rsplit("/", 1)[-1]
            for project_id, note in list(self.notes.items()):
                if note["id"] == note_id:
                    del self.notes[project_id]
                    return httpx.Response(204)
            return httpx.Response(404, json={"error": "Not found"})
        return httpx.Response(405)

    def _photos(self, request: httpx.Request, method: str) -> httpx.Response:
        project_id = request.url.params.get("project_id")
        if method == "GET":
            photos = [p for p in self.data["photos"].values() if p["project_id"] == project_id]
            return httpx.Response(200, json=photos)
        if project_id not in self.data["projects"]:
            return httpx.Response(404, json={"error": "Project not found"})
        photo_id = str(uuid4())
        record = self.add(
            "photos",
            id=photo_id,
            project_id=project_id,
            file_path=f"/uploads/{photo_id}.jpg",
            created_at=iso_now(),
            size=len(request.content),
        )
        return httpx.Response(201, json=record)

    def _weekly(self) -> httpx.Response:
        if self.weekly_seconds is not None:
            total = self.weekly_seconds
        else:
            total = sum(s.get("duration_seconds", 0) for s in self.data["sessions"].values())
        return httpx.Response(200, json={"totalSeconds": total})


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
async def dict_store() -> AsyncGenerator:
    """Create an opened DictStore instance for testing."""
    from hooked.storage import DictStore

    store = DictStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def sqlite_store(temp_dir: Path) -> AsyncGenerator:
    """Create a SQLiteStore instance for testing."""
    from hooked.storage import SQLiteStore

    store = SQLiteStore(temp_dir / "test.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture(params=["dict", "sqlite"])
async def store(request, temp_dir: Path) -> AsyncGenerator:
    """Each store backend in turn."""
    from hooked.storage import DictStore, SQLiteStore

    backend = DictStore() if request.param == "dict" else SQLiteStore(temp_dir / "param.db")
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
def gateway(dict_store):
    """Mutation gateway over an in-memory store."""
    from hooked.storage import MutationGateway

    return MutationGateway(dict_store)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def credentials():
    from hooked.sync import InMemoryCredentialStore

    return InMemoryCredentialStore(TOKEN)


@pytest.fixture
async def api(server: FakeServer, credentials) -> AsyncGenerator:
    """Remote API client talking to the fake server."""
    from hooked.sync import RemoteAPI

    client = RemoteAPI(API_BASE, credentials, transport=server.transport())
    yield client
    await client.close()


@pytest.fixture
def orchestrator(gateway, api):
    from hooked.sync import SyncOrchestrator

    return SyncOrchestrator(gateway, api)


@pytest.fixture
async def client(temp_dir: Path, server: FakeServer, credentials) -> AsyncGenerator:
    """HookedClient with sync enabled, an in-memory store and the fake server."""
    from hooked import HookedClient, HookedConfig
    from hooked.storage import DictStore
    from hooked.sync import ConnectivityMonitor

    config = HookedConfig(api_base_url=API_BASE, data_dir=temp_dir, sync_enabled=True)
    hooked = HookedClient(
        config,
        store=DictStore(),
        credentials=credentials,
        connectivity=ConnectivityMonitor(online=True),
        transport=server.transport(),
    )
    await hooked.initialize()
    yield hooked
    await hooked.close()


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
