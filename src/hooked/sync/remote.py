"""
HTTP client for the remote API.

Thin wrapper over httpx that attaches the bearer credential and turns
transport failures and error responses into the sync error taxonomy.
Every call carries a short timeout: a device with a flaky connection
should fall back to local data quickly rather than hang.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from hooked.errors import (
    AuthExpired,
    NetworkUnreachable,
    RemoteNotFound,
    RemoteRejected,
    RemoteTimeout,
)
from hooked.schema.records import EntityKind
from hooked.sync.credentials import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0

REMOTE_PATHS: dict[EntityKind, str] = {
    EntityKind.PROJECT: "/projects",
    EntityKind.MATERIAL: "/materials",
    EntityKind.SESSION: "/sessions",
    EntityKind.NOTE: "/notes",
    EntityKind.PHOTO: "/photos",
    EntityKind.CATEGORY: "/categories",
}


class RemoteAPI:
    """
    Client for the project tracking API.

    Usage:
        api = RemoteAPI("https://api.example.com/api", credentials)
        projects = await api.list(EntityKind.PROJECT)
        created = await api.create(EntityKind.MATERIAL, {"name": "4mm hook"})
        await api.close()
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> RemoteAPI:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # === Entity collections ===

    async def list(self, kind: EntityKind) -> list[dict[str, Any]]:
        return self._expect_list(await self._request("GET", _path(kind)))

    async def create(self, kind: EntityKind, payload: dict[str, Any]) -> dict[str, Any]:
        return self._expect_record(await self._request("POST", _path(kind), json=payload))

    async def update(
        self, kind: EntityKind, record_id: str, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        body = await self._request("PATCH", f"{_path(kind)}/{record_id}", json=payload)
        return body if isinstance(body, dict) else None

    async def delete(self, kind: EntityKind, record_id: str) -> None:
        await self._request("DELETE", f"{_path(kind)}/{record_id}")

    # === Photos and notes ===

    async def upload_photo(
        self,
        project_id: str,
        content: bytes,
        file_name: str = "photo.jpg",
        content_type: str = "image/jpeg",
    ) -> dict[str, Any]:
        body = await self._request(
            "POST",
            REMOTE_PATHS[EntityKind.PHOTO],
            params={"project_id": project_id},
            files={"file": (file_name, content, content_type)},
        )
        return self._expect_record(body)

    async def list_photos(self, project_id: str) -> list[dict[str, Any]]:
        body = await self._request(
            "GET", REMOTE_PATHS[EntityKind.PHOTO], params={"project_id": project_id}
        )
        return self._expect_list(body)

    async def get_note(self, project_id: str) -> dict[str, Any] | None:
        """The note of a project, or None when the server has none."""
        body = await self._request(
            "GET", REMOTE_PATHS[EntityKind.NOTE], params={"project_id": project_id}
        )
        if body is None:
            return None
        if not isinstance(body, dict):
            raise RemoteRejected("Unexpected response shape for note")
        # The server answers {"content": ""} for a project without a note
        if not body.get("id"):
            return None
        return body

    async def save_note(self, project_id: str, content: str) -> dict[str, Any]:
        """Create or replace the note of a project (the server upserts)."""
        body = await self._request(
            "POST",
            REMOTE_PATHS[EntityKind.NOTE],
            json={"project_id": project_id, "content": content},
        )
        return self._expect_record(body)

    async def weekly_time(self) -> int:
        """Seconds spent in sessions since the start of the week."""
        body = await self._request("GET", "/sessions/weekly")
        if not isinstance(body, dict):
            raise RemoteRejected("Unexpected response shape for weekly time")
        try:
            return int(body.get("totalSeconds") or 0)
        except (TypeError, ValueError):
            raise RemoteRejected("Invalid totalSeconds in weekly time") from None

    async def ping(self) -> bool:
        """Check that the server answers at all, whatever the status."""
        try:
            await self._http().get("/", timeout=self.timeout)
        except httpx.HTTPError:
            return False
        return True

    # Private methods
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            kwargs: dict[str, Any] = {"base_url": self.base_url, "timeout": self.timeout}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    def _headers(self) -> dict[str, str]:
        token = self.credentials.get_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http().request(
                method, path, headers=self._headers(), **kwargs
            )
        except httpx.TimeoutException as e:
            raise RemoteTimeout(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkUnreachable(f"{method} {path}: {e}") from e

        status = response.status_code
        if status == 401:
            self.credentials.clear()
            logger.warning("Session expired, credentials cleared")
            raise AuthExpired("Session expired", status_code=status)
        if status == 404:
            raise RemoteNotFound(f"{method} {path}: not found")
        if status >= 400:
            raise RemoteRejected(_error_message(response), status_code=status)

        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise RemoteRejected(f"{method} {path}: response is not JSON", status) from None

    @staticmethod
    def _expect_list(body: Any) -> list[dict[str, Any]]:
        if not isinstance(body, list):
            raise RemoteRejected("Expected a list in response")
        return [item for item in body if isinstance(item, dict)]

    @staticmethod
    def _expect_record(body: Any) -> dict[str, Any]:
        if not isinstance(body, dict) or not body.get("id"):
            raise RemoteRejected("Expected a record with an id in response")
        return body


def _path(kind: EntityKind) -> str:
    return REMOTE_PATHS[kind]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error"):
            if body.get(key):
                return str(body[key])
    text = response.text.strip()
    return text[:200] if text else f"HTTP {response.status_code}"
