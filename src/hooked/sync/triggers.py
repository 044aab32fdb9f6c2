"""
When to sync.

A pass only runs when the user linked an account, enabled cloud sync and
the device is online. Passes are started on startup, when connectivity
comes back, after local edits and on demand.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from hooked.sync.credentials import CredentialStore
from hooked.sync.orchestrator import SyncOrchestrator, SyncResult
from hooked.sync.remote import RemoteAPI

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[bool], None]


class ConnectivityMonitor:
    """
    Tracks whether the device is online.

    Platform hooks call set_online(); probe() asks the server directly.
    Listeners only hear about transitions.
    """

    def __init__(self, online: bool = True, api: RemoteAPI | None = None):
        self._online = online
        self._api = api
        self._listeners: list[ConnectivityCallback] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def on_change(self, callback: ConnectivityCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity: %s", "online" if online else "offline")
        for callback in list(self._listeners):
            callback(online)

    async def probe(self) -> bool:
        """Re-check connectivity against the server, if one is configured."""
        if self._api is None:
            return self._online
        self.set_online(await self._api.ping())
        return self._online


class SyncGate:
    """Decides whether a sync pass may run."""

    def __init__(
        self,
        credentials: CredentialStore,
        connectivity: ConnectivityMonitor,
        sync_enabled: bool = False,
    ):
        self.credentials = credentials
        self.connectivity = connectivity
        self.sync_enabled = sync_enabled

    def can_sync(self) -> bool:
        return self.reason() is None

    def reason(self) -> str | None:
        """Why sync cannot run right now, or None if it can."""
        if not self.credentials.get_token():
            return "no linked account"
        if not self.sync_enabled:
            return "cloud sync disabled"
        if not self.connectivity.is_online:
            return "offline"
        return None


class SyncTriggers:
    """
    Starts sync passes from startup, reconnection, edits and user requests.

    Features:
    - Every trigger goes through the gate
    - At most one background pass task at a time
    - Periodic connectivity heartbeat
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        gate: SyncGate,
        heartbeat_interval: float = 10.0,
    ):
        self.orchestrator = orchestrator
        self.gate = gate
        self.heartbeat_interval = heartbeat_interval

        self._running = False
        self._heartbeat_task: asyncio.Task | None = None
        self._background_task: asyncio.Task | None = None
        self._unsubscribe = gate.connectivity.on_change(self._on_connectivity)

    async def on_startup(self) -> SyncResult | None:
        """Sync once at application start, if allowed."""
        if not self.gate.can_sync():
            logger.debug("Startup sync skipped: %s", self.gate.reason())
            return None
        return await self.orchestrator.sync()

    async def sync_now(self) -> SyncResult:
        """Manual sync. Returns a skipped result when the gate is closed."""
        reason = self.gate.reason()
        if reason is not None:
            return SyncResult.skip(reason)
        return await self.orchestrator.sync()

    def request_sync(self, reason: str = "change") -> asyncio.Task | None:
        """
        Schedule a background pass.

        Returns the task running it, the already scheduled one if any, or
        None when sync is not possible.
        """
        if not self.gate.can_sync():
            return None
        if self._background_task is not None and not self._background_task.done():
            return self._background_task
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop, background sync (%s) not scheduled", reason)
            return None

        logger.debug("Background sync requested: %s", reason)
        self._background_task = asyncio.create_task(self._background_sync())
        return self._background_task

    async def wait_idle(self) -> None:
        """Wait for the scheduled background pass, if any."""
        if self._background_task is not None:
            await asyncio.shield(self._background_task)

    async def start(self) -> None:
        """Start the connectivity heartbeat."""
        if self._running:
            return

        self._running = True
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def stop(self) -> None:
        """Stop the heartbeat and let a running pass finish."""
        self._running = False
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
        await self.wait_idle()

    def close(self) -> None:
        self._unsubscribe()

    # Private methods
    def _on_connectivity(self, online: bool) -> None:
        if online:
            self.request_sync("back online")

    async def _background_sync(self) -> None:
        try:
            result = await self.orchestrator.sync()
        except Exception:
            logger.exception("Background sync failed")
            return
        if result.errors:
            logger.warning("Background sync finished with %d errors", len(result.errors))

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.heartbeat_interval)
            await self.gate.connectivity.probe()
