"""Sync engine: remote API client, orchestrator and triggers."""

from hooked.sync.credentials import CredentialStore, InMemoryCredentialStore
from hooked.sync.orchestrator import SyncOrchestrator, SyncResult, SyncState
from hooked.sync.remote import RemoteAPI
from hooked.sync.triggers import ConnectivityMonitor, SyncGate, SyncTriggers

__all__ = [
    "ConnectivityMonitor",
    "CredentialStore",
    "InMemoryCredentialStore",
    "RemoteAPI",
    "SyncGate",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "SyncTriggers",
]
