"""
Hooked

Offline-first tracker for crochet and knitting projects.

The system provides:
- A durable on-device store for projects, materials, sessions, notes and photos
- Sync metadata on every record, with tombstones for deletions
- A single-flight push-then-pull sync engine against the remote API
- Sync triggers gated on account, opt-in and connectivity

Quick Start:
    from hooked import HookedClient, HookedConfig

    async with HookedClient(HookedConfig.from_env()) as client:
        # Works offline: everything lands in the local store first
        project = await client.create_project("Granny square blanket")
        await client.increment_row(project.id)

        # Push local changes and pull the server's state
        client.login("<token>")
        client.set_sync_enabled(True)
        result = await client.sync_now()
"""

__version__ = "0.1.0"

# Client
from hooked.client import HookedClient
from hooked.config import HookedConfig

# Errors
from hooked.errors import (
    AuthExpired,
    HookedError,
    NetworkUnreachable,
    RemoteNotFound,
    RemoteRejected,
    RemoteTimeout,
    StorageUnavailable,
    SyncError,
)

# Schema
from hooked.schema.records import (
    Category,
    EntityKind,
    Material,
    Note,
    Photo,
    Project,
    Session,
    SyncStatus,
    Tombstone,
)

# Storage
from hooked.storage import BaseStore, DictStore, MutationGateway, SQLiteStore

# Sync
from hooked.sync import (
    ConnectivityMonitor,
    RemoteAPI,
    SyncGate,
    SyncOrchestrator,
    SyncResult,
    SyncState,
    SyncTriggers,
)

__all__ = [
    # Version
    "__version__",
    # Client
    "HookedClient",
    "HookedConfig",
    # Errors
    "AuthExpired",
    "HookedError",
    "NetworkUnreachable",
    "RemoteNotFound",
    "RemoteRejected",
    "RemoteTimeout",
    "StorageUnavailable",
    "SyncError",
    # Schema
    "Category",
    "EntityKind",
    "Material",
    "Note",
    "Photo",
    "Project",
    "Session",
    "SyncStatus",
    "Tombstone",
    # Storage
    "BaseStore",
    "DictStore",
    "MutationGateway",
    "SQLiteStore",
    # Sync
    "ConnectivityMonitor",
    "RemoteAPI",
    "SyncGate",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "SyncTriggers",
]
