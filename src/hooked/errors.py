"""
Error taxonomy for the local store and the sync engine.

Storage errors reach the caller of a mutation. Sync errors never leave a
sync pass: the orchestrator collects them into the pass result.
"""

from __future__ import annotations


class HookedError(Exception):
    """Base class for all hooked errors."""


class StorageUnavailable(HookedError):
    """The local store cannot be read or written (not opened, disk full, ...)."""


class SyncError(HookedError):
    """Base class for failures talking to the remote API."""


class NetworkUnreachable(SyncError):
    """The server could not be reached. The record stays pending."""


class RemoteTimeout(NetworkUnreachable):
    """A request exceeded its timeout."""


class RemoteRejected(SyncError):
    """The server answered with an error other than 404."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthExpired(RemoteRejected):
    """The bearer credential was refused (401)."""


class RemoteNotFound(SyncError):
    """The remote record does not exist (404)."""
