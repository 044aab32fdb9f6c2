"""
Account credential storage.

The sync engine never issues or refreshes a token. It reads the one the
user linked, and forgets it when the server refuses it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class CredentialStore:
    """Bearer token kept in a small JSON file in the data directory."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def get_token(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable credentials file %s: %s", self.path, e)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        return token or None

    def set_token(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"token": token}))
        try:
            self.path.chmod(0o600)
        except OSError:
            pass  # Not supported everywhere

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info("Credentials cleared")

    @property
    def has_token(self) -> bool:
        return self.get_token() is not None


class InMemoryCredentialStore(CredentialStore):
    """Credential store that never touches the disk."""

    def __init__(self, token: str | None = None):
        self._token = token

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None
