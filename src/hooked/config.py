"""
Runtime configuration.

Values come from, in increasing priority: defaults, a .env file, HOOKED_*
environment variables, then settings.json in the data directory. The last
one holds what the user changes from inside the app (e.g. enabling sync).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "HOOKED_"
SETTINGS_FILE = "settings.json"
# Settings the app itself may change and persist
USER_SETTINGS = ("sync_enabled",)


def default_data_dir() -> Path:
    return Path.home() / ".hooked"


class HookedConfig(BaseModel):
    """Configuration of a hooked client."""

    api_base_url: str = "http://localhost:3000/api"
    data_dir: Path = Field(default_factory=default_data_dir)
    request_timeout: float = 3.0
    heartbeat_interval: float = 10.0
    sync_enabled: bool = False
    log_level: str = "WARNING"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "hooked.db"

    @property
    def credentials_path(self) -> Path:
        return self.data_dir / "credentials.json"

    @property
    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILE

    @classmethod
    def from_env(
        cls,
        env_file: str | Path | None = None,
        environ: dict[str, str] | None = None,
        **overrides: Any,
    ) -> HookedConfig:
        """Build the configuration from .env, the environment and settings.json."""
        if environ is None:
            env_locations = [Path(env_file)] if env_file else [Path.cwd() / ".env"]
            for env_path in env_locations:
                if env_path.exists():
                    load_dotenv(env_path)
                    break
            environ = dict(os.environ)

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)

        config = cls.model_validate(values)
        stored = config.load_settings()
        if stored:
            config = config.model_copy(update=stored)
        return config

    def load_settings(self) -> dict[str, Any]:
        """In-app settings persisted in the data directory."""
        path = self.settings_path
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        validated = self.model_validate({**self.model_dump(), **_pick_user(data)})
        return {name: getattr(validated, name) for name in _pick_user(data)}

    def save_settings(self) -> Path:
        """Persist the in-app settings to settings.json."""
        path = self.settings_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({name: getattr(self, name) for name in USER_SETTINGS}, indent=2))
        return path


def _pick_user(data: dict[str, Any]) -> dict[str, Any]:
    return {name: data[name] for name in USER_SETTINGS if name in data}
