# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Persisted API credential.

One string under the stable key ``apiKey`` in a small JSON settings file.
``ADLENS_API_KEY`` in the environment takes precedence over the file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "apiKey"
ENV_API_KEY = "ADLENS_API_KEY"
ENV_SETTINGS_PATH = "ADLENS_SETTINGS_PATH"


def default_settings_path() -> Path:
    override = os.environ.get(ENV_SETTINGS_PATH, "").strip()
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME", "").strip() or "~/.config"
    return Path(base).expanduser() / "adlens" / "settings.json"


class CredentialStore:
    """Read/write the API key. Absent key is not an error here; callers decide."""

    def __init__(self, path: Path | None = None, *, use_env: bool = True) -> None:
        self.path = path or default_settings_path()
        self._use_env = use_env

    def _load(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError):
            logger.warning("Settings file unreadable, treating as empty: %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self) -> str | None:
        """Return the stored API key, or None if none is set."""
        if self._use_env:
            env_key = os.environ.get(ENV_API_KEY, "").strip()
            if env_key:
                return env_key
        value = self._load().get(CREDENTIAL_KEY)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def set(self, api_key: str) -> None:
        """Persist *api_key*. Blank keys are rejected."""
        api_key = (api_key or "").strip()
        if not api_key:
            raise ConfigurationError("Please enter a valid API key.")
        data = self._load()
        data[CREDENTIAL_KEY] = api_key
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.chmod(tmp, 0o600)
        tmp.replace(self.path)
        logger.info("API key saved to %s", self.path)

    def clear(self) -> None:
        data = self._load()
        if data.pop(CREDENTIAL_KEY, None) is not None:
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
