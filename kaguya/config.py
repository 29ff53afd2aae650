"""Global configuration — TOML-based, merged over built-in defaults."""

from __future__ import annotations

import copy
import tomllib
from pathlib import Path
from typing import Any

from loguru import logger
from platformdirs import PlatformDirs

from kaguya.core.path_resolver import expand_path

_instance: "Config | None" = None

_DIRS = PlatformDirs(appname="kaguya", appauthor=False)

# Default locations
_DEFAULT_CONFIG_PATH = Path(_DIRS.user_config_dir) / "config.toml"
_DEFAULT_VAULT_DIR = Path(_DIRS.user_data_dir) / "vault"
_DEFAULT_LOG_DIR = Path(_DIRS.user_log_dir)


def get_config(path: Path | None = None) -> Config:
    """Module-level factory — single global Config instance."""
    global _instance
    if _instance is None:
        _instance = Config(path)
    return _instance


def reset_config() -> None:
    """Reset the global config instance (for testing)."""
    global _instance
    _instance = None


class Config:
    """
    Read-only global settings from ``config.toml``.

    The file is edited by hand; a missing or malformed file leaves the
    defaults in place.
    """

    _DEFAULTS: dict[str, Any] = {
        "vault": "",
        "log_dir": "",
    }

    def __init__(self, config_path: Path | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._path = config_path or _DEFAULT_CONFIG_PATH
        self._load()

    def _load(self) -> None:
        """Load config from disk, merging with defaults."""
        self._data = copy.deepcopy(self._DEFAULTS)
        if not self._path.exists():
            return
        try:
            with open(self._path, "rb") as f:
                user_data = tomllib.load(f)
            self._deep_merge(self._data, user_data)
        except (tomllib.TOMLDecodeError, OSError) as e:
            logger.warning(f"Failed to load config '{self._path}', using defaults: {e}")

    def _deep_merge(self, base: dict, override: dict) -> None:
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        node = self._data
        for part in key.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    # ── Typed properties ──

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault_dir(self) -> Path:
        raw = self.get("vault", "")
        return expand_path(raw) if raw else _DEFAULT_VAULT_DIR

    @property
    def log_dir(self) -> Path:
        raw = self.get("log_dir", "")
        return expand_path(raw) if raw else _DEFAULT_LOG_DIR
