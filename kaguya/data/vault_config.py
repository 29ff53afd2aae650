"""Vault config store — reads and writes the declarative ``vault.toml``."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w
from loguru import logger

from kaguya.core.path_resolver import expand_path, shrink_path
from kaguya.errors import ConfigParseError, GameNotFoundError, VaultIOError
from kaguya.models.game_config import GameEntry, VaultConfig

if TYPE_CHECKING:
    from kaguya.context import AppContext
    from kaguya.models.requests import AddGameRequest


def _entry_from_dict(data: dict[str, Any]) -> GameEntry:
    """Reconstruct a GameEntry from a TOML table, expanding ``~`` paths."""
    game_id = data.get("id")
    if not isinstance(game_id, str) or not game_id:
        raise ConfigParseError(f"Game entry without a valid 'id': {data!r}")

    paths = data.get("paths", [])
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        raise ConfigParseError(f"Game '{game_id}': 'paths' must be a list of strings")

    keep_versions = data.get("keep_versions")
    if keep_versions is not None and not isinstance(keep_versions, int):
        raise ConfigParseError(f"Game '{game_id}': 'keep_versions' must be an integer")

    return GameEntry(
        id=game_id,
        name=str(data.get("name") or game_id),
        paths=[expand_path(p) for p in paths],
        comment=data.get("comment"),
        keep_versions=keep_versions,
    )


def _entry_to_dict(entry: GameEntry) -> dict[str, Any]:
    """Convert a GameEntry to a TOML table, shrinking paths under home."""
    d: dict[str, Any] = {
        "id": entry.id,
        "name": entry.name,
        "paths": [str(shrink_path(p)) for p in entry.paths],
    }
    # TOML has no null; optional keys are simply left out
    if entry.comment is not None:
        d["comment"] = entry.comment
    if entry.keep_versions is not None:
        d["keep_versions"] = entry.keep_versions
    return d


class ConfigStore:
    """
    Declarative game list manager, reads and writes ``<vault>/vault.toml``.

    Paths are absolute in memory and ``~``-relative on disk, so the file
    stays portable between machines and users.
    """

    def __init__(self, context: AppContext) -> None:
        self._context = context
        self._path = context.vault_config_path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> VaultConfig:
        """Load the vault config; a missing file is an empty config."""
        if not self._path.exists():
            return VaultConfig()
        try:
            with open(self._path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigParseError(f"Could not parse config file '{self._path}': {e}") from e
        except OSError as e:
            raise VaultIOError(f"Could not read config file '{self._path}': {e}") from e

        games = data.get("games", [])
        if not isinstance(games, list):
            raise ConfigParseError(f"'games' in '{self._path}' must be an array of tables")
        config = VaultConfig(games=[_entry_from_dict(g) for g in games])

        seen: set[str] = set()
        for game in config.games:
            if game.id in seen:
                raise ConfigParseError(f"Duplicate game ID '{game.id}' in '{self._path}'")
            seen.add(game.id)
        return config

    def save(self, config: VaultConfig) -> None:
        """Persist the vault config atomically."""
        if self._context.dry_run:
            logger.info(f"[dry-run] Would write {len(config.games)} game(s) to '{self._path}'")
            return

        data = {"games": [_entry_to_dict(g) for g in config.games]}
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                tomli_w.dump(data, f)
            tmp.replace(self._path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise VaultIOError(f"Failed to save config file '{self._path}': {e}") from e
        except TypeError as e:
            tmp.unlink(missing_ok=True)
            raise ConfigParseError(f"Could not serialize config to TOML: {e}") from e

    # ── Entry access ──

    def find(self, game_id: str) -> GameEntry | None:
        return self.load().find(game_id)

    def get(self, game_id: str) -> GameEntry:
        entry = self.find(game_id)
        if entry is None:
            raise GameNotFoundError(game_id)
        return entry

    def list_games(self) -> list[GameEntry]:
        return self.load().games

    # ── Mutations ──

    def upsert(self, request: AddGameRequest) -> GameEntry:
        """
        Add a game, or merge into the existing entry with the same id.

        On merge, new paths are appended unless already present, and
        name/comment are only overwritten when the request supplies them.
        """
        config = self.load()
        paths = list(request.paths or [])
        entry = config.find(request.id)

        if entry is None:
            entry = GameEntry(
                id=request.id,
                name=request.name or request.id,
                comment=request.comment,
            )
            entry.add_paths(paths)
            config.games.append(entry)
            logger.info(f"Added game '{entry.name}' with ID '{entry.id}'")
        else:
            if request.name is not None:
                entry.name = request.name
            if request.comment is not None:
                entry.comment = request.comment
            added = entry.add_paths(paths)
            logger.info(
                f"Updated game '{entry.name}' with ID '{entry.id}' "
                f"({len(added)} new path(s))"
            )

        self.save(config)
        return entry

    def remove(self, game_id: str) -> GameEntry:
        """Remove a game entry.  Archives in the vault are left untouched."""
        config = self.load()
        entry = config.find(game_id)
        if entry is None:
            raise GameNotFoundError(game_id)

        config.games.remove(entry)
        self.save(config)
        logger.info(f"Removed game with ID '{game_id}' from '{self._path.name}'")
        return entry
