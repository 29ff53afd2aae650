"""Declarative game entries as stored in ``vault.toml``."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class GameEntry:
    """One game in the vault config, paths held in absolute form."""

    id: str
    name: str
    paths: list[Path] = field(default_factory=list)
    comment: str | None = None
    keep_versions: int | None = None

    def has_path(self, path: Path) -> bool:
        return path in self.paths

    def add_paths(self, paths: list[Path]) -> list[Path]:
        """Append paths not already present, keeping first-seen order.

        Returns the paths that were actually added.
        """
        added: list[Path] = []
        for path in paths:
            if path not in self.paths:
                self.paths.append(path)
                added.append(path)
        return added


@dataclass
class VaultConfig:
    """Contents of ``vault.toml``: an ordered list of games."""

    games: list[GameEntry] = field(default_factory=list)

    def find(self, game_id: str) -> GameEntry | None:
        for game in self.games:
            if game.id == game_id:
                return game
        return None

    @property
    def game_ids(self) -> set[str]:
        return {game.id for game in self.games}
