"""Requests handed from the command line to the core services."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class AddGameRequest:
    """Add a new game, or merge into an existing one with the same id."""

    id: str
    name: str | None = None
    paths: list[Path] | None = None
    comment: str | None = None


@dataclass
class RemoveGameRequest:
    id: str
    purge: bool = False


@dataclass
class BackupRequest:
    """No id: every game.  Id only: all its paths.  Id + paths: those paths."""

    id: str | None = None
    paths: list[Path] | None = None


@dataclass
class RestoreRequest:
    """Restore a game at ``version`` (latest when omitted)."""

    id: str
    version: str | None = None
    paths: list[Path] | None = None
