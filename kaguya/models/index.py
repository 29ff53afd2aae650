"""Row models for the SQLite integrity index."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class UpsertOutcome(StrEnum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class IndexedGame:
    """A ``game`` row; ``id`` is None until the row is written."""

    external_id: str
    name: str
    comment: str | None = None
    keep_versions: int | None = None
    created_at: str = ""
    updated_at: str = ""
    id: int | None = None


@dataclass
class IndexedPath:
    """A ``game_path`` row joined with its owning game's external id."""

    id: int
    game_id: int
    external_id: str
    original_path: str


@dataclass
class Backup:
    id: int
    game_id: int
    version: str
    timestamp: int


@dataclass
class BackupFile:
    """A ``backup_file`` row, one archive produced by one backup run."""

    original_path: Path
    archive_path: Path
    size_bytes: int
    checksum: str
    backup_id: int | None = None
    id: int | None = None


@dataclass
class BackupSummary:
    """A backup run with its game's external id and archive totals."""

    backup: Backup
    external_id: str
    file_count: int = 0
    total_size: int = 0
