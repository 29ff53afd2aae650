"""Backup service — versioned tar.gz archives with checksums recorded in the index."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from kaguya.core.archive import ARCHIVE_SUFFIX, archive_name_for, compress
from kaguya.core.hashing import hash_file
from kaguya.errors import (
    GameNotFoundError,
    PathNotFoundError,
    VaultIOError,
)
from kaguya.models.index import BackupFile, BackupSummary
from kaguya.utils import format_size, make_version

if TYPE_CHECKING:
    from kaguya.context import AppContext
    from kaguya.data.index import IntegrityIndex
    from kaguya.data.vault_config import ConfigStore
    from kaguya.models.game_config import GameEntry
    from kaguya.models.requests import BackupRequest


class RetentionPolicy(Protocol):
    """Decides which recorded backups of a game may be deleted."""

    def select_expired(self, backups: list[BackupSummary]) -> list[BackupSummary]: ...


@dataclass
class BackupReport:
    """Result of backing up one game."""

    game_id: str
    version: str
    version_dir: Path
    files: list[BackupFile] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total_size(self) -> int:
        return sum(f.size_bytes for f in self.files)


@dataclass
class VerifyIssue:
    """A recorded archive that is missing or no longer matches its checksum."""

    game_id: str
    version: str
    archive_path: Path
    reason: str


class BackupService:
    """
    Creates one version directory per game per run:

      {vault}/backups/{game_id}/{YYYY-MM-DD_HH-MM-SS}/
        ├── {leaf}.tar.gz
        └── ...

    Every archive's size and SHA-256 are recorded in the index, all rows of
    a run in one transaction.
    """

    def __init__(
        self,
        context: AppContext,
        config_store: ConfigStore,
        index: IntegrityIndex,
    ) -> None:
        self._context = context
        self._config_store = config_store
        self._index = index

    # ── Backup ──

    def backup(self, request: BackupRequest) -> list[BackupReport]:
        """
        Back up game saves and configuration.

        No id backs up every game; an id backs up that game; an id with
        paths backs up only those paths, each of which must already be
        configured for the game.  All validation happens before any write.
        """
        targets = self._resolve_targets(request)

        reports: list[BackupReport] = []
        for entry, paths in targets:
            report = self._backup_game(entry, paths)
            if report is not None:
                reports.append(report)
        return reports

    def _resolve_targets(self, request: BackupRequest) -> list[tuple[GameEntry, list[Path]]]:
        config = self._config_store.load()

        if request.id is None:
            return [(entry, list(entry.paths)) for entry in config.games]

        entry = config.find(request.id)
        if entry is None:
            raise GameNotFoundError(request.id)

        if not request.paths:
            return [(entry, list(entry.paths))]

        for path in request.paths:
            if not entry.has_path(path):
                raise PathNotFoundError(path, f"not configured for game '{entry.id}'")
        return [(entry, list(request.paths))]

    def _backup_game(self, entry: GameEntry, paths: list[Path]) -> BackupReport | None:
        if not paths:
            logger.info(f"Game '{entry.id}' has no paths configured, skipping")
            return None

        game_id = self._index.find_internal_id(entry.id)
        version, timestamp = make_version()
        version_dir = self._context.game_backup_dir(entry.id) / version
        archive_names = self._archive_names(paths)

        for path in paths:
            if not path.exists():
                raise PathNotFoundError(path, f"source of game '{entry.id}' is missing")

        report = BackupReport(
            game_id=entry.id,
            version=version,
            version_dir=version_dir,
            dry_run=self._context.dry_run,
        )

        if self._context.dry_run:
            for path, name in zip(paths, archive_names):
                logger.info(f"[dry-run] Would compress '{path}' to '{version_dir / name}'")
                report.files.append(
                    BackupFile(
                        original_path=path,
                        archive_path=version_dir / name,
                        size_bytes=0,
                        checksum="",
                    )
                )
            return report

        if version_dir.exists():
            raise VaultIOError(f"Backup version directory already exists: '{version_dir}'")
        try:
            version_dir.mkdir(parents=True)
        except OSError as e:
            raise VaultIOError(f"Failed to create '{version_dir}': {e}") from e

        backup_id = self._index.insert_backup(game_id, version, timestamp)

        for path, name in zip(paths, archive_names):
            archive = version_dir / name
            logger.info(f"Compressing '{path}'...")
            compress(path, archive)
            try:
                size = archive.stat().st_size
            except OSError as e:
                raise VaultIOError(f"Failed to stat archive '{archive}': {e}") from e
            report.files.append(
                BackupFile(
                    original_path=path,
                    archive_path=archive,
                    size_bytes=size,
                    checksum=hash_file(archive),
                    backup_id=backup_id,
                )
            )
            logger.info(f"Compressed to '{archive}'")

        self._index.insert_backup_files(backup_id, report.files)
        logger.info(
            f"Backed up '{entry.name}' ({entry.id}) as version {version}: "
            f"{len(report.files)} archive(s), {format_size(report.total_size)}"
        )
        return report

    @staticmethod
    def _archive_names(paths: list[Path]) -> list[str]:
        """Archive file names per path; repeated leaf names get a numeric suffix."""
        names: list[str] = []
        used: set[str] = set()
        for path in paths:
            name = archive_name_for(path)
            leaf = name.removesuffix(ARCHIVE_SUFFIX)
            n = 2
            while name in used:
                name = f"{leaf}-{n}{ARCHIVE_SUFFIX}"
                n += 1
            used.add(name)
            names.append(name)
        return names

    # ── Queries ──

    def history(self, game_id: str | None = None) -> list[BackupSummary]:
        """Recorded backups, newest first, optionally for one game."""
        internal_id = self._index.find_internal_id(game_id) if game_id else None
        return self._index.list_backups(internal_id)

    def verify(self) -> list[VerifyIssue]:
        """Check every recorded archive still exists and matches its checksum."""
        issues: list[VerifyIssue] = []
        for summary in self._index.list_backups():
            for f in self._index.list_backup_files(summary.backup.id):
                if not f.archive_path.is_file():
                    reason = "missing"
                elif hash_file(f.archive_path) != f.checksum:
                    reason = "checksum mismatch"
                else:
                    continue
                issues.append(
                    VerifyIssue(
                        game_id=summary.external_id,
                        version=summary.backup.version,
                        archive_path=f.archive_path,
                        reason=reason,
                    )
                )
                logger.warning(
                    f"{summary.external_id} {summary.backup.version}: "
                    f"'{f.archive_path}' {reason}"
                )
        return issues

    # ── Deletion ──

    def purge(self, game_id: str) -> Path | None:
        """Delete every archive of a game.  Returns the removed directory, if any."""
        game_dir = self._context.game_backup_dir(game_id)
        if not game_dir.exists():
            logger.info(f"No backups found for game '{game_id}'")
            return None

        if self._context.dry_run:
            logger.info(f"[dry-run] Would delete all backups in '{game_dir}'")
            return game_dir

        try:
            shutil.rmtree(game_dir)
        except OSError as e:
            raise VaultIOError(f"Failed to purge backups in '{game_dir}': {e}") from e
        logger.info(f"Purged all backups of game '{game_id}'")
        return game_dir

    def prune(self, game_id: str, policy: RetentionPolicy) -> list[BackupSummary]:
        """Apply a retention policy to a game's backups."""
        # TODO: wire keep_versions into a RetentionPolicy once the policy format is settled.
        raise NotImplementedError("Retention policies are not implemented yet")
