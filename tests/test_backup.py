"""Tests for the BackupService."""

from __future__ import annotations

import tarfile
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from kaguya.context import AppContext
from kaguya.core.backup import BackupService
from kaguya.core.hashing import hash_file
from kaguya.core.sync import SyncEngine
from kaguya.data.index import IntegrityIndex
from kaguya.data.vault_config import ConfigStore
from kaguya.errors import GameNotFoundError, PathNotFoundError, VaultIOError
from kaguya.models.requests import AddGameRequest, BackupRequest
from kaguya.utils import make_version


@pytest.fixture
def game(config_store: ConfigStore, sync_engine: SyncEngine, saves: Path) -> Path:
    """Configure 'outer_wilds' with its save folder and settings file, then sync."""
    config_store.upsert(
        AddGameRequest(
            id="outer_wilds",
            name="Outer Wilds",
            paths=[saves / "saves", saves / "settings.ini"],
        )
    )
    sync_engine.sync()
    return saves


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch):
    """Hand out one version per call, a minute apart."""
    moments = iter(datetime(2025, 3, 1, 12, minute, 0) for minute in range(60))
    monkeypatch.setattr("kaguya.core.backup.make_version", lambda: make_version(next(moments)))


class TestBackupCreation:
    def test_creates_version_dir_and_archives(
        self, backup_service: BackupService, game: Path, context: AppContext, clock
    ) -> None:
        (report,) = backup_service.backup(BackupRequest(id="outer_wilds"))
        assert report.version == "2025-03-01_12-00-00"
        assert report.version_dir == context.game_backup_dir("outer_wilds") / report.version
        assert sorted(p.name for p in report.version_dir.iterdir()) == [
            "saves.tar.gz",
            "settings.ini.tar.gz",
        ]

    def test_archive_holds_leaf_entry(
        self, backup_service: BackupService, game: Path, clock
    ) -> None:
        (report,) = backup_service.backup(BackupRequest(id="outer_wilds"))
        with tarfile.open(report.version_dir / "saves.tar.gz", "r:gz") as tar:
            names = tar.getnames()
        assert "saves/slot1/data.sav" in names
        assert all(n.split("/")[0] == "saves" for n in names)

    def test_records_checksums(
        self, backup_service: BackupService, index: IntegrityIndex, game: Path, clock
    ) -> None:
        (report,) = backup_service.backup(BackupRequest(id="outer_wilds"))
        (summary,) = index.list_backups()
        assert summary.backup.version == report.version
        assert summary.file_count == 2

        for f in index.list_backup_files(summary.backup.id):
            assert f.checksum == hash_file(f.archive_path)
            assert f.size_bytes == f.archive_path.stat().st_size
        assert summary.total_size == report.total_size

    def test_every_game_when_no_id(
        self,
        backup_service: BackupService,
        config_store: ConfigStore,
        sync_engine: SyncEngine,
        game: Path,
        clock,
    ) -> None:
        config_store.upsert(AddGameRequest(id="celeste", paths=[game / "settings.ini"]))
        sync_engine.sync()

        reports = backup_service.backup(BackupRequest())
        assert [r.game_id for r in reports] == ["outer_wilds", "celeste"]

    def test_game_without_paths_is_skipped(
        self,
        backup_service: BackupService,
        config_store: ConfigStore,
        sync_engine: SyncEngine,
        context: AppContext,
        clock,
    ) -> None:
        config_store.upsert(AddGameRequest(id="empty"))
        sync_engine.sync()
        assert backup_service.backup(BackupRequest(id="empty")) == []
        assert not context.game_backup_dir("empty").exists()

    def test_subset_of_paths(
        self, backup_service: BackupService, game: Path, clock
    ) -> None:
        (report,) = backup_service.backup(
            BackupRequest(id="outer_wilds", paths=[game / "settings.ini"])
        )
        assert [f.original_path for f in report.files] == [game / "settings.ini"]

    def test_duplicate_leaf_names_get_suffix(
        self,
        backup_service: BackupService,
        config_store: ConfigStore,
        sync_engine: SyncEngine,
        tmp_path: Path,
        clock,
    ) -> None:
        for sub in ("steam", "gog"):
            (tmp_path / sub / "save").mkdir(parents=True)
            (tmp_path / sub / "save" / "a.dat").write_text(sub, encoding="utf-8")
        config_store.upsert(
            AddGameRequest(id="g1", paths=[tmp_path / "steam" / "save", tmp_path / "gog" / "save"])
        )
        sync_engine.sync()

        (report,) = backup_service.backup(BackupRequest(id="g1"))
        assert [f.archive_path.name for f in report.files] == ["save.tar.gz", "save-2.tar.gz"]

    def test_same_second_twice_fails(
        self, backup_service: BackupService, game: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fixed = make_version(datetime(2025, 3, 1, 12, 0, 0))
        monkeypatch.setattr("kaguya.core.backup.make_version", lambda: fixed)
        backup_service.backup(BackupRequest(id="outer_wilds"))
        with pytest.raises(VaultIOError):
            backup_service.backup(BackupRequest(id="outer_wilds"))


class TestBackupFailures:
    def test_unreadable_archive_is_vault_error(
        self, backup_service: BackupService, game: Path, monkeypatch: pytest.MonkeyPatch, clock
    ) -> None:
        monkeypatch.setattr("kaguya.core.backup.compress", MagicMock())
        with pytest.raises(VaultIOError):
            backup_service.backup(BackupRequest(id="outer_wilds"))


class TestBackupValidation:
    def test_unknown_game(self, backup_service: BackupService, game: Path) -> None:
        with pytest.raises(GameNotFoundError):
            backup_service.backup(BackupRequest(id="ghost"))

    def test_unconfigured_path_writes_nothing(
        self,
        backup_service: BackupService,
        index: IntegrityIndex,
        context: AppContext,
        game: Path,
        tmp_path: Path,
    ) -> None:
        with pytest.raises(PathNotFoundError):
            backup_service.backup(BackupRequest(id="outer_wilds", paths=[tmp_path / "elsewhere"]))
        assert not context.game_backup_dir("outer_wilds").exists()
        assert index.list_backups() == []

    def test_missing_source_writes_nothing(
        self,
        backup_service: BackupService,
        index: IntegrityIndex,
        context: AppContext,
        game: Path,
    ) -> None:
        (game / "settings.ini").unlink()
        with pytest.raises(PathNotFoundError):
            backup_service.backup(BackupRequest(id="outer_wilds"))
        assert not context.game_backup_dir("outer_wilds").exists()
        assert index.list_backups() == []


class TestDryRun:
    def test_plans_without_writing(
        self, game: Path, context: AppContext, clock
    ) -> None:
        dry = AppContext(vault_dir=context.vault_dir, dry_run=True)
        with IntegrityIndex(dry) as index:
            service = BackupService(dry, ConfigStore(dry), index)
            (report,) = service.backup(BackupRequest(id="outer_wilds"))
            assert report.dry_run
            assert len(report.files) == 2

        assert not context.backup_dir.exists()
        with IntegrityIndex(context) as index:
            assert index.list_backups() == []


class TestHistoryAndVerify:
    def test_history_newest_first(
        self, backup_service: BackupService, game: Path, clock
    ) -> None:
        backup_service.backup(BackupRequest(id="outer_wilds"))
        backup_service.backup(BackupRequest(id="outer_wilds"))
        versions = [s.backup.version for s in backup_service.history("outer_wilds")]
        assert versions == ["2025-03-01_12-01-00", "2025-03-01_12-00-00"]

    def test_history_unknown_game(self, backup_service: BackupService, game: Path) -> None:
        with pytest.raises(GameNotFoundError):
            backup_service.history("ghost")

    def test_verify_clean(self, backup_service: BackupService, game: Path, clock) -> None:
        backup_service.backup(BackupRequest(id="outer_wilds"))
        assert backup_service.verify() == []

    def test_verify_detects_tampering(
        self, backup_service: BackupService, game: Path, clock
    ) -> None:
        (report,) = backup_service.backup(BackupRequest(id="outer_wilds"))
        (report.version_dir / "saves.tar.gz").write_bytes(b"garbage")
        (report.version_dir / "settings.ini.tar.gz").unlink()

        reasons = {i.archive_path.name: i.reason for i in backup_service.verify()}
        assert reasons == {
            "saves.tar.gz": "checksum mismatch",
            "settings.ini.tar.gz": "missing",
        }


class TestDeletion:
    def test_purge_removes_game_dir(
        self, backup_service: BackupService, game: Path, context: AppContext, clock
    ) -> None:
        backup_service.backup(BackupRequest(id="outer_wilds"))
        assert backup_service.purge("outer_wilds") == context.game_backup_dir("outer_wilds")
        assert not context.game_backup_dir("outer_wilds").exists()

    def test_purge_without_backups(self, backup_service: BackupService) -> None:
        assert backup_service.purge("ghost") is None

    def test_prune_not_implemented(self, backup_service: BackupService) -> None:
        with pytest.raises(NotImplementedError):
            backup_service.prune("outer_wilds", policy=None)
