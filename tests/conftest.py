"""Shared fixtures: a throwaway vault with its config store, index and services."""

from __future__ import annotations

from pathlib import Path

import pytest

from kaguya.context import AppContext
from kaguya.core.backup import BackupService
from kaguya.core.restore import RestoreService
from kaguya.core.sync import SyncEngine
from kaguya.data.index import IntegrityIndex
from kaguya.data.vault_config import ConfigStore


@pytest.fixture
def context(tmp_path: Path) -> AppContext:
    return AppContext(vault_dir=tmp_path / "vault")


@pytest.fixture
def config_store(context: AppContext) -> ConfigStore:
    return ConfigStore(context)


@pytest.fixture
def index(context: AppContext):
    idx = IntegrityIndex(context)
    yield idx
    idx.close()


@pytest.fixture
def sync_engine(context: AppContext, config_store: ConfigStore, index: IntegrityIndex) -> SyncEngine:
    return SyncEngine(context, config_store, index)


@pytest.fixture
def backup_service(
    context: AppContext, config_store: ConfigStore, index: IntegrityIndex
) -> BackupService:
    return BackupService(context, config_store, index)


@pytest.fixture
def restore_service(
    context: AppContext, config_store: ConfigStore, index: IntegrityIndex
) -> RestoreService:
    return RestoreService(context, config_store, index)


@pytest.fixture
def saves(tmp_path: Path) -> Path:
    """A game directory with a save folder and a loose settings file."""
    game_dir = tmp_path / "games" / "outer_wilds"
    (game_dir / "saves" / "slot1").mkdir(parents=True)
    (game_dir / "saves" / "slot1" / "data.sav").write_bytes(b"slot one")
    (game_dir / "saves" / "profile.json").write_text('{"name": "hearthian"}', encoding="utf-8")
    (game_dir / "settings.ini").write_text("[video]\nvsync=1\n", encoding="utf-8")
    return game_dir
