"""Application context — resolved vault paths, flags and the service container."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kaguya.config import Config
    from kaguya.core.backup import BackupService
    from kaguya.core.restore import RestoreService
    from kaguya.core.sync import SyncEngine
    from kaguya.data.index import IntegrityIndex
    from kaguya.data.vault_config import ConfigStore

VAULT_CONFIG_FILE = "vault.toml"
DB_FILE = "kaguya.db"
BACKUP_DIR = "backups"


@dataclass(frozen=True)
class AppContext:
    """
    Resolved global options for one command invocation.

    Every service receives this at construction time instead of reading
    global state.
    """

    vault_dir: Path
    dry_run: bool = False

    @classmethod
    def from_config(
        cls,
        config: Config,
        vault: Path | None = None,
        dry_run: bool = False,
    ) -> AppContext:
        """Build a context; an explicit ``vault`` overrides the config value."""
        return cls(vault_dir=vault or config.vault_dir, dry_run=dry_run)

    @property
    def vault_config_path(self) -> Path:
        return self.vault_dir / VAULT_CONFIG_FILE

    @property
    def db_path(self) -> Path:
        return self.vault_dir / DB_FILE

    @property
    def backup_dir(self) -> Path:
        return self.vault_dir / BACKUP_DIR

    def game_backup_dir(self, game_id: str) -> Path:
        return self.backup_dir / game_id


@dataclass
class Services:
    """Central service container, wired once per vault command."""

    context: AppContext
    config_store: ConfigStore
    index: IntegrityIndex
    sync_engine: SyncEngine
    backup_service: BackupService
    restore_service: RestoreService
