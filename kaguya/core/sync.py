"""Sync engine — reconcile the SQLite index with the declarative vault config."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from kaguya.core.hashing import hash_file
from kaguya.data.index import KEY_VAULT_CONFIG_HASH
from kaguya.models.index import IndexedGame, UpsertOutcome

if TYPE_CHECKING:
    from kaguya.context import AppContext
    from kaguya.data.index import IntegrityIndex
    from kaguya.data.vault_config import ConfigStore
    from kaguya.models.game_config import VaultConfig

# Stands in for the hash of a missing vault.toml, which loads as an empty config
ABSENT_CONFIG_HASH = "absent"


@dataclass
class SyncReport:
    """What one reconciliation changed in the index."""

    performed: bool = False
    inserted_games: list[str] = field(default_factory=list)
    updated_games: list[str] = field(default_factory=list)
    pruned_games: list[str] = field(default_factory=list)
    inserted_paths: int = 0
    pruned_paths: list[tuple[str, str]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.inserted_games
            or self.updated_games
            or self.pruned_games
            or self.inserted_paths
            or self.pruned_paths
        )


class SyncEngine:
    """
    Keeps the index in step with ``vault.toml``.

    The config file's SHA-256 is stored in the index meta table after every
    successful reconciliation.  While the file hash matches, syncing is a
    no-op.  Otherwise the whole config is diffed against the whole index:
    games and paths are upserted first, then anything no longer declared is
    pruned, and only then is the new hash recorded.  A failure part-way
    leaves the old hash in place so the next run starts over.  A missing
    config file counts as an empty config, so deleting it prunes the
    index once.
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

    def sync(self, force: bool = False) -> SyncReport:
        """Reconcile the index if the config changed (or ``force`` is set)."""
        report = SyncReport()
        new_hash = self._config_hash()
        if not force and new_hash == self._index.get_meta(KEY_VAULT_CONFIG_HASH):
            logger.debug("Vault config unchanged, index is up to date")
            return report

        logger.info("Vault config has changed, syncing index...")
        config = self._config_store.load()

        changes = self._index.total_changes
        self._upsert_games(config, report)
        self._prune_games(config, report)
        self._prune_paths(config, report)
        logger.debug(f"Sync wrote {self._index.total_changes - changes} index row(s)")

        self._index.set_meta(KEY_VAULT_CONFIG_HASH, new_hash)
        report.performed = True

        prefix = "[dry-run] " if self._context.dry_run else ""
        logger.info(
            f"{prefix}Index synced: {len(report.inserted_games)} added, "
            f"{len(report.updated_games)} updated, {len(report.pruned_games)} pruned game(s); "
            f"{report.inserted_paths} added, {len(report.pruned_paths)} pruned path(s)"
        )
        return report

    # ── Steps ──

    def _config_hash(self) -> str:
        path = self._config_store.path
        if not path.exists():
            return ABSENT_CONFIG_HASH
        return hash_file(path)

    def _upsert_games(self, config: VaultConfig, report: SyncReport) -> None:
        for entry in config.games:
            game_id, outcome = self._index.upsert_game(
                IndexedGame(
                    external_id=entry.id,
                    name=entry.name,
                    comment=entry.comment,
                    keep_versions=entry.keep_versions,
                )
            )
            if outcome is UpsertOutcome.INSERTED:
                report.inserted_games.append(entry.id)
            elif outcome is UpsertOutcome.UPDATED:
                report.updated_games.append(entry.id)

            report.inserted_paths += self._index.upsert_paths(game_id, entry.paths)

    def _prune_games(self, config: VaultConfig, report: SyncReport) -> None:
        declared = config.game_ids
        for game in self._index.list_games():
            if game.external_id in declared:
                continue
            self._index.delete_game(game.id)
            report.pruned_games.append(game.external_id)
            logger.info(f"Pruned game with ID '{game.external_id}' from index as it's not in config")

    def _prune_paths(self, config: VaultConfig, report: SyncReport) -> None:
        declared = {
            (entry.id, str(path)) for entry in config.games for path in entry.paths
        }
        for indexed in self._index.list_paths():
            key = (indexed.external_id, indexed.original_path)
            if key in declared:
                continue
            self._index.delete_path(indexed.id)
            report.pruned_paths.append(key)
            logger.info(
                f"Pruned path '{indexed.original_path}' of game '{indexed.external_id}' "
                f"from index as it's not in config"
            )
