"""Restore service — replace live paths with archived versions, atomically."""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from kaguya.core.archive import decompress
from kaguya.errors import NoPathsConfiguredError, VaultIOError
from kaguya.utils import get_file_name

if TYPE_CHECKING:
    from kaguya.context import AppContext
    from kaguya.data.index import IntegrityIndex
    from kaguya.data.vault_config import ConfigStore
    from kaguya.models.requests import RestoreRequest

TEMP_PREFIX = ".kaguya-restore"


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    game_id: str
    version: str | None = None
    restored: list[Path] = field(default_factory=list)
    dry_run: bool = False


def restore_archive(src: Path, dst: Path) -> None:
    """
    Restore one archive over ``dst``.

    The archive is unpacked into a temporary directory next to ``dst`` (same
    filesystem, so the final rename is atomic), the old ``dst`` is removed,
    and the unpacked entry is renamed into place.  The temporary directory
    is removed whether or not the restore succeeds.
    """
    leaf = get_file_name(dst)
    parent = dst.parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
        temp = tempfile.TemporaryDirectory(
            prefix=f"{TEMP_PREFIX}-{os.getpid()}-", dir=parent, ignore_cleanup_errors=True
        )
    except OSError as e:
        raise VaultIOError(f"Failed to create restore directory under '{parent}': {e}") from e

    with temp as temp_name:
        temp_dir = Path(temp_name)
        decompress(src, temp_dir)
        unpacked = temp_dir / leaf
        if not unpacked.exists() and not unpacked.is_symlink():
            raise VaultIOError(f"Archive '{src}' does not contain an entry named '{leaf}'")

        _remove_existing(dst)
        try:
            unpacked.rename(dst)
        except OSError as e:
            raise VaultIOError(f"Failed to move restored '{leaf}' into '{dst}': {e}") from e


def _remove_existing(dst: Path) -> None:
    try:
        if dst.is_symlink() or dst.is_file():
            dst.unlink()
        elif dst.is_dir():
            shutil.rmtree(dst)
        elif dst.exists():
            raise VaultIOError(f"Invalid type of path: '{dst}'")
    except OSError as e:
        raise VaultIOError(f"Failed to remove '{dst}' before restore: {e}") from e


class RestoreService:
    """Resolve archives through the index and restore them path by path."""

    def __init__(
        self,
        context: AppContext,
        config_store: ConfigStore,
        index: IntegrityIndex,
    ) -> None:
        self._context = context
        self._config_store = config_store
        self._index = index

    def restore(self, request: RestoreRequest) -> RestoreResult:
        """
        Restore a game's paths at ``request.version`` (latest when omitted).

        Paths are restored independently: a failure stops the run but
        does not roll back paths restored before it.
        """
        game_id = self._index.find_internal_id(request.id)
        if request.paths:
            paths = list(request.paths)
        else:
            paths = list(self._config_store.get(request.id).paths)
        if not paths:
            raise NoPathsConfiguredError(request.id)

        result = RestoreResult(
            game_id=request.id,
            version=request.version,
            dry_run=self._context.dry_run,
        )
        for path in paths:
            archive = self._index.resolve_archive(game_id, request.version, path)

            if self._context.dry_run:
                logger.info(f"[dry-run] Would restore '{archive}' to '{path}'")
                result.restored.append(path)
                continue

            logger.info(f"Restoring '{path}' from '{archive}'...")
            restore_archive(archive, path)
            result.restored.append(path)

        logger.info(f"Restored {len(result.restored)} path(s) of game '{request.id}'")
        return result
