"""Archive codec — tar+gzip a file or directory, keeping its top-level name."""

from __future__ import annotations

import tarfile
from pathlib import Path

from loguru import logger

from kaguya.errors import PathNotFoundError, VaultIOError
from kaguya.utils import get_file_name

ARCHIVE_SUFFIX = ".tar.gz"


def archive_name_for(src: str | Path) -> str:
    """Archive file name for a source path: its final component + ``.tar.gz``."""
    return get_file_name(src) + ARCHIVE_SUFFIX


def compress(src: str | Path, dst: str | Path) -> None:
    """
    Compress ``src`` into the ``.tar.gz`` file ``dst``.

    A file becomes a single entry named by its final path component.  A
    directory is stored recursively under a top-level entry named by its
    final path component, so ``~/games/foo/saves`` unpacks to ``saves/...``.
    """
    src = Path(src)
    dst = Path(dst)
    if not src.exists():
        raise PathNotFoundError(src)

    arcname = get_file_name(src)
    try:
        with tarfile.open(dst, "w:gz") as tar:
            tar.add(src, arcname=arcname, recursive=True)
    except (OSError, tarfile.TarError) as e:
        dst.unlink(missing_ok=True)
        raise VaultIOError(f"Failed to compress '{src}' to '{dst}': {e}") from e

    logger.debug(f"Compressed '{src}' to '{dst}'")


def decompress(src: str | Path, dst_dir: str | Path) -> None:
    """
    Unpack the ``.tar.gz`` file ``src`` into ``dst_dir``.

    The archive is expected to hold a single top-level entry written by
    :func:`compress`; it lands at ``dst_dir/<entry>``.  Members that would
    escape ``dst_dir`` are rejected.
    """
    src = Path(src)
    dst_dir = Path(dst_dir)
    if not src.exists():
        raise PathNotFoundError(src, "archive missing")

    try:
        dst_dir.mkdir(parents=True, exist_ok=True)
        with tarfile.open(src, "r:gz") as tar:
            tar.extractall(dst_dir, filter="data")
    except (OSError, tarfile.TarError) as e:
        raise VaultIOError(f"Failed to decompress '{src}' to '{dst_dir}': {e}") from e

    logger.debug(f"Decompressed '{src}' to '{dst_dir}'")
