"""Content hashing — SHA-256 digests for files and whole directory trees."""

from __future__ import annotations

import hashlib
from pathlib import Path

from kaguya.errors import PathNotFoundError, VaultIOError

CHUNK_SIZE = 8192


def hash_file(path: str | Path) -> str:
    """Compute the SHA-256 hex digest of a file, streamed in fixed-size chunks."""
    h = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                h.update(chunk)
    except FileNotFoundError as e:
        raise PathNotFoundError(path) from e
    except OSError as e:
        raise VaultIOError(f"Failed to read '{path}': {e}") from e
    return h.hexdigest()


def hash_entry(path: str | Path) -> str:
    """
    Compute a checksum for a file or a directory.

    Files hash to their content digest.  Directories hash to a digest over
    every contained file's ``(relative path, content digest)`` pair, sorted
    by relative path, so the result depends only on structure and content
    and never on filesystem enumeration order.
    """
    path = Path(path)
    if not path.exists():
        raise PathNotFoundError(path)
    if path.is_file():
        return hash_file(path)
    if path.is_dir():
        return _hash_directory(path)
    raise VaultIOError(f"Unsupported file type at '{path}'")


def _hash_directory(root: Path) -> str:
    pairs: list[tuple[str, str]] = []
    for child in root.rglob("*"):
        if child.is_file():
            pairs.append((child.relative_to(root).as_posix(), hash_file(child)))
    pairs.sort(key=lambda pair: pair[0])

    h = hashlib.sha256()
    for rel_path, content_hash in pairs:
        h.update(rel_path.encode("utf-8"))
        h.update(content_hash.encode("ascii"))
    return h.hexdigest()
