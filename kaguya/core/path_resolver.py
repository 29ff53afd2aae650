"""Portable path resolver — swap the home directory for a ``~`` placeholder."""

from __future__ import annotations

import os
from pathlib import Path

HOME_PLACEHOLDER = "~"


def shrink_path(path: str | Path) -> Path:
    """Convert an absolute path under the home directory to ``~/...`` form.

    Paths outside the home directory are returned unchanged.
    """
    path = Path(path)
    try:
        relative = path.relative_to(Path.home())
    except ValueError:
        return path
    return Path(HOME_PLACEHOLDER) / relative


def expand_path(path: str | Path) -> Path:
    """Expand a leading ``~`` placeholder into the current home directory."""
    path = Path(path)
    if path.parts and path.parts[0] == HOME_PLACEHOLDER:
        return Path.home().joinpath(*path.parts[1:])
    return path


def to_absolute_path(path: str | Path) -> Path:
    """Resolve a user-supplied path against the working directory.

    Symlinks are not followed, so the stored path is the one the user typed.
    """
    path = expand_path(path)
    if not path.is_absolute():
        path = Path.cwd() / path
    return Path(os.path.normpath(path))
