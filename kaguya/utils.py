"""Shared utility functions."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from kaguya.errors import FileNameError

VERSION_FORMAT = "%Y-%m-%d_%H-%M-%S"


def format_size(size_bytes: int) -> str:
    """Format byte count to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def get_file_name(path: str | Path) -> str:
    """Final component of a path; raises FileNameError for roots and ``..``."""
    name = Path(path).name
    if not name or name in (".", ".."):
        raise FileNameError(path)
    return name


def make_version(now: datetime | None = None) -> tuple[str, int]:
    """
    Build a backup version from local time.

    Returns ``(label, timestamp)``: the ``YYYY-MM-DD_HH-MM-SS`` label used as
    the version directory name, and Unix seconds used to order versions.
    """
    now = now or datetime.now()
    return now.strftime(VERSION_FORMAT), int(now.timestamp())


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string, for index timestamps."""
    return datetime.now(tz=timezone.utc).isoformat()
