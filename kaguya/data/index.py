"""Integrity index — SQLite store for games, paths, backups and sync metadata."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from loguru import logger

from kaguya.core.path_resolver import expand_path, shrink_path
from kaguya.errors import (
    BackupNotFoundError,
    DatabaseError,
    GameNotFoundError,
    PathNotFoundError,
)
from kaguya.models.index import (
    Backup,
    BackupFile,
    BackupSummary,
    IndexedGame,
    IndexedPath,
    UpsertOutcome,
)
from kaguya.utils import utc_now_iso

if TYPE_CHECKING:
    from kaguya.context import AppContext

KEY_SCHEMA_VERSION = "schema_version"
KEY_VAULT_CONFIG_HASH = "vault_config_hash"

SCHEMA_VERSION = "1"

INITIAL_SCHEMA = """
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS game (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id   TEXT NOT NULL UNIQUE,
    name          TEXT NOT NULL,
    comment       TEXT,
    keep_versions INTEGER,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS game_path (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id       INTEGER NOT NULL REFERENCES game(id) ON DELETE CASCADE,
    original_path TEXT NOT NULL,
    UNIQUE (game_id, original_path)
);

CREATE TABLE IF NOT EXISTS backup (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id   INTEGER NOT NULL REFERENCES game(id) ON DELETE CASCADE,
    version   TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    UNIQUE (game_id, version)
);

CREATE TABLE IF NOT EXISTS backup_file (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    backup_id     INTEGER NOT NULL REFERENCES backup(id) ON DELETE CASCADE,
    original_path TEXT NOT NULL,
    archive_path  TEXT NOT NULL,
    size_bytes    INTEGER NOT NULL,
    checksum      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_backup_game_timestamp ON backup(game_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_backup_file_backup ON backup_file(backup_id);
"""


class IntegrityIndex:
    """
    Relational index over the vault, one SQLite file per vault.

    Operations are grouped by table (meta, game, game_path, backup).  Every
    multi-row write runs inside a single transaction, so a crash mid-batch
    never leaves partial rows behind.

    In dry-run mode the on-disk database is copied into memory and all
    writes land there, which keeps lookups and validation working while
    nothing is persisted.
    """

    def __init__(self, context: AppContext) -> None:
        self._context = context
        self._path = context.db_path
        self._conn = self._connect()
        self._ensure_initialized()

    # ── Connection ──

    def _connect(self) -> sqlite3.Connection:
        try:
            if self._context.dry_run:
                conn = sqlite3.connect(":memory:")
                if self._path.exists():
                    disk = sqlite3.connect(f"{self._path.resolve().as_uri()}?mode=ro", uri=True)
                    try:
                        disk.backup(conn)
                    finally:
                        disk.close()
            else:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self._path))
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise DatabaseError(f"Could not open index '{self._path}': {e}") from e
        except OSError as e:
            raise DatabaseError(f"Could not create index directory for '{self._path}': {e}") from e
        return conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> IntegrityIndex:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back and re-raise as DatabaseError on failure."""
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise DatabaseError(f"Index write failed: {e}") from e
        except Exception:
            self._conn.rollback()
            raise

    def _query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Index query failed: {e}") from e

    @property
    def total_changes(self) -> int:
        """Rows modified since the connection was opened."""
        return self._conn.total_changes

    # ── Schema ──

    def _ensure_initialized(self) -> None:
        """Apply the initial schema once, when no schema version is recorded."""
        has_meta = self._query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'meta'"
        )
        if has_meta and self.get_meta(KEY_SCHEMA_VERSION) is not None:
            return

        logger.info("Index not found. Initializing new database...")
        try:
            self._conn.executescript(INITIAL_SCHEMA)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to initialize index schema: {e}") from e
        self.set_meta(KEY_SCHEMA_VERSION, SCHEMA_VERSION)
        logger.debug(f"Index initialized at schema version {SCHEMA_VERSION}")

    # ── Meta ──

    def get_meta(self, key: str) -> str | None:
        rows = self._query("SELECT value FROM meta WHERE key = ?", (key,))
        return rows[0]["value"] if rows else None

    def set_meta(self, key: str, value: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO meta (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    # ── Games ──

    def upsert_game(self, game: IndexedGame) -> tuple[int, UpsertOutcome]:
        """
        Insert a game keyed by external id, or update it in place.

        An existing row is only rewritten when name, comment or
        keep_versions actually differ, so ``updated_at`` does not churn.
        Returns the internal id and what happened.
        """
        rows = self._query(
            "SELECT id, name, comment, keep_versions FROM game WHERE external_id = ?",
            (game.external_id,),
        )
        now = utc_now_iso()

        if not rows:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO game (external_id, name, comment, keep_versions, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (game.external_id, game.name, game.comment, game.keep_versions, now, now),
                )
            return int(cursor.lastrowid), UpsertOutcome.INSERTED

        row = rows[0]
        current = (row["name"], row["comment"], row["keep_versions"])
        if current == (game.name, game.comment, game.keep_versions):
            return int(row["id"]), UpsertOutcome.UNCHANGED

        with self._transaction() as conn:
            conn.execute(
                "UPDATE game SET name = ?, comment = ?, keep_versions = ?, updated_at = ? "
                "WHERE id = ?",
                (game.name, game.comment, game.keep_versions, now, row["id"]),
            )
        return int(row["id"]), UpsertOutcome.UPDATED

    def find_internal_id(self, external_id: str) -> int:
        rows = self._query("SELECT id FROM game WHERE external_id = ?", (external_id,))
        if not rows:
            raise GameNotFoundError(external_id)
        return int(rows[0]["id"])

    def list_games(self) -> list[IndexedGame]:
        rows = self._query("SELECT * FROM game ORDER BY name, external_id")
        return [self._row_to_game(row) for row in rows]

    def delete_game(self, game_id: int) -> None:
        """Delete a game; its paths and backup records cascade."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM game WHERE id = ?", (game_id,))

    @staticmethod
    def _row_to_game(row: sqlite3.Row) -> IndexedGame:
        return IndexedGame(
            id=row["id"],
            external_id=row["external_id"],
            name=row["name"],
            comment=row["comment"],
            keep_versions=row["keep_versions"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ── Paths ──

    def upsert_paths(self, game_id: int, paths: Iterable[Path]) -> int:
        """Insert any missing paths for a game in one transaction; returns rows added."""
        inserted = 0
        with self._transaction() as conn:
            for path in paths:
                cursor = conn.execute(
                    "INSERT INTO game_path (game_id, original_path) VALUES (?, ?) "
                    "ON CONFLICT(game_id, original_path) DO NOTHING",
                    (game_id, str(path)),
                )
                inserted += cursor.rowcount
        return inserted

    def list_paths(self) -> list[IndexedPath]:
        """Every indexed path in the vault, with its game's external id."""
        rows = self._query(
            "SELECT gp.id, gp.game_id, g.external_id, gp.original_path "
            "FROM game_path AS gp JOIN game AS g ON gp.game_id = g.id "
            "ORDER BY gp.id"
        )
        return [
            IndexedPath(
                id=row["id"],
                game_id=row["game_id"],
                external_id=row["external_id"],
                original_path=row["original_path"],
            )
            for row in rows
        ]

    def delete_path(self, path_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM game_path WHERE id = ?", (path_id,))

    # ── Backups ──

    def insert_backup(self, game_id: int, version: str, timestamp: int) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO backup (game_id, version, timestamp) VALUES (?, ?, ?)",
                (game_id, version, timestamp),
            )
        return int(cursor.lastrowid)

    def insert_backup_files(self, backup_id: int, files: Iterable[BackupFile]) -> None:
        """Record every archive of one backup run, all-or-nothing."""
        with self._transaction() as conn:
            conn.executemany(
                "INSERT INTO backup_file (backup_id, original_path, archive_path, size_bytes, checksum) "
                "VALUES (?, ?, ?, ?, ?)",
                [
                    (
                        backup_id,
                        str(f.original_path),
                        str(shrink_path(f.archive_path)),
                        f.size_bytes,
                        f.checksum,
                    )
                    for f in files
                ],
            )

    def resolve_archive(
        self, game_id: int, version: str | None, original_path: Path
    ) -> Path:
        """
        Find the archive holding ``original_path`` for a game.

        With a version, the exact backup is used; without one, the backup
        with the greatest timestamp that contains the path.
        """
        path_str = str(original_path)
        if version is not None:
            rows = self._query(
                "SELECT bf.archive_path FROM backup AS b "
                "JOIN backup_file AS bf ON b.id = bf.backup_id "
                "WHERE b.game_id = ? AND b.version = ? AND bf.original_path = ?",
                (game_id, version, path_str),
            )
            if rows:
                return expand_path(rows[0]["archive_path"])
            if not self._query(
                "SELECT 1 FROM backup WHERE game_id = ? AND version = ?", (game_id, version)
            ):
                raise BackupNotFoundError(self._external_id(game_id), version, original_path)
            raise PathNotFoundError(original_path, f"not part of backup version '{version}'")

        rows = self._query(
            "SELECT bf.archive_path FROM backup AS b "
            "JOIN backup_file AS bf ON b.id = bf.backup_id "
            "WHERE b.game_id = ? AND bf.original_path = ? "
            "ORDER BY b.timestamp DESC, b.id DESC LIMIT 1",
            (game_id, path_str),
        )
        if not rows:
            raise BackupNotFoundError(self._external_id(game_id), "latest", original_path)
        return expand_path(rows[0]["archive_path"])

    def list_backups(self, game_id: int | None = None) -> list[BackupSummary]:
        """Recorded backups with file counts and sizes, newest first."""
        sql = (
            "SELECT b.id, b.game_id, g.external_id, b.version, b.timestamp, "
            "COUNT(bf.id) AS file_count, COALESCE(SUM(bf.size_bytes), 0) AS total_size "
            "FROM backup AS b "
            "JOIN game AS g ON b.game_id = g.id "
            "LEFT JOIN backup_file AS bf ON bf.backup_id = b.id "
        )
        params: tuple[Any, ...] = ()
        if game_id is not None:
            sql += "WHERE b.game_id = ? "
            params = (game_id,)
        sql += "GROUP BY b.id ORDER BY b.timestamp DESC, b.id DESC"

        return [
            BackupSummary(
                backup=Backup(
                    id=row["id"],
                    game_id=row["game_id"],
                    version=row["version"],
                    timestamp=row["timestamp"],
                ),
                external_id=row["external_id"],
                file_count=row["file_count"],
                total_size=row["total_size"],
            )
            for row in self._query(sql, params)
        ]

    def list_backup_files(self, backup_id: int) -> list[BackupFile]:
        rows = self._query(
            "SELECT * FROM backup_file WHERE backup_id = ? ORDER BY id", (backup_id,)
        )
        return [
            BackupFile(
                id=row["id"],
                backup_id=row["backup_id"],
                original_path=Path(row["original_path"]),
                archive_path=expand_path(row["archive_path"]),
                size_bytes=row["size_bytes"],
                checksum=row["checksum"],
            )
            for row in rows
        ]

    def _external_id(self, game_id: int) -> str:
        rows = self._query("SELECT external_id FROM game WHERE id = ?", (game_id,))
        return rows[0]["external_id"] if rows else str(game_id)
