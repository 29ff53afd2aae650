"""Exception hierarchy for vault operations."""

from __future__ import annotations


class KaguyaError(Exception):
    """Base class for every error surfaced to the command line."""


class VaultIOError(KaguyaError):
    """A filesystem operation inside or around the vault failed."""


class ConfigParseError(KaguyaError):
    """A TOML config file could not be read or written."""


class DatabaseError(KaguyaError):
    """The SQLite index rejected a query or could not be opened."""


class GameNotFoundError(KaguyaError):
    def __init__(self, game_id: str) -> None:
        super().__init__(f"A game with ID '{game_id}' not found.")
        self.game_id = game_id


class PathNotFoundError(KaguyaError):
    def __init__(self, path: object, detail: str = "") -> None:
        message = f"Path not found: '{path}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.path = path


class BackupNotFoundError(KaguyaError):
    def __init__(self, game_id: str, version: str, path: object) -> None:
        super().__init__(
            f"No backup of '{path}' at version '{version}' for game '{game_id}'."
        )
        self.game_id = game_id
        self.version = version
        self.path = path


class FileNameError(KaguyaError):
    def __init__(self, path: object) -> None:
        super().__init__(f"Could not resolve a file name from path '{path}'.")
        self.path = path


class NoPathsConfiguredError(KaguyaError):
    def __init__(self, game_id: str) -> None:
        super().__init__(f"Game '{game_id}' has no paths configured.")
        self.game_id = game_id
