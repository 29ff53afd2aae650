"""Command-line entry point — parses arguments, wires services, prints results."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

from kaguya import __version__
from kaguya.config import get_config
from kaguya.context import AppContext, Services
from kaguya.core.backup import BackupService
from kaguya.core.path_resolver import to_absolute_path
from kaguya.core.restore import RestoreService
from kaguya.core.sync import SyncEngine
from kaguya.data.index import IntegrityIndex
from kaguya.data.vault_config import ConfigStore
from kaguya.errors import KaguyaError
from kaguya.logger import setup_logger
from kaguya.models.requests import (
    AddGameRequest,
    BackupRequest,
    RemoveGameRequest,
    RestoreRequest,
)
from kaguya.utils import format_size


def create_services(context: AppContext) -> Services:
    """Wire all vault services around one index connection."""
    config_store = ConfigStore(context)
    index = IntegrityIndex(context)
    return Services(
        context=context,
        config_store=config_store,
        index=index,
        sync_engine=SyncEngine(context, config_store, index),
        backup_service=BackupService(context, config_store, index),
        restore_service=RestoreService(context, config_store, index),
    )


def _absolute_paths(paths: list[str] | None) -> list[Path] | None:
    if not paths:
        return None
    return [to_absolute_path(p) for p in paths]


# ── config ──


def handle_config_add(args: argparse.Namespace, context: AppContext) -> int:
    request = AddGameRequest(
        id=args.id,
        name=args.name,
        paths=_absolute_paths(args.paths),
        comment=args.comment,
    )
    ConfigStore(context).upsert(request)
    return 0


def handle_config_list(args: argparse.Namespace, context: AppContext) -> int:
    games = ConfigStore(context).list_games()
    if not games:
        print("No games configured.")
        return 0

    for game in games:
        print(f"{game.id}\t{game.name}")
        if not args.long:
            continue
        for path in game.paths:
            print(f"    {path}")
        if game.comment:
            print(f"    comment: {game.comment}")
        if game.keep_versions is not None:
            print(f"    keep_versions: {game.keep_versions}")
    return 0


def handle_config_rm(args: argparse.Namespace, context: AppContext) -> int:
    request = RemoveGameRequest(id=args.id, purge=args.purge)
    ConfigStore(context).remove(request.id)
    if request.purge:
        services = create_services(context)
        try:
            services.backup_service.purge(request.id)
        finally:
            services.index.close()
    return 0


# ── vault ──


def handle_vault_backup(args: argparse.Namespace, services: Services) -> int:
    request = BackupRequest(id=args.id, paths=_absolute_paths(args.paths))
    reports = services.backup_service.backup(request)
    for report in reports:
        prefix = "[dry-run] " if report.dry_run else ""
        print(
            f"{prefix}{report.game_id} {report.version}: "
            f"{len(report.files)} archive(s), {format_size(report.total_size)}"
        )
    return 0


def handle_vault_restore(args: argparse.Namespace, services: Services) -> int:
    request = RestoreRequest(
        id=args.id,
        version=args.version,
        paths=_absolute_paths(args.paths),
    )
    result = services.restore_service.restore(request)
    prefix = "[dry-run] " if result.dry_run else ""
    for path in result.restored:
        print(f"{prefix}Restored {path}")
    return 0


def handle_vault_history(args: argparse.Namespace, services: Services) -> int:
    summaries = services.backup_service.history(args.id)
    if not summaries:
        print("No backups recorded.")
        return 0
    for summary in summaries:
        when = datetime.fromtimestamp(summary.backup.timestamp).isoformat(sep=" ")
        print(
            f"{summary.external_id}\t{summary.backup.version}\t{when}\t"
            f"{summary.file_count} file(s)\t{format_size(summary.total_size)}"
        )
    return 0


def handle_vault_check(args: argparse.Namespace, services: Services) -> int:
    issues = services.backup_service.verify()
    for issue in issues:
        print(f"{issue.game_id} {issue.version}: {issue.archive_path} ({issue.reason})")
    if issues:
        logger.error(f"{len(issues)} archive(s) failed the integrity check")
        return 1
    print("All archives verified.")
    return 0


def handle_vault_prune(args: argparse.Namespace, services: Services) -> int:
    target = f"game '{args.id}'" if args.id else "all games"
    logger.error(f"Pruning backups of {target} is not implemented yet")
    return 1


_VAULT_HANDLERS = {
    "backup": handle_vault_backup,
    "restore": handle_vault_restore,
    "history": handle_vault_history,
    "check": handle_vault_check,
    "prune": handle_vault_prune,
}


def run_vault_command(args: argparse.Namespace, context: AppContext) -> int:
    """Sync the index with the config, then run the vault subcommand."""
    services = create_services(context)
    try:
        services.sync_engine.sync(force=args.force_sync)
        return _VAULT_HANDLERS[args.vault_command](args, services)
    finally:
        services.index.close()


# ── Parser ──


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kaguya",
        description="A CLI tool for managing game saves and configurations.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-c", "--config", metavar="FILE", type=Path,
        help="Path to the global Kaguya configuration file",
    )
    parser.add_argument(
        "-v", "--vault", metavar="DIR",
        help="Path to the Kaguya vault directory. Overrides 'vault' value in the config file",
    )
    parser.add_argument(
        "-n", "--dry-run", action="store_true",
        help="Run a command without making actual changes",
    )
    parser.add_argument("--verbose", action="store_true", help="Show debug output")

    commands = parser.add_subparsers(dest="command", required=True)

    # config
    config = commands.add_parser("config", help="Manage the games in the vault config")
    config_commands = config.add_subparsers(dest="config_command", required=True)

    add = config_commands.add_parser("add", help="Add a game, or merge into an existing one")
    add.add_argument("-i", "--id", required=True, help="Unique game ID (e.g. 'outer_wilds')")
    add.add_argument("-a", "--name", help="Friendly game name")
    add.add_argument("-p", "--paths", nargs="+", metavar="PATH", help="Save or config paths")
    add.add_argument("-o", "--comment", help="Comment for the game")
    add.set_defaults(handler=handle_config_add)

    list_ = config_commands.add_parser("list", help="Print configured games")
    list_.add_argument("-l", "--long", action="store_true", help="Print detailed information")
    list_.set_defaults(handler=handle_config_list)

    rm = config_commands.add_parser("rm", help="Remove a game, retaining backups by default")
    rm.add_argument("-i", "--id", required=True, help="Game ID")
    rm.add_argument(
        "-r", "--purge", action="store_true",
        help="Also delete all backups associated with the game",
    )
    rm.set_defaults(handler=handle_config_rm)

    # vault
    vault = commands.add_parser("vault", help="Back up and restore through the vault")
    vault.add_argument(
        "--force-sync", action="store_true",
        help="Reconcile the index even if the vault config looks unchanged",
    )
    vault_commands = vault.add_subparsers(dest="vault_command", required=True)

    backup = vault_commands.add_parser("backup", help="Back up game saves to the vault")
    backup.add_argument("-i", "--id", help="Game ID (leave empty to back up every game)")
    backup.add_argument(
        "-p", "--paths", nargs="+", metavar="PATH",
        help="Only these configured paths (requires --id)",
    )

    restore = vault_commands.add_parser("restore", help="Restore game saves from the vault")
    restore.add_argument("-i", "--id", required=True, help="Game ID")
    restore.add_argument("-V", "--version", dest="version", help="Backup version (default: latest)")
    restore.add_argument(
        "-p", "--paths", nargs="+", metavar="PATH",
        help="Only these paths (default: every configured path)",
    )

    history = vault_commands.add_parser("history", help="List recorded backups")
    history.add_argument("-i", "--id", help="Game ID (leave empty for all games)")

    vault_commands.add_parser("check", help="Verify archive existence and checksums")
    prune = vault_commands.add_parser(
        "prune", help="Prune old backups by retention policy, or delete specific backups"
    )
    prune.add_argument("-i", "--id", help="Game ID (leave empty to prune globally)")
    prune.add_argument(
        "-V", "--version", dest="version", help="Delete one backup version (requires --id)"
    )
    prune.add_argument(
        "-r", "--purge", action="store_true",
        help="Delete every backup version of the game (requires --id)",
    )

    vault.set_defaults(handler=run_vault_command)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    vault_command = getattr(args, "vault_command", None)
    if vault_command == "backup" and args.paths and not args.id:
        parser.error("--paths requires --id")
    if vault_command == "prune" and (args.version or args.purge) and not args.id:
        parser.error("--version and --purge require --id")

    config = get_config(args.config)
    setup_logger(config.log_dir, verbose=args.verbose)

    context = AppContext.from_config(
        config,
        vault=to_absolute_path(args.vault) if args.vault else None,
        dry_run=args.dry_run,
    )
    logger.debug(f"Config: {config.path}")
    logger.debug(f"Vault: {context.vault_dir} (dry run: {context.dry_run})")

    operation = " ".join(
        part
        for part in (args.command, getattr(args, "config_command", None), vault_command)
        if part
    )
    try:
        return args.handler(args, context)
    except KaguyaError as e:
        logger.error(f"{operation} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
