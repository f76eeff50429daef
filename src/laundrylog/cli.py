"""
Command-line interface for laundrylog.

Provides commands for initializing the ledger, creating and restoring
encrypted backups, and exporting CSV.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

from laundrylog import __version__
from laundrylog.backup import (
    BackupError,
    BackupManager,
    ChecksumMismatchError,
    ImportFailedError,
    MalformedContainerError,
    UnsupportedFutureVersionError,
    WeakPassphraseError,
    WrongPassphraseOrCorruptedError,
)
from laundrylog.backup.manager import TABLE_LABELS
from laundrylog.config.settings import (
    ConfigurationError,
    Settings,
    get_config_path,
    load_config,
    save_config,
)
from laundrylog.storage import LaundryStore, StorageError

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False
_verbose_level = 0


def set_output_mode(quiet: bool = False, verbose: int = 0) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
        verbose: Verbosity level (0=normal, 1+=verbose).
    """
    global _quiet_mode, _verbose_level
    _quiet_mode = quiet
    _verbose_level = verbose


def output(message: str = "", force: bool = False) -> None:
    """Print a message to stdout, respecting quiet mode."""
    if force or not _quiet_mode:
        print(message)


def output_verbose(message: str, level: int = 1) -> None:
    """Print a message only at or above the given verbosity level."""
    if _verbose_level >= level and not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the laundrylog CLI."""
    parser = argparse.ArgumentParser(
        prog="laundrylog",
        description="Local-first laundry ledger with encrypted backups",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"laundrylog {__version__}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override config file location (default: ~/.laundrylog/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show paths and record counts",
        description="Display version, configuration paths and ledger statistics.",
    )
    info_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    info_parser.set_defaults(func=cmd_info)

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize laundrylog configuration and database",
        description="Create the config file, data directory and database.",
    )
    init_parser.add_argument(
        "--seed-defaults",
        action="store_true",
        dest="seed_defaults",
        help="Add the default laundry item catalog",
    )
    init_parser.set_defaults(func=cmd_init)

    # preview command
    preview_parser = subparsers.add_parser(
        "preview",
        help="Show what a backup would contain",
        description="Show record counts and schema version of the current data.",
    )
    preview_parser.set_defaults(func=cmd_preview)

    # backup command
    backup_parser = subparsers.add_parser(
        "backup",
        help="Create an encrypted backup",
        description="Create a passphrase-encrypted backup of all data.",
    )
    backup_parser.set_defaults(func=cmd_backup)

    # verify command
    verify_parser = subparsers.add_parser(
        "verify",
        help="Verify a backup without restoring it",
        description="Decrypt and check a backup file and show what it contains.",
    )
    verify_parser.add_argument(
        "backup_file",
        metavar="FILE",
        help="Path to backup file (.llb)",
    )
    verify_parser.set_defaults(func=cmd_verify)

    # restore command
    restore_parser = subparsers.add_parser(
        "restore",
        help="Restore from a backup",
        description="Replace all current data with the contents of a backup file.",
    )
    restore_parser.add_argument(
        "backup_file",
        metavar="FILE",
        help="Path to backup file (.llb)",
    )
    restore_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompts",
    )
    restore_parser.set_defaults(func=cmd_restore)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List backups",
        description="List backup files in the backup directory, newest first.",
    )
    list_parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    list_parser.set_defaults(func=cmd_list)

    # delete command
    delete_parser = subparsers.add_parser(
        "delete",
        help="Delete a backup",
        description="Delete a backup file from the backup directory.",
    )
    delete_parser.add_argument(
        "backup_file",
        metavar="FILE",
        help="Backup file name or path",
    )
    delete_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompts",
    )
    delete_parser.set_defaults(func=cmd_delete)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export data as CSV (unencrypted)",
        description="Write a plain, unencrypted CSV export for spreadsheets.",
    )
    export_parser.add_argument(
        "--output",
        "-o",
        metavar="DIR",
        help="Output directory (default: from config)",
    )
    export_parser.set_defaults(func=cmd_export)

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.WARNING
    elif verbose == 0:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _load_settings(args: argparse.Namespace) -> Settings:
    config_path = Path(args.config) if args.config else None
    return load_config(config_path)


def _open_manager(args: argparse.Namespace) -> tuple[Settings, LaundryStore, BackupManager]:
    settings = _load_settings(args)
    store = LaundryStore(Path(settings.data_dir).expanduser())
    return settings, store, BackupManager.from_settings(settings, store)


def _format_counts(counts: dict[str, int]) -> list[str]:
    return [f"  {TABLE_LABELS.get(table, table)}: {count:,}" for table, count in counts.items()]


def cmd_info(args: argparse.Namespace) -> int:
    """Show paths and record counts."""
    info: dict[str, Any] = {
        "version": __version__,
        "config_file": str(Path(args.config) if args.config else get_config_path()),
        "data_dir": None,
        "backup_dir": None,
        "counts": None,
        "backups": 0,
    }

    settings, store, manager = _open_manager(args)
    info["data_dir"] = settings.data_dir
    info["backup_dir"] = settings.backup.backup_dir
    info["counts"] = store.get_record_counts()
    info["backups"] = len(manager.list_backups())

    if args.json:
        output(json.dumps(info, indent=2, default=str), force=True)
        return 0

    output("laundrylog System Information")
    output("=" * 50)
    output()
    output(f"Version: {info['version']}")
    output(f"Config file: {info['config_file']}")
    output(f"Data directory: {info['data_dir']}")
    output(f"Backup directory: {info['backup_dir']}")
    output()
    output("Records:")
    for line in _format_counts(info["counts"]):
        output(line)
    output()
    output(f"Backups: {info['backups']}")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize laundrylog configuration and database."""
    output("laundrylog Initialization")
    output("=" * 50)
    output()

    config_path = Path(args.config) if args.config else get_config_path()
    if config_path.exists():
        settings = load_config(config_path)
        output(f"Configuration already exists: {config_path}")
    else:
        settings = Settings()
        save_config(settings, config_path)
        output(f"Configuration file created: {config_path}")

    data_dir = Path(settings.data_dir).expanduser()
    store = LaundryStore(data_dir)
    Path(settings.backup.backup_dir).expanduser().mkdir(parents=True, exist_ok=True)
    output(f"Database: {store.db_path}")

    if args.seed_defaults:
        added = store.seed_default_items()
        if added:
            output(f"Added {added} default items to the catalog.")
        else:
            output("Catalog already has items; defaults not added.")

    output()
    output("Initialization complete.")
    return 0


def cmd_preview(args: argparse.Namespace) -> int:
    """Show what a backup would contain."""
    _, _, manager = _open_manager(args)
    preview = manager.preview()

    output("Backup Preview")
    output("=" * 50)
    output()
    output(f"Schema version: {preview.schema_version}")
    for line in _format_counts(preview.counts):
        output(line)
    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    """Create an encrypted backup."""
    _, _, manager = _open_manager(args)

    output("laundrylog Backup")
    output("=" * 50)
    output()
    output(f"Backup directory: {manager.backup_dir}")
    output()
    output("The passphrase cannot be recovered. Without it the backup is unreadable.")
    output(f"Minimum {manager.min_passphrase_length} characters.")
    output()

    passphrase = getpass.getpass("Enter backup passphrase: ")
    confirm = getpass.getpass("Confirm passphrase: ")
    if passphrase != confirm:
        output_error("Error: Passphrases do not match.")
        return 1

    output("Creating backup...")
    try:
        result = manager.create(passphrase)
    except WeakPassphraseError as e:
        output_error(f"Error: {e}")
        return 1
    except BackupError as e:
        output_error(f"Backup failed: {e}")
        return 1

    output()
    output("Backup created successfully!")
    output()
    output(f"  File: {result.path}")
    output(f"  Size: {result.size_bytes:,} bytes")
    for line in _format_counts(result.counts):
        output(f"  {line}")
    output()
    output("To restore from this backup, run:")
    output(f"  laundrylog restore {result.path}")
    return 0


def _report_open_error(error: BackupError, manager: BackupManager) -> None:
    """Explain a failed verification in terms of what the user can do."""
    trace = manager.last_operation
    if trace is not None and trace.failed_in is not None:
        output_verbose(f"Failed while {trace.failed_in.value}")
    if isinstance(error, WrongPassphraseOrCorruptedError):
        output_error("Incorrect passphrase, or the backup file has been modified.")
        output_error("Check the passphrase and try again.")
    elif isinstance(error, MalformedContainerError):
        output_error(f"Not a usable backup file: {error}")
    elif isinstance(error, ChecksumMismatchError):
        output_error(f"The backup file is corrupted: {error}")
        output_error("Try a different backup file.")
    elif isinstance(error, (UnsupportedFutureVersionError, ImportFailedError)):
        output_error(str(error))
    else:
        output_error(f"Error: {error}")


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify a backup without restoring it."""
    _, _, manager = _open_manager(args)
    backup_path = Path(args.backup_file)

    output(f"Backup file: {backup_path}")
    passphrase = getpass.getpass("Backup passphrase: ")

    output("Verifying backup...")
    try:
        preview = manager.validate(backup_path, passphrase)
    except BackupError as e:
        _report_open_error(e, manager)
        return 1

    output()
    output("Backup verified successfully.")
    output()
    output(f"  Created: {preview.backup_created_at.isoformat()}")
    output(f"  Schema version: {preview.backup_schema_version}")
    if preview.needs_migration:
        output(f"  Will be upgraded to schema v{manager.schema_version} on restore")
    output("  Contents:")
    for line in _format_counts(preview.backup_counts):
        output(f"  {line}")
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore from a backup."""
    _, _, manager = _open_manager(args)
    backup_path = Path(args.backup_file)

    if not backup_path.exists():
        output_error(f"Error: Backup file not found: {backup_path}")
        return 1

    output("laundrylog Restore")
    output("=" * 50)
    output()
    output(f"Backup file: {backup_path}")
    output()

    passphrase = getpass.getpass("Backup passphrase: ")

    output("Verifying backup...")
    try:
        preview = manager.validate(backup_path, passphrase)
    except BackupError as e:
        _report_open_error(e, manager)
        return 1

    output("Backup verified successfully.")
    output()
    output("Backup contains:")
    for line in _format_counts(preview.backup_counts):
        output(line)
    output()

    if not args.force:
        output(preview.overwrite_warning)
        output()
        response = input("Proceed with restore? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            output("Restore cancelled.")
            return 0

    output("Restoring...")
    try:
        result = manager.restore(backup_path, passphrase)
    except BackupError as e:
        _report_open_error(e, manager)
        return 1

    output()
    output("Restore completed successfully!")
    if result.migrated:
        output(f"  Upgraded from schema v{result.from_version}")
    for line in _format_counts(result.counts):
        output(line)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List backups."""
    _, _, manager = _open_manager(args)
    backups = manager.list_backups()

    if args.format == "json":
        data = [
            {
                "file_name": info.file_name,
                "path": str(info.path),
                "size": info.size,
                "created_at": info.created_at.isoformat(),
            }
            for info in backups
        ]
        output(json.dumps(data, indent=2), force=True)
        return 0

    if not backups:
        output(f"No backups found in {manager.backup_dir}")
        return 0

    output(f"{'Created':<26} {'Size':>10}  File")
    output("-" * 70)
    for info in backups:
        created = info.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        output(f"{created:<26} {info.formatted_size:>10}  {info.file_name}")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a backup."""
    _, _, manager = _open_manager(args)
    target = Path(args.backup_file)

    if not args.force:
        response = input(f"Delete backup {target.name}? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            output("Delete cancelled.")
            return 0

    try:
        manager.delete_backup(target)
    except BackupError as e:
        output_error(f"Error: {e}")
        return 1

    output(f"Deleted {target.name}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export data as CSV."""
    from laundrylog.reports import CsvExporter

    settings = _load_settings(args)
    store = LaundryStore(Path(settings.data_dir).expanduser())
    output_dir = Path(args.output) if args.output else Path(settings.export.output_dir).expanduser()

    result = CsvExporter(store).export(output_dir)
    if not result.success:
        output_error(f"Export failed: {result.error}")
        return 1

    output(f"Exported {result.record_count} rows to {result.path}")
    output("Note: CSV exports are not encrypted and cannot be restored.")
    return 0


def main() -> NoReturn:
    """Main entry point for the laundrylog CLI."""
    parser = create_parser()
    args = parser.parse_args()

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet, args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)
    except StorageError as e:
        output_error(f"Storage error: {e}")
        sys.exit(1)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
