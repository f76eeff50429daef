"""
Backup and restore manager for laundrylog.

Creates passphrase-encrypted backup files of the whole ledger and restores
them. Every operation is a straight pipeline:

    create:   export -> checksum -> compress -> encrypt -> write
    restore:  read -> decode -> derive key -> verify tag/decrypt ->
              decompress -> verify checksum -> migrate -> import

Any failing step stops the pipeline; the import step only starts once
every verification before it has passed, and the import itself runs in a
single store transaction. Operations on the same store are serialized.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from laundrylog.backup.container import (
    FILE_EXTENSION,
    MAGIC,
    decode_container,
    encode_container,
)
from laundrylog.backup.crypto import (
    AuthenticatedCipher,
    AuthenticationError,
    derive_key,
    generate_iv,
    generate_salt,
)
from laundrylog.backup.errors import (
    BackupError,
    ChecksumMismatchError,
    ImportFailedError,
    MalformedContainerError,
    WeakPassphraseError,
    WrongPassphraseOrCorruptedError,
)
from laundrylog.backup.integrity import (
    compress,
    decompress,
    embed_checksum,
    parse_document,
    serialize,
    verify_checksum,
)
from laundrylog.backup.migrations import (
    CURRENT_SCHEMA_VERSION,
    check_version,
    migrate,
    needs_migration,
)
from laundrylog.backup.snapshot import (
    DEFAULT_SCHEMA_VERSION,
    Snapshot,
    SnapshotError,
    build_snapshot,
)
from laundrylog.config.settings import MIN_PASSPHRASE_LENGTH, Settings
from laundrylog.storage.base import DataStore

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "laundry_backup_"

TABLE_LABELS = {
    "items": "items",
    "transactions": "transactions",
    "household_members": "household members",
    "app_settings": "settings",
}


class BackupState(Enum):
    """Pipeline states of a backup operation."""

    IDLE = "idle"
    # create
    EXPORTING = "exporting"
    CHECKSUMMING = "checksumming"
    COMPRESSING = "compressing"
    ENCRYPTING = "encrypting"
    WRITING = "writing"
    # validate / restore
    READING = "reading"
    DECODING = "decoding"
    DECRYPTING = "decrypting"
    VERIFYING_TAG = "verifying_tag"
    DECOMPRESSING = "decompressing"
    VERIFYING_CHECKSUM = "verifying_checksum"
    MIGRATING = "migrating"
    IMPORTING = "importing"
    # terminal
    DONE = "done"
    FAILED = "failed"


@dataclass
class OperationTrace:
    """States visited by one operation, and why it failed if it did."""

    operation: str
    states: list[BackupState] = field(default_factory=lambda: [BackupState.IDLE])
    failure: str | None = None
    failed_in: BackupState | None = None

    @property
    def state(self) -> BackupState:
        return self.states[-1]

    def advance(self, state: BackupState) -> None:
        self.states.append(state)
        logger.debug(f"{self.operation}: {state.value}")

    def fail(self, reason: str) -> None:
        self.failed_in = self.state
        self.failure = reason
        self.states.append(BackupState.FAILED)


@dataclass
class BackupPreview:
    """What a new backup would contain."""

    counts: dict[str, int]
    schema_version: int

    @property
    def total_records(self) -> int:
        return sum(self.counts.values())


@dataclass
class BackupResult:
    """Result of a backup operation."""

    path: Path
    created_at: datetime
    size_bytes: int
    counts: dict[str, int] = field(default_factory=dict)


@dataclass
class RestorePreview:
    """Contents of a verified backup compared with the live store."""

    backup_counts: dict[str, int]
    backup_schema_version: int
    backup_created_at: datetime
    exported_at: datetime
    current_counts: dict[str, int]
    needs_migration: bool
    is_valid: bool = True

    @property
    def overwrite_warning(self) -> str:
        """Warning message about data that will be overwritten."""
        if not any(self.current_counts.values()):
            return "No existing data will be affected."
        lines = ["WARNING: This will replace ALL current data:"]
        for table, count in self.current_counts.items():
            lines.append(f"  - {count} {TABLE_LABELS.get(table, table)}")
        lines.append("")
        lines.append("This action cannot be undone.")
        return "\n".join(lines)


@dataclass
class RestoreResult:
    """
    Result of a restore operation.

    Attributes:
        counts: Rows written per table, as reported by the store (pin_*
            settings in the backup are not counted).
        from_version: Schema version the backup was written with.
        migrated: Whether the backup was upgraded before import.
    """

    counts: dict[str, int]
    from_version: int
    migrated: bool


@dataclass
class BackupFileInfo:
    """A backup file found in the backup directory."""

    path: Path
    file_name: str
    size: int
    created_at: datetime

    @property
    def formatted_size(self) -> str:
        if self.size < 1024:
            return f"{self.size} B"
        if self.size < 1024 * 1024:
            return f"{self.size / 1024:.1f} KB"
        return f"{self.size / (1024 * 1024):.1f} MB"


@dataclass
class _OpenedBackup:
    snapshot: Snapshot
    from_version: int
    created_at: datetime


# One lock per store object, shared by every manager bound to that store.
# Keyed by id() so stores need not be hashable.
_store_locks: dict[int, threading.RLock] = {}
_store_locks_guard = threading.Lock()


def _lock_for(store: object) -> threading.RLock:
    key = id(store)
    with _store_locks_guard:
        lock = _store_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _store_locks[key] = lock
            try:
                weakref.finalize(store, _store_locks.pop, key, None)
            except TypeError:
                # Not weak-referenceable: the lock lives as long as the process
                pass
        return lock


class BackupManager:
    """
    Creates, verifies and restores encrypted backups of a data store.

    Usage:
        manager = BackupManager(store, backup_dir=Path("~/.laundrylog/backups"))

        result = manager.create("correct horse battery")
        preview = manager.validate(result.path, "correct horse battery")
        manager.restore(result.path, "correct horse battery")

    Attributes:
        store: The data store being backed up and restored.
        backup_dir: Directory backup files are written to and listed from.
        schema_version: Schema version of the running app.
        min_passphrase_length: Shortest passphrase accepted by create().
        last_operation: Trace of the most recent operation, if any.
    """

    def __init__(
        self,
        store: DataStore,
        backup_dir: Path | str,
        schema_version: int = CURRENT_SCHEMA_VERSION,
        min_passphrase_length: int = MIN_PASSPHRASE_LENGTH,
    ) -> None:
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.schema_version = schema_version
        self.min_passphrase_length = min_passphrase_length
        self.cipher = AuthenticatedCipher(associated_data=MAGIC.encode("ascii"))
        self.last_operation: OperationTrace | None = None

    @classmethod
    def from_settings(cls, settings: Settings, store: DataStore) -> BackupManager:
        """Build a manager using the configured backup directory and policy."""
        return cls(
            store,
            backup_dir=Path(settings.backup.backup_dir).expanduser(),
            min_passphrase_length=settings.backup.min_passphrase_length,
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def preview(self) -> BackupPreview:
        """Counts of what a backup taken now would contain."""
        return BackupPreview(
            counts=self.store.get_record_counts(),
            schema_version=self.schema_version,
        )

    def create(self, passphrase: str) -> BackupResult:
        """
        Create an encrypted backup file of the whole store.

        Args:
            passphrase: Passphrase the backup is encrypted with.

        Returns:
            BackupResult describing the written file.

        Raises:
            WeakPassphraseError: If the passphrase is too short (checked
                before anything else happens).
            BackupError: If exporting or writing fails.
        """
        if len(passphrase) < self.min_passphrase_length:
            raise WeakPassphraseError(
                f"Passphrase must be at least {self.min_passphrase_length} characters"
            )

        with self._operation("create") as trace:
            trace.advance(BackupState.EXPORTING)
            snapshot = build_snapshot(self.store, self.schema_version)

            trace.advance(BackupState.CHECKSUMMING)
            snapshot = embed_checksum(snapshot)
            plaintext = serialize(snapshot)

            trace.advance(BackupState.COMPRESSING)
            compressed = compress(plaintext)

            trace.advance(BackupState.ENCRYPTING)
            salt = generate_salt()
            iv = generate_iv()
            key = derive_key(passphrase, salt)
            ciphertext, tag = self.cipher.encrypt(compressed, key, iv)
            del key

            created_at = datetime.now(UTC)
            raw = encode_container(salt, iv, ciphertext + tag, created_at)

            trace.advance(BackupState.WRITING)
            path = self._write_backup_file(raw, created_at)

        logger.info(f"Backup created: {path} ({len(raw):,} bytes)")
        return BackupResult(
            path=path,
            created_at=created_at,
            size_bytes=len(raw),
            counts=snapshot.counts,
        )

    def validate(self, path: Path | str, passphrase: str) -> RestorePreview:
        """
        Fully verify a backup without touching the store.

        Returns:
            RestorePreview of the backup contents and the current data.

        Raises:
            MalformedContainerError: Not a backup file, or invalid fields.
            WrongPassphraseOrCorruptedError: Authentication failed.
            ChecksumMismatchError: Content failed its integrity check.
            UnsupportedFutureVersionError: Backup is from a newer schema.
            BackupError: The file could not be read.
        """
        with self._operation("validate") as trace:
            opened = self._open(trace, Path(path), passphrase)
            current_counts = self.store.get_record_counts()

        return RestorePreview(
            backup_counts=opened.snapshot.counts,
            backup_schema_version=opened.from_version,
            backup_created_at=opened.created_at,
            exported_at=opened.snapshot.exported_at,
            current_counts=current_counts,
            needs_migration=needs_migration(opened.from_version, self.schema_version),
        )

    def restore(self, path: Path | str, passphrase: str) -> RestoreResult:
        """
        Replace the store's contents with a backup.

        Raises:
            Same errors as validate(), plus
            ImportFailedError: The import was rolled back; existing data is
                unchanged.
        """
        with self._operation("restore") as trace:
            opened = self._open(trace, Path(path), passphrase)

            trace.advance(BackupState.IMPORTING)
            try:
                imported = self.store.import_all_transactional(
                    opened.snapshot.plain_records()
                )
            except Exception as e:
                raise ImportFailedError(
                    f"Restore failed and was rolled back, existing data is unchanged: {e}"
                ) from e

        logger.info(
            f"Restore completed from {path} "
            f"(schema v{opened.from_version} -> v{self.schema_version})"
        )
        return RestoreResult(
            counts=dict(imported),
            from_version=opened.from_version,
            migrated=needs_migration(opened.from_version, self.schema_version),
        )

    def list_backups(self) -> list[BackupFileInfo]:
        """Backup files in the backup directory, most recent first."""
        if not self.backup_dir.is_dir():
            return []

        backups: list[BackupFileInfo] = []
        for path in self.backup_dir.glob(f"*{FILE_EXTENSION}"):
            try:
                stat = path.stat()
            except OSError:
                # Vanished or unreadable since the directory was listed
                continue
            if not path.is_file():
                continue
            backups.append(
                BackupFileInfo(
                    path=path,
                    file_name=path.name,
                    size=stat.st_size,
                    created_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                )
            )

        backups.sort(key=lambda info: (info.created_at, info.file_name), reverse=True)
        return backups

    def delete_backup(self, backup: BackupFileInfo | Path | str) -> None:
        """
        Delete a backup file from the backup directory.

        Deleting a file that no longer exists is not an error.

        Raises:
            BackupError: If the path is not a backup file in backup_dir.
        """
        path = backup.path if isinstance(backup, BackupFileInfo) else Path(backup)
        if not path.is_absolute():
            path = self.backup_dir / path

        if path.resolve().parent != self.backup_dir.resolve() or path.suffix != FILE_EXTENSION:
            raise BackupError(f"Not a backup file in {self.backup_dir}: {path}")

        path.unlink(missing_ok=True)
        logger.info(f"Deleted backup: {path.name}")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str) -> Iterator[OperationTrace]:
        """Run one operation under the store lock, recording its states."""
        trace = OperationTrace(operation=name)
        self.last_operation = trace
        with _lock_for(self.store):
            try:
                yield trace
            except BackupError as e:
                trace.fail(str(e))
                logger.warning(f"{name} failed while {trace.failed_in.value}: {e}")
                raise
            except Exception as e:
                trace.fail(str(e))
                logger.exception(f"{name} failed while {trace.failed_in.value}")
                raise BackupError(f"{name.capitalize()} failed: {e}") from e
            trace.advance(BackupState.DONE)

    def _open(self, trace: OperationTrace, path: Path, passphrase: str) -> _OpenedBackup:
        """Read and verify a backup file up to a migrated snapshot."""
        trace.advance(BackupState.READING)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as e:
            raise BackupError(f"Backup file not found: {path}") from e
        except OSError as e:
            raise BackupError(f"Cannot read backup file {path}: {e}") from e

        trace.advance(BackupState.DECODING)
        fields = decode_container(raw)

        trace.advance(BackupState.DECRYPTING)
        key = derive_key(passphrase, fields.salt)

        trace.advance(BackupState.VERIFYING_TAG)
        try:
            compressed = self.cipher.decrypt(fields.ciphertext, fields.tag, key, fields.iv)
        except AuthenticationError as e:
            raise WrongPassphraseOrCorruptedError(
                "Incorrect passphrase or corrupted backup"
            ) from e
        finally:
            del key

        trace.advance(BackupState.DECOMPRESSING)
        document = parse_document(decompress(compressed))

        trace.advance(BackupState.VERIFYING_CHECKSUM)
        if not verify_checksum(document):
            raise ChecksumMismatchError("Backup file is corrupted (checksum mismatch)")

        trace.advance(BackupState.MIGRATING)
        from_version = check_version(
            document.get("schema_version", DEFAULT_SCHEMA_VERSION), self.schema_version
        )
        migrated = migrate(document, from_version, self.schema_version)
        try:
            snapshot = Snapshot.from_document(migrated)
        except SnapshotError as e:
            raise MalformedContainerError(f"Backup contents are not a valid snapshot: {e}") from e

        return _OpenedBackup(
            snapshot=snapshot,
            from_version=from_version,
            created_at=fields.created_at,
        )

    def _write_backup_file(self, data: bytes, created_at: datetime) -> Path:
        """
        Write a new backup file atomically with owner-only permissions.

        Never overwrites an existing file.
        """
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        stamp = created_at.strftime("%Y-%m-%dT%H-%M-%S-%f")

        temp_fd, temp_path = tempfile.mkstemp(suffix=".tmp", dir=str(self.backup_dir))
        try:
            with os.fdopen(temp_fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.chmod(temp_path, 0o600)
            except OSError:
                # Windows or permission error - continue anyway
                pass

            # link() fails instead of replacing, so a taken name is never clobbered
            counter = 0
            while True:
                suffix = f"_{counter}" if counter else ""
                path = self.backup_dir / f"{BACKUP_PREFIX}{stamp}{suffix}{FILE_EXTENSION}"
                try:
                    os.link(temp_path, path)
                    break
                except FileExistsError:
                    counter += 1
        finally:
            if os.path.exists(temp_path):
                os.unlink(temp_path)

        return path
