"""
Encrypted backup and restore for laundrylog.

Backups are single files holding a passphrase-encrypted, checksummed and
compressed snapshot of every table. Restores verify everything before the
store is touched and replace the data in one transaction.

Usage:
    from laundrylog.backup import BackupManager

    manager = BackupManager(store, backup_dir)

    # Create a backup
    result = manager.create(passphrase)

    # Check a backup and preview what a restore would replace
    preview = manager.validate(result.path, passphrase)

    # Restore from backup
    manager.restore(result.path, passphrase)
"""

from laundrylog.backup.errors import (
    BackupError,
    ChecksumMismatchError,
    ImportFailedError,
    MalformedContainerError,
    UnsupportedFutureVersionError,
    WeakPassphraseError,
    WrongPassphraseOrCorruptedError,
)
from laundrylog.backup.manager import (
    BackupFileInfo,
    BackupManager,
    BackupPreview,
    BackupResult,
    BackupState,
    OperationTrace,
    RestorePreview,
    RestoreResult,
)
from laundrylog.backup.snapshot import Snapshot, SnapshotError

__all__ = [
    "BackupManager",
    "BackupState",
    "OperationTrace",
    "BackupPreview",
    "BackupResult",
    "RestorePreview",
    "RestoreResult",
    "BackupFileInfo",
    "Snapshot",
    # Exceptions
    "BackupError",
    "WeakPassphraseError",
    "MalformedContainerError",
    "WrongPassphraseOrCorruptedError",
    "ChecksumMismatchError",
    "UnsupportedFutureVersionError",
    "ImportFailedError",
    "SnapshotError",
]
