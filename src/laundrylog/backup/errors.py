"""
Exceptions raised by the backup engine.

Each failure mode gets its own type because the remedy differs: retype
the passphrase, pick another file, update the app, or retry later.
"""

from __future__ import annotations


class BackupError(Exception):
    """Base exception for backup and restore errors."""

    pass


class WeakPassphraseError(BackupError, ValueError):
    """Raised when a backup passphrase is shorter than the minimum length."""

    pass


class MalformedContainerError(BackupError):
    """Raised when a file is not a backup container or its fields are invalid."""

    pass


class WrongPassphraseOrCorruptedError(BackupError):
    """
    Raised when the authentication tag does not verify.

    A wrong passphrase and a modified file are reported the same way.
    """

    pass


class ChecksumMismatchError(BackupError):
    """Raised when decrypted content fails its integrity check."""

    pass


class UnsupportedFutureVersionError(BackupError):
    """Raised when a backup was written by a newer schema than this app knows."""

    def __init__(self, backup_version: int, current_version: int) -> None:
        self.backup_version = backup_version
        self.current_version = current_version
        super().__init__(
            f"Backup is from a newer version (schema v{backup_version}, "
            f"this app supports up to v{current_version}). "
            "Please update the app to restore this backup."
        )


class ImportFailedError(BackupError):
    """Raised when the atomic import was rolled back."""

    pass
