"""
Data-store contract consumed by the backup engine.

The backup manager never talks to SQLite directly. It only needs a full
export, an atomic wholesale import and per-table counts, so any object
implementing DataStore can be backed up and restored (tests use an
in-memory fake with injectable faults).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol, TypeAlias, runtime_checkable

# A column value is one of the primitive kinds SQLite hands back to us.
RowValue: TypeAlias = int | float | str | None
Row: TypeAlias = dict[str, RowValue]
Records: TypeAlias = dict[str, list[Row]]


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


@runtime_checkable
class DataStore(Protocol):
    """Structural interface for stores that can be snapshotted."""

    def export_all(self) -> Records:
        """Return every row of every table, keyed by table name."""
        ...

    def import_all_transactional(self, records: Mapping[str, Sequence[Row]]) -> dict[str, int]:
        """
        Replace all table contents with ``records`` in one transaction.

        Returns:
            Number of rows actually written per table.

        Raises:
            StorageError: If anything fails; the store is left unchanged.
        """
        ...

    def get_record_counts(self) -> dict[str, int]:
        """Return the number of rows per table."""
        ...
