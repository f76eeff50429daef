"""
In-memory snapshot of the whole ledger.

A Snapshot is what gets checksummed, compressed and encrypted into a backup
container, and what a restore hands back to the store. Column values are
restricted to int, float, str and None so a snapshot survives the JSON
round trip bit for bit; anything else is rejected when the snapshot is
built rather than silently stringified.

Serialized form (canonical JSON, sorted keys, no whitespace):

    {
        "checksum": "<sha256 hex>",        # only once embedded
        "exported_at": "2024-05-01T10:00:00+00:00",
        "records": {"items": [{...}, ...], ...},
        "schema_version": 2
    }
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from laundrylog.storage.base import DataStore, Row, RowValue

# Older documents that predate versioning are treated as schema v1
DEFAULT_SCHEMA_VERSION = 1


class SnapshotError(ValueError):
    """Raised when data cannot be represented as a snapshot."""

    pass


def normalize_value(value: Any) -> RowValue:
    """
    Coerce a column value into one of the supported primitive kinds.

    Raises:
        SnapshotError: For bytes, containers, NaN/infinity or any other type.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SnapshotError(f"Non-finite float cannot be backed up: {value!r}")
        return value
    raise SnapshotError(f"Unsupported column value type: {type(value).__name__}")


def normalize_row(row: Mapping[str, Any]) -> Row:
    """Return a plain dict copy of ``row`` with normalized values."""
    if not isinstance(row, Mapping):
        raise SnapshotError(f"Row must be a mapping, got {type(row).__name__}")
    normalized: Row = {}
    for column, value in row.items():
        if not isinstance(column, str):
            raise SnapshotError(f"Column names must be strings, got {column!r}")
        normalized[column] = normalize_value(value)
    return normalized


def canonical_json(document: Mapping[str, Any]) -> bytes:
    """Serialize a document the same way every time."""
    return json.dumps(
        document,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


@dataclass(frozen=True)
class Snapshot:
    """
    Versioned, read-only copy of every table.

    Attributes:
        schema_version: Shape of the rows contained.
        exported_at: When the data was read from the store (UTC).
        records: Table name to ordered rows; rows are read-only mappings.
        checksum: SHA-256 hex digest once embedded, otherwise None.
    """

    schema_version: int
    exported_at: datetime
    records: Mapping[str, Sequence[Mapping[str, RowValue]]] = field(default_factory=dict)
    checksum: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.schema_version, bool) or not isinstance(self.schema_version, int):
            raise SnapshotError(f"schema_version must be an integer: {self.schema_version!r}")
        if not isinstance(self.records, Mapping):
            raise SnapshotError("records must map table names to row lists")

        frozen: dict[str, tuple[Mapping[str, RowValue], ...]] = {}
        for table, rows in self.records.items():
            if not isinstance(table, str):
                raise SnapshotError(f"Table names must be strings, got {table!r}")
            if isinstance(rows, (str, bytes)) or not isinstance(rows, Sequence):
                raise SnapshotError(f"Rows for {table} must be a list")
            frozen[table] = tuple(MappingProxyType(normalize_row(row)) for row in rows)
        object.__setattr__(self, "records", MappingProxyType(frozen))

    @property
    def counts(self) -> dict[str, int]:
        """Number of rows per table."""
        return {table: len(rows) for table, rows in self.records.items()}

    def plain_records(self) -> dict[str, list[Row]]:
        """Mutable deep copy of the records, as the store expects them."""
        return {
            table: [dict(row) for row in rows] for table, rows in self.records.items()
        }

    def to_document(self, include_checksum: bool = True) -> dict[str, Any]:
        """Convert to the JSON document stored inside a backup."""
        document: dict[str, Any] = {
            "schema_version": self.schema_version,
            "exported_at": self.exported_at.isoformat(),
            "records": self.plain_records(),
        }
        if include_checksum and self.checksum is not None:
            document["checksum"] = self.checksum
        return document

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> Snapshot:
        """
        Build a snapshot from a decoded document.

        Raises:
            SnapshotError: If the document does not have the snapshot shape.
        """
        if not isinstance(document, Mapping):
            raise SnapshotError("Snapshot document must be a JSON object")

        exported_raw = document.get("exported_at")
        try:
            exported_at = datetime.fromisoformat(str(exported_raw))
        except ValueError as e:
            raise SnapshotError(f"Invalid exported_at: {exported_raw!r}") from e

        records = document.get("records", {})
        if not isinstance(records, Mapping):
            raise SnapshotError("records must be a JSON object")

        return cls(
            schema_version=document.get("schema_version", DEFAULT_SCHEMA_VERSION),
            exported_at=exported_at,
            records=records,
            checksum=document.get("checksum"),
        )


def build_snapshot(store: DataStore, schema_version: int) -> Snapshot:
    """
    Read the full ledger from ``store`` into a fresh, unchecksummed snapshot.

    Raises:
        SnapshotError: If the store returns values outside the supported kinds.
    """
    return Snapshot(
        schema_version=schema_version,
        exported_at=datetime.now(UTC),
        records=store.export_all(),
    )
