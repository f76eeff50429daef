"""
Plain-text CSV export of the laundry ledger.

The export is meant for spreadsheets and for reading by eye. It is NOT a
backup: it is unencrypted, carries no checksum, and cannot be restored.
Use laundrylog.backup for anything that must come back intact.

File layout:

    # LAUNDRY_CSV_V1
    # Schema Version: 2
    # Exported: 2024-05-01T10:00:00+00:00

    # ITEMS
    id,name,default_rate,category,is_favorite,is_archived
    ...

    # MEMBERS
    ...

    # TRANSACTIONS
    ...

Fields containing a comma, a double quote or a newline are quoted, with
embedded quotes doubled.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from laundrylog.storage.base import DataStore
from laundrylog.storage.database import (
    SCHEMA_VERSION,
    TABLE_ITEMS,
    TABLE_MEMBERS,
    TABLE_TRANSACTIONS,
)

logger = logging.getLogger(__name__)

CSV_MAGIC = "LAUNDRY_CSV_V1"

# (section label, table, columns)
CSV_SECTIONS: list[tuple[str, str, list[str]]] = [
    (
        "ITEMS",
        TABLE_ITEMS,
        ["id", "name", "default_rate", "category", "is_favorite", "is_archived"],
    ),
    (
        "MEMBERS",
        TABLE_MEMBERS,
        ["id", "name", "color", "is_active", "is_archived"],
    ),
    (
        "TRANSACTIONS",
        TABLE_TRANSACTIONS,
        [
            "id",
            "item_name",
            "quantity",
            "rate",
            "price_at_time",
            "status",
            "member_name",
            "sent_at",
            "returned_at",
        ],
    ),
]


@dataclass
class ExportResult:
    """
    Result of an export operation.

    Attributes:
        success: Whether the export completed successfully.
        path: Path to the exported file.
        size_bytes: Size of the exported file in bytes.
        record_count: Number of rows exported across all sections.
        error: Error message if export failed.
    """

    success: bool
    path: Path | None
    size_bytes: int
    record_count: int
    error: str | None = None


def render_csv(
    records: Mapping[str, Sequence[Mapping[str, Any]]],
    schema_version: int,
    exported_at: datetime,
) -> str:
    """Render ledger records as the sectioned CSV text."""
    buffer = io.StringIO()
    buffer.write(f"# {CSV_MAGIC}\n")
    buffer.write(f"# Schema Version: {schema_version}\n")
    buffer.write(f"# Exported: {exported_at.isoformat()}\n")

    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    for label, table, columns in CSV_SECTIONS:
        buffer.write(f"\n# {label}\n")
        writer.writerow(columns)
        for row in records.get(table, []):
            writer.writerow(["" if row.get(c) is None else row.get(c) for c in columns])

    return buffer.getvalue()


class CsvExporter:
    """
    Writes the sectioned CSV export of a data store.

    Example:
        exporter = CsvExporter(store)
        result = exporter.export(Path("./exports"))
    """

    def __init__(self, store: DataStore, schema_version: int = SCHEMA_VERSION) -> None:
        self.store = store
        self.schema_version = schema_version

    def export(self, output_dir: Path) -> ExportResult:
        """
        Export the ledger to a new CSV file in ``output_dir``.

        Returns:
            ExportResult with export details.
        """
        try:
            output_dir = Path(output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)

            exported_at = datetime.now(UTC)
            records = self.store.export_all()
            content = render_csv(records, self.schema_version, exported_at)

            stamp = exported_at.strftime("%Y-%m-%dT%H-%M-%S-%f")
            filepath = output_dir / f"laundry_export_{stamp}.csv"
            with open(filepath, "w", encoding="utf-8", newline="") as f:
                f.write(content)

            record_count = sum(
                len(records.get(table, [])) for _, table, _ in CSV_SECTIONS
            )
            size_bytes = filepath.stat().st_size
            logger.info(f"CSV export written: {filepath} ({record_count} rows)")

            return ExportResult(
                success=True,
                path=filepath,
                size_bytes=size_bytes,
                record_count=record_count,
            )

        except Exception as e:
            logger.exception("CSV export failed")
            return ExportResult(
                success=False,
                path=None,
                size_bytes=0,
                record_count=0,
                error=str(e),
            )
