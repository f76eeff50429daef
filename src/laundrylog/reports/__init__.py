"""
Human-readable exports of the ledger.

Example:
    from laundrylog.reports import CsvExporter

    result = CsvExporter(store).export(output_dir=Path("./exports"))
"""

from laundrylog.reports.csv_exporter import (
    CSV_MAGIC,
    CsvExporter,
    ExportResult,
    render_csv,
)

__all__ = [
    "CsvExporter",
    "ExportResult",
    "render_csv",
    "CSV_MAGIC",
]
