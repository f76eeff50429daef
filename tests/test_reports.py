"""Tests for the CSV exporter."""

from __future__ import annotations

import csv
import io
import shutil
import tempfile
import unittest
from datetime import UTC, datetime
from pathlib import Path

from laundrylog.reports import CSV_MAGIC, CsvExporter, render_csv
from laundrylog.storage import LaundryStore

EXPORTED_AT = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


def section(text: str, label: str) -> list[list[str]]:
    """Parse the CSV rows of one section."""
    body = text.split(f"# {label}\n", 1)[1].split("\n# ", 1)[0]
    return list(csv.reader(io.StringIO(body.strip("\n"))))


class TestRenderCsv(unittest.TestCase):
    """Tests for render_csv."""

    def test_header(self) -> None:
        """Test the header lines."""
        text = render_csv({}, 2, EXPORTED_AT)
        lines = text.splitlines()

        self.assertEqual(lines[0], f"# {CSV_MAGIC}")
        self.assertEqual(lines[1], "# Schema Version: 2")
        self.assertEqual(lines[2], "# Exported: 2024-05-01T10:00:00+00:00")

    def test_sections_in_order(self) -> None:
        """Test every section appears with its column header, even when empty."""
        text = render_csv({}, 2, EXPORTED_AT)

        self.assertLess(text.index("# ITEMS"), text.index("# MEMBERS"))
        self.assertLess(text.index("# MEMBERS"), text.index("# TRANSACTIONS"))
        self.assertEqual(
            section(text, "ITEMS"),
            [["id", "name", "default_rate", "category", "is_favorite", "is_archived"]],
        )

    def test_escaping(self) -> None:
        """Test commas, quotes and newlines are quoted per RFC 4180."""
        records = {
            "items": [
                {
                    "id": 1,
                    "name": 'Suit, "3pc"\nwool',
                    "default_rate": 150.0,
                    "category": None,
                    "is_favorite": 0,
                    "is_archived": 0,
                }
            ]
        }

        text = render_csv(records, 2, EXPORTED_AT)

        self.assertIn('"Suit, ""3pc""\nwool"', text)
        rows = section(text, "ITEMS")
        self.assertEqual(rows[1], ["1", 'Suit, "3pc"\nwool', "150.0", "", "0", "0"])

    def test_plain_values_unquoted(self) -> None:
        """Test ordinary values are written without quotes."""
        records = {"household_members": [{"id": 3, "name": "Alice", "is_active": 1}]}

        text = render_csv(records, 2, EXPORTED_AT)

        self.assertIn("\n3,Alice,,1,\n", text)


class TestCsvExporter(unittest.TestCase):
    """Tests for CsvExporter."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.store = LaundryStore(Path(self.temp_dir) / "data")
        shirt = self.store.add_item("Shirt", 25.0)
        self.store.add_member("Alice")
        self.store.add_transaction(shirt, 2)

    def tearDown(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_export_writes_file(self) -> None:
        """Test export writes a CSV file and reports its size."""
        output_dir = Path(self.temp_dir) / "exports"

        result = CsvExporter(self.store).export(output_dir)

        self.assertTrue(result.success)
        self.assertEqual(result.path.parent, output_dir)
        self.assertEqual(result.path.suffix, ".csv")
        self.assertEqual(result.record_count, 3)
        self.assertEqual(result.size_bytes, result.path.stat().st_size)

        text = result.path.read_text(encoding="utf-8")
        self.assertTrue(text.startswith(f"# {CSV_MAGIC}\n"))
        self.assertEqual(section(text, "TRANSACTIONS")[1][1], "Shirt")

    def test_export_failure_reported(self) -> None:
        """Test failures are returned rather than raised."""
        blocker = Path(self.temp_dir) / "blocker"
        blocker.write_text("a file, not a directory")

        result = CsvExporter(self.store).export(blocker / "exports")

        self.assertFalse(result.success)
        self.assertIsNone(result.path)
        self.assertIsNotNone(result.error)


if __name__ == "__main__":
    unittest.main()
