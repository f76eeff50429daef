"""Tests for snapshots, checksums and compression."""

from __future__ import annotations

import gzip
import json
import unittest
from datetime import UTC, datetime

from laundrylog.backup.errors import ChecksumMismatchError
from laundrylog.backup.integrity import (
    compress,
    compute_checksum,
    decompress,
    embed_checksum,
    parse_document,
    serialize,
    verify_checksum,
)
from laundrylog.backup.snapshot import (
    Snapshot,
    SnapshotError,
    build_snapshot,
    canonical_json,
    normalize_value,
)

EXPORTED_AT = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


def sample_snapshot() -> Snapshot:
    return Snapshot(
        schema_version=2,
        exported_at=EXPORTED_AT,
        records={
            "items": [
                {"id": 1, "name": "Shirt", "default_rate": 25.0, "category": None},
                {"id": 2, "name": 'Suit, "3pc"', "default_rate": 150.5, "category": "Formal"},
            ],
            "household_members": [{"id": 1, "name": "Ünal", "is_active": True}],
        },
    )


class TestNormalizeValue(unittest.TestCase):
    """Tests for column value normalization."""

    def test_primitives_pass_through(self) -> None:
        """Test supported kinds are unchanged."""
        for value in (None, 0, -5, 2.5, "", "text"):
            with self.subTest(value=value):
                self.assertEqual(normalize_value(value), value)

    def test_bool_becomes_int(self) -> None:
        """Test booleans are stored as 0/1."""
        self.assertEqual(normalize_value(True), 1)
        self.assertIs(type(normalize_value(False)), int)

    def test_unsupported_values(self) -> None:
        """Test bytes, containers and non-finite floats are rejected."""
        for value in (b"raw", [1], {"a": 1}, float("nan"), float("inf")):
            with self.subTest(value=value), self.assertRaises(SnapshotError):
                normalize_value(value)


class TestSnapshot(unittest.TestCase):
    """Tests for the Snapshot value type."""

    def test_counts(self) -> None:
        """Test per-table row counts."""
        self.assertEqual(sample_snapshot().counts, {"items": 2, "household_members": 1})

    def test_read_only(self) -> None:
        """Test neither the snapshot nor its rows can be modified."""
        snapshot = sample_snapshot()

        with self.assertRaises(AttributeError):
            snapshot.schema_version = 3  # type: ignore[misc]
        with self.assertRaises(TypeError):
            snapshot.records["items"][0]["name"] = "Changed"  # type: ignore[index]
        with self.assertRaises(TypeError):
            snapshot.records["new"] = []  # type: ignore[index]

    def test_input_is_copied(self) -> None:
        """Test later changes to the source data do not leak in."""
        rows = [{"id": 1, "name": "Shirt"}]
        snapshot = Snapshot(schema_version=2, exported_at=EXPORTED_AT, records={"items": rows})

        rows[0]["name"] = "Changed"
        rows.append({"id": 2})

        self.assertEqual(snapshot.counts["items"], 1)
        self.assertEqual(snapshot.records["items"][0]["name"], "Shirt")

    def test_plain_records_are_mutable_copies(self) -> None:
        """Test plain_records hands out independent dicts."""
        snapshot = sample_snapshot()
        plain = snapshot.plain_records()

        plain["items"][0]["name"] = "Changed"

        self.assertEqual(snapshot.records["items"][0]["name"], "Shirt")

    def test_bool_normalized_in_rows(self) -> None:
        """Test booleans inside rows are stored as integers."""
        self.assertEqual(sample_snapshot().records["household_members"][0]["is_active"], 1)

    def test_invalid_schema_version(self) -> None:
        """Test the schema version must be an integer."""
        with self.assertRaises(SnapshotError):
            Snapshot(schema_version="2", exported_at=EXPORTED_AT)  # type: ignore[arg-type]

    def test_invalid_rows(self) -> None:
        """Test rows must be a list of mappings."""
        with self.assertRaises(SnapshotError):
            Snapshot(schema_version=2, exported_at=EXPORTED_AT, records={"items": "rows"})
        with self.assertRaises(SnapshotError):
            Snapshot(schema_version=2, exported_at=EXPORTED_AT, records={"items": [1, 2]})

    def test_document_round_trip(self) -> None:
        """Test to_document and from_document agree."""
        snapshot = embed_checksum(sample_snapshot())

        restored = Snapshot.from_document(json.loads(serialize(snapshot)))

        self.assertEqual(restored.to_document(), snapshot.to_document())
        self.assertEqual(restored.exported_at, EXPORTED_AT)
        self.assertEqual(restored.checksum, snapshot.checksum)

    def test_from_document_defaults_version(self) -> None:
        """Test documents without a version are treated as v1."""
        snapshot = Snapshot.from_document(
            {"exported_at": EXPORTED_AT.isoformat(), "records": {}}
        )

        self.assertEqual(snapshot.schema_version, 1)

    def test_from_document_bad_timestamp(self) -> None:
        """Test an invalid exported_at is rejected."""
        with self.assertRaises(SnapshotError):
            Snapshot.from_document({"exported_at": "soon", "records": {}})

    def test_build_snapshot(self) -> None:
        """Test a snapshot is read from any DataStore."""

        class Store:
            def export_all(self):
                return {"items": [{"id": 1, "name": "Shirt"}]}

        snapshot = build_snapshot(Store(), 2)

        self.assertEqual(snapshot.schema_version, 2)
        self.assertIsNone(snapshot.checksum)
        self.assertEqual(snapshot.counts, {"items": 1})


class TestCanonicalJson(unittest.TestCase):
    """Tests for canonical serialization."""

    def test_key_order_irrelevant(self) -> None:
        """Test documents with the same content serialize identically."""
        self.assertEqual(
            canonical_json({"b": 1, "a": {"y": 2, "x": 3}}),
            canonical_json({"a": {"x": 3, "y": 2}, "b": 1}),
        )

    def test_compact_utf8(self) -> None:
        """Test output has no whitespace and keeps non-ASCII text as UTF-8."""
        self.assertEqual(canonical_json({"name": "Ünal"}), '{"name":"Ünal"}'.encode())

    def test_nan_rejected(self) -> None:
        """Test NaN cannot be canonicalized."""
        with self.assertRaises(ValueError):
            canonical_json({"value": float("nan")})


class TestChecksum(unittest.TestCase):
    """Tests for checksum computation and verification."""

    def test_embed_and_verify(self) -> None:
        """Test an embedded checksum verifies."""
        snapshot = embed_checksum(sample_snapshot())

        self.assertEqual(len(snapshot.checksum), 64)
        self.assertTrue(verify_checksum(snapshot.to_document()))

    def test_checksum_ignores_checksum_field(self) -> None:
        """Test the checksum covers everything but itself."""
        document = sample_snapshot().to_document()
        expected = compute_checksum(document)
        document["checksum"] = "anything"

        self.assertEqual(compute_checksum(document), expected)

    def test_any_change_detected(self) -> None:
        """Test changing one character of a row breaks the checksum."""
        document = embed_checksum(sample_snapshot()).to_document()
        document["records"]["items"][0]["name"] = "Shirts"

        self.assertFalse(verify_checksum(document))

    def test_version_change_detected(self) -> None:
        """Test the schema version is covered by the checksum."""
        document = embed_checksum(sample_snapshot()).to_document()
        document["schema_version"] = 1

        self.assertFalse(verify_checksum(document))

    def test_missing_checksum(self) -> None:
        """Test a document without a checksum never verifies."""
        self.assertFalse(verify_checksum(sample_snapshot().to_document()))

    def test_non_string_checksum(self) -> None:
        """Test a non-string checksum never verifies."""
        document = sample_snapshot().to_document()
        document["checksum"] = 12345

        self.assertFalse(verify_checksum(document))

    def test_serialize_requires_checksum(self) -> None:
        """Test unchecksummed snapshots cannot be serialized."""
        with self.assertRaises(ValueError):
            serialize(sample_snapshot())


class TestCompression(unittest.TestCase):
    """Tests for compress and decompress."""

    def test_round_trip(self) -> None:
        """Test decompress reverses compress."""
        data = serialize(embed_checksum(sample_snapshot()))

        self.assertEqual(decompress(compress(data)), data)

    def test_gzip_format(self) -> None:
        """Test output is standard gzip."""
        self.assertEqual(gzip.decompress(compress(b"hello")), b"hello")

    def test_deterministic(self) -> None:
        """Test identical input gives identical output."""
        self.assertEqual(compress(b"same data"), compress(b"same data"))

    def test_invalid_stream(self) -> None:
        """Test garbage is reported as corruption."""
        with self.assertRaises(ChecksumMismatchError):
            decompress(b"not gzip at all")

    def test_truncated_stream(self) -> None:
        """Test a truncated stream is reported as corruption."""
        data = compress(b"x" * 1000)

        with self.assertRaises(ChecksumMismatchError):
            decompress(data[: len(data) // 2])


class TestParseDocument(unittest.TestCase):
    """Tests for parse_document."""

    def test_valid(self) -> None:
        """Test a JSON object is returned as a dict."""
        self.assertEqual(parse_document(b'{"a":1}'), {"a": 1})

    def test_invalid_json(self) -> None:
        """Test invalid JSON is reported as corruption."""
        with self.assertRaises(ChecksumMismatchError):
            parse_document(b"{not json")

    def test_not_an_object(self) -> None:
        """Test a JSON array is reported as corruption."""
        with self.assertRaises(ChecksumMismatchError):
            parse_document(b"[]")


if __name__ == "__main__":
    unittest.main()
