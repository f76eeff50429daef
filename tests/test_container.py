"""Tests for the backup container format."""

from __future__ import annotations

import base64
import json
import unittest
from datetime import UTC, datetime

from laundrylog.backup.container import (
    MAGIC,
    ContainerFields,
    decode_container,
    encode_container,
)
from laundrylog.backup.errors import MalformedContainerError


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestContainer(unittest.TestCase):
    """Tests for encode_container and decode_container."""

    def setUp(self) -> None:
        self.salt = b"\x01" * 32
        self.iv = b"\x02" * 12
        self.payload = b"\x03" * 40
        self.created_at = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)

    def valid_container(self) -> dict:
        return {
            "magic": MAGIC,
            "salt": b64(self.salt),
            "iv": b64(self.iv),
            "data": b64(self.payload),
            "created_at": self.created_at.isoformat(),
        }

    def encode(self, container: dict) -> bytes:
        return json.dumps(container).encode("utf-8")

    def test_round_trip(self) -> None:
        """Test decode reverses encode."""
        raw = encode_container(self.salt, self.iv, self.payload, self.created_at)

        fields = decode_container(raw)

        self.assertEqual(
            fields,
            ContainerFields(
                salt=self.salt, iv=self.iv, payload=self.payload, created_at=self.created_at
            ),
        )

    def test_ciphertext_and_tag_split(self) -> None:
        """Test the last 16 payload bytes are the tag."""
        fields = ContainerFields(
            salt=self.salt, iv=self.iv, payload=b"a" * 10 + b"t" * 16, created_at=self.created_at
        )

        self.assertEqual(fields.ciphertext, b"a" * 10)
        self.assertEqual(fields.tag, b"t" * 16)

    def test_not_json(self) -> None:
        """Test non-JSON bytes are rejected."""
        with self.assertRaises(MalformedContainerError):
            decode_container(b"PK\x03\x04 zip file")

    def test_not_utf8(self) -> None:
        """Test invalid UTF-8 is rejected."""
        with self.assertRaises(MalformedContainerError):
            decode_container(b"\xff\xfe\xfd")

    def test_json_array(self) -> None:
        """Test a JSON document that is not an object is rejected."""
        with self.assertRaises(MalformedContainerError):
            decode_container(b"[1, 2, 3]")

    def test_wrong_magic(self) -> None:
        """Test a foreign format marker is rejected."""
        container = self.valid_container()
        container["magic"] = "SOMETHING_ELSE"

        with self.assertRaises(MalformedContainerError) as cm:
            decode_container(self.encode(container))

        self.assertIn("Invalid backup file format", str(cm.exception))

    def test_missing_magic(self) -> None:
        """Test a container without a marker is rejected."""
        container = self.valid_container()
        del container["magic"]

        with self.assertRaises(MalformedContainerError):
            decode_container(self.encode(container))

    def test_legacy_magic(self) -> None:
        """Test the first-generation format is reported as unsupported."""
        container = self.valid_container()
        container["magic"] = "LAUNDRY_BACKUP_V1"

        with self.assertRaises(MalformedContainerError) as cm:
            decode_container(self.encode(container))

        self.assertIn("no longer supported", str(cm.exception))

    def test_missing_fields(self) -> None:
        """Test each required field is checked."""
        for name in ("salt", "iv", "data", "created_at"):
            container = self.valid_container()
            del container[name]
            with self.subTest(field=name), self.assertRaises(MalformedContainerError):
                decode_container(self.encode(container))

    def test_invalid_base64(self) -> None:
        """Test non-base64 field values are rejected."""
        container = self.valid_container()
        container["salt"] = "not base64!!"

        with self.assertRaises(MalformedContainerError):
            decode_container(self.encode(container))

    def test_short_salt(self) -> None:
        """Test salts shorter than 32 bytes are rejected."""
        container = self.valid_container()
        container["salt"] = b64(b"\x01" * 16)

        with self.assertRaises(MalformedContainerError):
            decode_container(self.encode(container))

    def test_iv_length_bounds(self) -> None:
        """Test IVs must be 12 to 16 bytes."""
        for length, ok in ((11, False), (12, True), (16, True), (17, False)):
            container = self.valid_container()
            container["iv"] = b64(b"\x02" * length)
            with self.subTest(length=length):
                if ok:
                    self.assertEqual(len(decode_container(self.encode(container)).iv), length)
                else:
                    with self.assertRaises(MalformedContainerError):
                        decode_container(self.encode(container))

    def test_payload_shorter_than_tag(self) -> None:
        """Test a payload that cannot hold a tag is rejected."""
        container = self.valid_container()
        container["data"] = b64(b"\x03" * 15)

        with self.assertRaises(MalformedContainerError):
            decode_container(self.encode(container))

    def test_invalid_created_at(self) -> None:
        """Test an unparseable timestamp is rejected."""
        container = self.valid_container()
        container["created_at"] = "yesterday"

        with self.assertRaises(MalformedContainerError):
            decode_container(self.encode(container))


if __name__ == "__main__":
    unittest.main()
