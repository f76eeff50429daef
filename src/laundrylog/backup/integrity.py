"""
Checksum and compression layers of the backup pipeline.

The checksum is a SHA-256 digest of the canonical JSON of the snapshot
document without its "checksum" key. It is embedded in the document before
compression, so after a successful decrypt a mismatch points at the
compression or serialization layers rather than at the passphrase.
"""

from __future__ import annotations

import dataclasses
import gzip
import hashlib
import hmac
import json
import zlib
from collections.abc import Mapping
from typing import Any

from laundrylog.backup.errors import ChecksumMismatchError
from laundrylog.backup.snapshot import Snapshot, canonical_json

CHECKSUM_FIELD = "checksum"


def compute_checksum(document: Mapping[str, Any]) -> str:
    """SHA-256 hex digest over every field except the checksum itself."""
    content = {key: value for key, value in document.items() if key != CHECKSUM_FIELD}
    return hashlib.sha256(canonical_json(content)).hexdigest()


def embed_checksum(snapshot: Snapshot) -> Snapshot:
    """Return a new snapshot carrying the checksum of its content."""
    checksum = compute_checksum(snapshot.to_document(include_checksum=False))
    return dataclasses.replace(snapshot, checksum=checksum)


def verify_checksum(document: Mapping[str, Any]) -> bool:
    """
    Recompute the checksum of a decoded document and compare it.

    Returns:
        True only if a checksum is present and matches exactly.
    """
    stored = document.get(CHECKSUM_FIELD)
    if not isinstance(stored, str):
        return False
    try:
        actual = compute_checksum(document)
    except ValueError:
        # NaN/Infinity literals cannot be canonicalized
        return False
    return hmac.compare_digest(stored.encode("utf-8"), actual.encode("utf-8"))


def serialize(snapshot: Snapshot) -> bytes:
    """Canonical bytes of a checksummed snapshot."""
    if snapshot.checksum is None:
        raise ValueError("Snapshot must be checksummed before serialization")
    return canonical_json(snapshot.to_document())


def compress(data: bytes) -> bytes:
    """Gzip ``data`` with a fixed header timestamp."""
    return gzip.compress(data, mtime=0)


def decompress(data: bytes) -> bytes:
    """
    Reverse compress().

    Raises:
        ChecksumMismatchError: If the data is not a valid gzip stream.
    """
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise ChecksumMismatchError(f"Backup contents could not be decompressed: {e}") from e


def parse_document(data: bytes) -> dict[str, Any]:
    """
    Decode decompressed bytes into a snapshot document.

    Raises:
        ChecksumMismatchError: If the bytes are not a UTF-8 JSON object.
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ChecksumMismatchError(f"Backup contents are not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise ChecksumMismatchError("Backup contents are not a JSON object")
    return document
