"""
On-disk backup container format.

A container is a small UTF-8 JSON object:

    {
        "magic": "LAUNDRY_BACKUP_V2",
        "salt": "<base64, 32 bytes>",
        "iv": "<base64, 12 bytes>",
        "data": "<base64, ciphertext followed by 16-byte tag>",
        "created_at": "2024-05-01T10:00:00+00:00"
    }

The magic marker is checked before anything else is looked at, so foreign
files are rejected without any key derivation. created_at is informational
only and is not authenticated.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from laundrylog.backup.crypto import (
    MAX_IV_LENGTH,
    MIN_IV_LENGTH,
    MIN_SALT_LENGTH,
    TAG_LENGTH,
)
from laundrylog.backup.errors import MalformedContainerError

MAGIC = "LAUNDRY_BACKUP_V2"
LEGACY_MAGICS = frozenset({"LAUNDRY_BACKUP_V1"})
FILE_EXTENSION = ".llb"


@dataclass(frozen=True)
class ContainerFields:
    """Decoded fields of a backup container."""

    salt: bytes
    iv: bytes
    payload: bytes
    created_at: datetime

    @property
    def ciphertext(self) -> bytes:
        return self.payload[:-TAG_LENGTH]

    @property
    def tag(self) -> bytes:
        return self.payload[-TAG_LENGTH:]


def encode_container(salt: bytes, iv: bytes, payload: bytes, created_at: datetime) -> bytes:
    """Serialize container fields to file bytes."""
    container = {
        "magic": MAGIC,
        "salt": base64.b64encode(salt).decode("ascii"),
        "iv": base64.b64encode(iv).decode("ascii"),
        "data": base64.b64encode(payload).decode("ascii"),
        "created_at": created_at.isoformat(),
    }
    return json.dumps(container).encode("utf-8")


def decode_container(raw: bytes) -> ContainerFields:
    """
    Parse file bytes into container fields.

    Raises:
        MalformedContainerError: If the bytes are not a backup container of
            this format, or any field is missing or invalid.
    """
    try:
        container = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedContainerError("Invalid backup file format") from e

    if not isinstance(container, dict):
        raise MalformedContainerError("Invalid backup file format")

    magic = container.get("magic")
    if magic in LEGACY_MAGICS:
        raise MalformedContainerError(
            f"Backup format {magic} is no longer supported; "
            "create a new backup with this version of the app"
        )
    if magic != MAGIC:
        raise MalformedContainerError("Invalid backup file format")

    salt = _decode_binary(container, "salt")
    iv = _decode_binary(container, "iv")
    payload = _decode_binary(container, "data")

    if len(salt) < MIN_SALT_LENGTH:
        raise MalformedContainerError(f"Salt must be at least {MIN_SALT_LENGTH} bytes")
    if not MIN_IV_LENGTH <= len(iv) <= MAX_IV_LENGTH:
        raise MalformedContainerError(
            f"IV must be {MIN_IV_LENGTH}-{MAX_IV_LENGTH} bytes, got {len(iv)}"
        )
    if len(payload) < TAG_LENGTH:
        raise MalformedContainerError("Encrypted payload is too short")

    created_raw = container.get("created_at")
    if not isinstance(created_raw, str):
        raise MalformedContainerError("Missing field: created_at")
    try:
        created_at = datetime.fromisoformat(created_raw)
    except ValueError as e:
        raise MalformedContainerError(f"Invalid created_at: {created_raw!r}") from e

    return ContainerFields(salt=salt, iv=iv, payload=payload, created_at=created_at)


def _decode_binary(container: dict[str, Any], name: str) -> bytes:
    value = container.get(name)
    if not isinstance(value, str):
        raise MalformedContainerError(f"Missing field: {name}")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedContainerError(f"Field {name} is not valid base64") from e
