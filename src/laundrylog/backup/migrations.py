"""
Forward-only migration of snapshot documents between schema versions.

Each step upgrades the records of a decoded snapshot document to one
target version. Steps run in ascending order for every target above the
backup's version, and each step is idempotent, so a document that already
carries a field keeps its value.

Adding a schema version:
    1. Bump SCHEMA_VERSION in laundrylog.storage.database.
    2. Write a ``_to_vN(records)`` step below.
    3. Register it in MIGRATIONS.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from typing import Any

from laundrylog.backup.errors import MalformedContainerError, UnsupportedFutureVersionError
from laundrylog.backup.snapshot import DEFAULT_SCHEMA_VERSION
from laundrylog.storage.database import (
    SCHEMA_VERSION,
    TABLE_ITEMS,
    TABLE_MEMBERS,
    TABLE_SETTINGS,
    TABLE_TRANSACTIONS,
)

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = SCHEMA_VERSION


def _rows(records: dict[str, Any], table: str) -> list[dict[str, Any]]:
    rows = records.get(table) or []
    return [row for row in rows if isinstance(row, dict)]


def _to_v2(records: dict[str, Any]) -> None:
    """v1 -> v2: price_at_time, soft-delete flags, settings table."""
    for txn in _rows(records, TABLE_TRANSACTIONS):
        if txn.get("price_at_time") is None:
            txn["price_at_time"] = txn.get("rate")

    for item in _rows(records, TABLE_ITEMS):
        if item.get("is_archived") is None:
            item["is_archived"] = 0

    for member in _rows(records, TABLE_MEMBERS):
        if member.get("is_archived") is None:
            member["is_archived"] = 0

    if records.get(TABLE_SETTINGS) is None:
        records[TABLE_SETTINGS] = []


MIGRATIONS: list[tuple[int, Callable[[dict[str, Any]], None]]] = [
    (2, _to_v2),
]


def check_version(version: Any, current_version: int = CURRENT_SCHEMA_VERSION) -> int:
    """
    Validate a backup's schema version against the running app.

    Returns:
        The version to migrate from (versions below 1 count as 1).

    Raises:
        MalformedContainerError: If the version is not an integer.
        UnsupportedFutureVersionError: If the backup is newer than the app.
    """
    if isinstance(version, bool) or not isinstance(version, int):
        raise MalformedContainerError(f"Invalid schema version in backup: {version!r}")
    if version > current_version:
        raise UnsupportedFutureVersionError(version, current_version)
    return max(version, DEFAULT_SCHEMA_VERSION)


def needs_migration(version: int, current_version: int = CURRENT_SCHEMA_VERSION) -> bool:
    """True if a backup at ``version`` must be migrated before import."""
    return version < current_version


def migrate(
    document: Mapping[str, Any],
    from_version: int,
    current_version: int = CURRENT_SCHEMA_VERSION,
) -> dict[str, Any]:
    """
    Bring a decoded snapshot document up to ``current_version``.

    The input is never modified. The returned document has no checksum,
    since its content no longer matches the one that was verified.

    Raises:
        MalformedContainerError: If ``from_version`` is not an integer.
        UnsupportedFutureVersionError: If ``from_version`` is newer than
            ``current_version``.
    """
    start = check_version(from_version, current_version)

    migrated = copy.deepcopy(dict(document))
    migrated.pop("checksum", None)
    records = migrated.get("records")
    if not isinstance(records, dict):
        records = {}
        migrated["records"] = records

    for target, step in MIGRATIONS:
        if start < target <= current_version:
            step(records)
            logger.debug(f"Migrated backup records to schema v{target}")

    migrated["schema_version"] = current_version
    return migrated
