"""
SQLite storage engine for laundrylog.

This module provides the LaundryStore class which persists the laundry
ledger in a single SQLite database file.

Storage Structure:
    data/
        laundrylog.db       # SQLite database

Tables:
    items               - catalog of laundry items and their default rates
    transactions        - items sent to / returned from the laundry
    household_members   - people a transaction can be tagged with
    app_settings        - key/value preferences (pin_* keys are local-only)

Design Decisions:
    - Connection-per-operation, autocommit mode, explicit transactions
    - Foreign keys enforced so a broken import fails loudly
    - Schema version recorded in the schema_version table; v1 databases are
      upgraded in place when opened
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Generator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from laundrylog.storage.base import Records, Row, StorageError

logger = logging.getLogger(__name__)


# Database schema version; also the version stamped into backups
SCHEMA_VERSION = 2

DATABASE_FILE = "laundrylog.db"

TABLE_ITEMS = "items"
TABLE_TRANSACTIONS = "transactions"
TABLE_MEMBERS = "household_members"
TABLE_SETTINGS = "app_settings"

# Settings with this prefix guard app access and never travel in a restore
PIN_SETTING_PREFIX = "pin_"

VALID_TRANSACTION_STATUSES = ("sent", "inProgress", "returned", "cancelled")

# Columns accepted on import, per table. Import statements are built from
# these names only, never from keys found in a backup.
TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    TABLE_ITEMS: (
        "id",
        "name",
        "default_rate",
        "category",
        "is_favorite",
        "is_archived",
        "sort_order",
        "created_at",
        "updated_at",
    ),
    TABLE_TRANSACTIONS: (
        "id",
        "item_id",
        "item_name",
        "quantity",
        "rate",
        "price_at_time",
        "status",
        "member_id",
        "member_name",
        "notes",
        "sent_at",
        "returned_at",
        "created_at",
    ),
    TABLE_MEMBERS: (
        "id",
        "name",
        "color",
        "is_active",
        "is_archived",
        "created_at",
    ),
    TABLE_SETTINGS: ("key", "value", "updated_at"),
}

# Referenced tables first
IMPORT_ORDER = (TABLE_MEMBERS, TABLE_ITEMS, TABLE_TRANSACTIONS, TABLE_SETTINGS)
CLEAR_ORDER = (TABLE_TRANSACTIONS, TABLE_ITEMS, TABLE_MEMBERS)


CREATE_TABLES_SQL = f"""
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {TABLE_ITEMS} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    default_rate REAL NOT NULL,
    category TEXT,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    is_archived INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {TABLE_MEMBERS} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    color TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    is_archived INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {TABLE_TRANSACTIONS} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id INTEGER NOT NULL,
    item_name TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    rate REAL NOT NULL,
    price_at_time REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'sent'
        CHECK(status IN ('sent', 'inProgress', 'returned', 'cancelled')),
    member_id INTEGER,
    member_name TEXT,
    notes TEXT,
    sent_at TEXT,
    returned_at TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (item_id) REFERENCES {TABLE_ITEMS} (id) ON DELETE RESTRICT,
    FOREIGN KEY (member_id) REFERENCES {TABLE_MEMBERS} (id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS {TABLE_SETTINGS} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

CREATE_INDEXES_SQL = f"""
CREATE INDEX IF NOT EXISTS idx_transactions_status ON {TABLE_TRANSACTIONS} (status);
CREATE INDEX IF NOT EXISTS idx_transactions_item_id ON {TABLE_TRANSACTIONS} (item_id);
CREATE INDEX IF NOT EXISTS idx_transactions_member_id ON {TABLE_TRANSACTIONS} (member_id);
CREATE INDEX IF NOT EXISTS idx_transactions_sent_at ON {TABLE_TRANSACTIONS} (sent_at);
CREATE INDEX IF NOT EXISTS idx_transactions_created_at ON {TABLE_TRANSACTIONS} (created_at);
CREATE INDEX IF NOT EXISTS idx_items_is_archived ON {TABLE_ITEMS} (is_archived);
CREATE INDEX IF NOT EXISTS idx_items_category ON {TABLE_ITEMS} (category);
CREATE INDEX IF NOT EXISTS idx_members_is_archived ON {TABLE_MEMBERS} (is_archived);
"""

DEFAULT_ITEMS: list[tuple[str, float, str]] = [
    ("Shirt", 25.0, "Clothing"),
    ("T-Shirt", 20.0, "Clothing"),
    ("Pants", 30.0, "Clothing"),
    ("Jeans", 35.0, "Clothing"),
    ("Kurta", 30.0, "Clothing"),
    ("Saree", 50.0, "Clothing"),
    ("Suit (2pc)", 100.0, "Formal"),
    ("Suit (3pc)", 150.0, "Formal"),
    ("Bedsheet", 40.0, "Bedding"),
    ("Pillow Cover", 15.0, "Bedding"),
    ("Curtain", 50.0, "Home"),
    ("Tablecloth", 30.0, "Home"),
]


def _now() -> str:
    return datetime.now(UTC).isoformat()


class LaundryStore:
    """
    Persistent SQLite storage for the laundry ledger.

    Implements the DataStore contract used by the backup engine, plus the
    handful of helpers the CLI needs to put data in.

    Example:
        store = LaundryStore(data_dir=Path("./data"))
        shirt = store.add_item("Shirt", 25.0, category="Clothing")
        store.add_transaction(shirt, quantity=3)

        counts = store.get_record_counts()
        snapshot = store.export_all()

    Attributes:
        data_dir: Base directory for data storage.
        db_path: Path to the SQLite database file.
    """

    schema_version = SCHEMA_VERSION

    def __init__(self, data_dir: Path | str | None = None) -> None:
        """
        Initialize the store, creating or upgrading the database.

        Args:
            data_dir: Base directory for data storage. Defaults to ~/.laundrylog/data

        Raises:
            StorageError: If the database was written by a newer schema.
        """
        if data_dir is None:
            data_dir = Path.home() / ".laundrylog" / "data"
        elif isinstance(data_dir, str):
            data_dir = Path(data_dir)

        self.data_dir = data_dir
        self.db_path = data_dir / DATABASE_FILE

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._init_database()

    def _init_database(self) -> None:
        """Create the schema, or bring an older one up to date."""
        with self._get_connection() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS schema_version "
                "(version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
            )
            row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
            current = row[0] if row else None

            if current is None:
                conn.executescript(CREATE_TABLES_SQL)
                conn.executescript(CREATE_INDEXES_SQL)
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, _now()),
                )
                logger.info(f"Initialized database schema version {SCHEMA_VERSION}")
            elif current < SCHEMA_VERSION:
                self._upgrade(conn, current)
            elif current > SCHEMA_VERSION:
                raise StorageError(
                    f"Database schema version {current} is newer than "
                    f"supported version {SCHEMA_VERSION}"
                )

    def _upgrade(self, conn: sqlite3.Connection, from_version: int) -> None:
        """Apply in-place upgrades from ``from_version`` to SCHEMA_VERSION."""
        try:
            conn.execute("BEGIN IMMEDIATE")
            if from_version < 2:
                self._migrate_v1_to_v2(conn)
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (SCHEMA_VERSION, _now()),
            )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(f"Schema upgrade from v{from_version} failed: {e}") from e

        logger.info(f"Upgraded database schema v{from_version} -> v{SCHEMA_VERSION}")

    def _migrate_v1_to_v2(self, conn: sqlite3.Connection) -> None:
        """Add price_at_time, soft-delete flags and the settings table."""
        conn.execute(f"ALTER TABLE {TABLE_TRANSACTIONS} ADD COLUMN price_at_time REAL")
        conn.execute(
            f"UPDATE {TABLE_TRANSACTIONS} SET price_at_time = rate "
            "WHERE price_at_time IS NULL"
        )
        conn.execute(
            f"ALTER TABLE {TABLE_ITEMS} "
            "ADD COLUMN is_archived INTEGER NOT NULL DEFAULT 0"
        )
        conn.execute(
            f"ALTER TABLE {TABLE_MEMBERS} "
            "ADD COLUMN is_archived INTEGER NOT NULL DEFAULT 0"
        )
        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {TABLE_SETTINGS} ("
            "key TEXT PRIMARY KEY, value TEXT NOT NULL, updated_at TEXT NOT NULL)"
        )
        for statement in CREATE_INDEXES_SQL.strip().splitlines():
            conn.execute(statement)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a database connection with proper settings.

        Yields:
            SQLite connection with row factory set.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            isolation_level=None,  # Autocommit mode, we manage transactions manually
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Backup collaborator methods
    # -------------------------------------------------------------------------

    def export_all(self) -> Records:
        """
        Export every table as lists of row dictionaries.

        Rows are ordered by primary key so repeated exports of unchanged
        data are identical.
        """
        records: Records = {}
        with self._get_connection() as conn:
            for table in IMPORT_ORDER:
                order_by = "key" if table == TABLE_SETTINGS else "id"
                cursor = conn.execute(f"SELECT * FROM {table} ORDER BY {order_by}")  # noqa: S608
                records[table] = [dict(row) for row in cursor.fetchall()]
        return records

    def import_all_transactional(
        self, records: Mapping[str, Sequence[Row]]
    ) -> dict[str, int]:
        """
        Replace the ledger with ``records`` inside a single transaction.

        Existing pin_* settings are kept and pin_* settings in ``records``
        are skipped. Tables missing from ``records`` end up empty.

        Returns:
            Rows inserted per table, skipped pin_* settings excluded.

        Raises:
            StorageError: On unknown tables/columns or any database error.
                The database is rolled back to its state before the call.
        """
        unknown = set(records) - set(TABLE_COLUMNS)
        if unknown:
            raise StorageError(f"Unknown tables in import: {', '.join(sorted(unknown))}")

        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")

                for table in CLEAR_ORDER:
                    conn.execute(f"DELETE FROM {table}")  # noqa: S608
                conn.execute(
                    f"DELETE FROM {TABLE_SETTINGS} WHERE substr(key, 1, ?) != ?",  # noqa: S608
                    (len(PIN_SETTING_PREFIX), PIN_SETTING_PREFIX),
                )

                inserted: dict[str, int] = {}
                for table in IMPORT_ORDER:
                    rows = records.get(table, [])
                    inserted[table] = self._insert_rows(conn, table, rows)

                conn.execute("COMMIT")
            except Exception as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.error(f"Import rolled back: {e}")
                if isinstance(e, StorageError):
                    raise
                raise StorageError(f"Import failed: {e}") from e

        logger.info(
            "Imported "
            + ", ".join(f"{count} {table}" for table, count in inserted.items())
        )
        return inserted

    def _insert_rows(
        self,
        conn: sqlite3.Connection,
        table: str,
        rows: Sequence[Row],
    ) -> int:
        """Insert rows into ``table`` within the caller's transaction."""
        allowed = TABLE_COLUMNS[table]
        count = 0
        for row in rows:
            extra = set(row) - set(allowed)
            if extra:
                raise StorageError(
                    f"Unknown columns for {table}: {', '.join(sorted(extra))}"
                )

            if table == TABLE_SETTINGS and str(row.get("key", "")).startswith(
                PIN_SETTING_PREFIX
            ):
                continue

            columns = [column for column in allowed if column in row]
            placeholders = ", ".join("?" for _ in columns)
            verb = "INSERT OR REPLACE" if table == TABLE_SETTINGS else "INSERT"
            conn.execute(
                f"{verb} INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",  # noqa: S608
                [row[column] for column in columns],
            )
            count += 1
        return count

    def get_record_counts(self) -> dict[str, int]:
        """Return the number of rows in each ledger table."""
        counts: dict[str, int] = {}
        with self._get_connection() as conn:
            for table in IMPORT_ORDER:
                (count,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()  # noqa: S608
                counts[table] = count
        return counts

    # -------------------------------------------------------------------------
    # Ledger helpers
    # -------------------------------------------------------------------------

    def add_item(
        self,
        name: str,
        default_rate: float,
        category: str | None = None,
        is_favorite: bool = False,
        sort_order: int = 0,
    ) -> int:
        """Add a catalog item and return its id."""
        now = _now()
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO {TABLE_ITEMS} (
                    name, default_rate, category, is_favorite, is_archived,
                    sort_order, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (name, default_rate, category, int(is_favorite), sort_order, now, now),
            )
            return int(cursor.lastrowid)

    def add_member(self, name: str, color: str | None = None) -> int:
        """Add a household member and return its id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO {TABLE_MEMBERS} (name, color, is_active, is_archived, created_at)
                VALUES (?, ?, 1, 0, ?)
                """,
                (name, color, _now()),
            )
            return int(cursor.lastrowid)

    def add_transaction(
        self,
        item_id: int,
        quantity: int,
        status: str = "sent",
        member_id: int | None = None,
        notes: str | None = None,
        rate: float | None = None,
    ) -> int:
        """
        Record a transaction for a catalog item.

        The item's name and rate are copied onto the transaction so later
        catalog edits do not rewrite history.

        Raises:
            StorageError: If the item or member does not exist, or the
                status is not a known transaction status.
        """
        if status not in VALID_TRANSACTION_STATUSES:
            raise StorageError(f"Invalid transaction status: {status}")

        now = _now()
        with self._get_connection() as conn:
            item = conn.execute(
                f"SELECT name, default_rate FROM {TABLE_ITEMS} WHERE id = ?",  # noqa: S608
                (item_id,),
            ).fetchone()
            if item is None:
                raise StorageError(f"Item not found: {item_id}")

            member_name = None
            if member_id is not None:
                member = conn.execute(
                    f"SELECT name FROM {TABLE_MEMBERS} WHERE id = ?",  # noqa: S608
                    (member_id,),
                ).fetchone()
                if member is None:
                    raise StorageError(f"Household member not found: {member_id}")
                member_name = member["name"]

            unit_rate = item["default_rate"] if rate is None else rate
            returned_at = now if status == "returned" else None
            cursor = conn.execute(
                f"""
                INSERT INTO {TABLE_TRANSACTIONS} (
                    item_id, item_name, quantity, rate, price_at_time, status,
                    member_id, member_name, notes, sent_at, returned_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item_id,
                    item["name"],
                    quantity,
                    unit_rate,
                    unit_rate,
                    status,
                    member_id,
                    member_name,
                    notes,
                    now,
                    returned_at,
                    now,
                ),
            )
            return int(cursor.lastrowid)

    def get_items(self, include_archived: bool = False) -> list[dict[str, Any]]:
        """List catalog items in display order."""
        query = f"SELECT * FROM {TABLE_ITEMS}"  # noqa: S608
        if not include_archived:
            query += " WHERE is_archived = 0"
        query += " ORDER BY sort_order, id"
        with self._get_connection() as conn:
            return [dict(row) for row in conn.execute(query).fetchall()]

    def get_transactions(self, status: str | None = None) -> list[dict[str, Any]]:
        """List transactions, newest first, optionally filtered by status."""
        query = f"SELECT * FROM {TABLE_TRANSACTIONS}"  # noqa: S608
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status,)
        query += " ORDER BY created_at DESC, id DESC"
        with self._get_connection() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

    def get_setting(self, key: str) -> str | None:
        """Get a setting value by key."""
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT value FROM {TABLE_SETTINGS} WHERE key = ?",  # noqa: S608
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        """Insert or replace a setting."""
        with self._get_connection() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {TABLE_SETTINGS} (key, value, updated_at) "  # noqa: S608
                "VALUES (?, ?, ?)",
                (key, value, _now()),
            )

    def delete_setting(self, key: str) -> None:
        """Delete a setting if present."""
        with self._get_connection() as conn:
            conn.execute(f"DELETE FROM {TABLE_SETTINGS} WHERE key = ?", (key,))  # noqa: S608

    def seed_default_items(self) -> int:
        """
        Insert the default laundry catalog into an empty items table.

        Returns:
            Number of items inserted (0 if the catalog was not empty).
        """
        now = _now()
        with self._get_connection() as conn:
            (existing,) = conn.execute(f"SELECT COUNT(*) FROM {TABLE_ITEMS}").fetchone()  # noqa: S608
            if existing:
                return 0

            conn.execute("BEGIN TRANSACTION")
            try:
                for index, (name, rate, category) in enumerate(DEFAULT_ITEMS):
                    conn.execute(
                        f"""
                        INSERT INTO {TABLE_ITEMS} (
                            name, default_rate, category, is_favorite, is_archived,
                            sort_order, created_at, updated_at
                        ) VALUES (?, ?, ?, 0, 0, ?, ?, ?)
                        """,
                        (name, rate, category, index, now, now),
                    )
                conn.execute("COMMIT")
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

        logger.info(f"Seeded {len(DEFAULT_ITEMS)} default items")
        return len(DEFAULT_ITEMS)
