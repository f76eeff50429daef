"""
Ledger storage engine.

This module provides persistent SQLite storage for the laundry ledger and
the DataStore contract the backup engine is written against.

Features:
    - Foreign keys and CHECK constraints enforced on every connection
    - In-place upgrade of older database schemas
    - Whole-ledger export and single-transaction import for backups
    - pin_* settings never overwritten by a restore

Usage:
    from laundrylog.storage import LaundryStore

    store = LaundryStore()
    item_id = store.add_item("Shirt", 25.0)
    store.add_transaction(item_id, quantity=2)
    counts = store.get_record_counts()
"""

from laundrylog.storage.base import (
    DataStore,
    Records,
    Row,
    RowValue,
    StorageError,
)
from laundrylog.storage.database import (
    SCHEMA_VERSION,
    TABLE_ITEMS,
    TABLE_MEMBERS,
    TABLE_SETTINGS,
    TABLE_TRANSACTIONS,
    LaundryStore,
)

__all__ = [
    # Main store class
    "LaundryStore",
    "DataStore",
    # Types
    "Row",
    "RowValue",
    "Records",
    # Schema
    "SCHEMA_VERSION",
    "TABLE_ITEMS",
    "TABLE_TRANSACTIONS",
    "TABLE_MEMBERS",
    "TABLE_SETTINGS",
    # Exceptions
    "StorageError",
]
