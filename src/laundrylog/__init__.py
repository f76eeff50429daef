"""
laundrylog - Local-first laundry ledger with encrypted backups

Keeps track of which laundry items went out, who sent them and what they
cost, in a single SQLite file on the local machine.

Key Features:
    - Catalog of laundry items with default rates
    - Transactions with price captured at send time
    - Household members to tag who sent what
    - Passphrase-encrypted, tamper-evident backups with schema migration
    - Plain CSV export for spreadsheets

Design Principles:
    - Local-first: no server, no account, no sync
    - Fail closed: a backup that cannot be verified is never restored
    - Atomic restore: the live data is replaced completely or not at all
"""

__version__ = "0.1.0"
__author__ = ""
__email__ = ""

from laundrylog.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
