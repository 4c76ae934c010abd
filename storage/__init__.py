# storage/__init__.py
"""
Storage layer for rideshare statement reconciliation.

Provides SQLite-based persistence for statement transactions and shifts.
"""

from .sqlite_store import (
    DEFAULT_DB_PATH,
    SQLiteStore,
    open_conn,
    row_to_shift,
    row_to_transaction,
)

from .migrations import (
    check_integrity,
    ensure_current_schema,
    get_table_stats,
    initialize_fresh_db,
)

from .schema import SCHEMA_VERSION

__all__ = [
    # Main class
    "SQLiteStore",
    "DEFAULT_DB_PATH",
    "open_conn",
    "row_to_shift",
    "row_to_transaction",
    # Schema info
    "SCHEMA_VERSION",
    # Migration functions
    "ensure_current_schema",
    "check_integrity",
    "get_table_stats",
    "initialize_fresh_db",
]
