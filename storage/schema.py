# storage/schema.py
"""
Database schema definitions for the rideshare statement store.

Schema version history:
  v1: transactions, shifts, schema_version
"""
from __future__ import annotations

SCHEMA_VERSION = 1

# =============================================================================
# Core Tables
# =============================================================================

# Category is derived from event_type on read and deliberately not a column.
CREATE_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    transaction_date TEXT NOT NULL,
    event_date TEXT,
    event_type TEXT NOT NULL,
    amount REAL,
    tolls_reimbursed REAL,
    statement_period TEXT NOT NULL,
    shift_id TEXT,
    import_date TEXT NOT NULL,
    source_row INTEGER DEFAULT 0,
    needs_manual_verification INTEGER DEFAULT 0,
    fingerprint TEXT
);
"""

CREATE_SHIFTS = """
CREATE TABLE IF NOT EXISTS shifts (
    id TEXT PRIMARY KEY,
    start_date TEXT NOT NULL,
    end_date TEXT,
    created_at TEXT,
    net_fare REAL,
    tips REAL,
    promotions REAL,
    tolls_reimbursed REAL,
    updated_at TEXT
);
"""

# Schema version tracking
CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

# =============================================================================
# Indexes
# =============================================================================

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_transactions_period ON transactions(statement_period);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_shift ON transactions(shift_id);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_fingerprint ON transactions(fingerprint);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(transaction_date);",
    "CREATE INDEX IF NOT EXISTS idx_shifts_start ON shifts(start_date);",
]

# =============================================================================
# All DDL statements in order
# =============================================================================

ALL_TABLES = [
    CREATE_SCHEMA_VERSION,
    CREATE_TRANSACTIONS,
    CREATE_SHIFTS,
]
