# storage/migrations.py
"""
Schema management for the rideshare statement store.

Handles fresh initialization, version tracking, integrity checks and
row-count stats.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Dict, List

from .schema import ALL_TABLES, CREATE_INDEXES, SCHEMA_VERSION

EXPECTED_TABLES = ["transactions", "shifts"]


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version, or 0 if not initialized."""
    cur = conn.cursor()
    try:
        cur.execute("SELECT MAX(version) FROM schema_version")
        row = cur.fetchone()
        return row[0] if row and row[0] else 0
    except sqlite3.OperationalError:
        # schema_version table doesn't exist
        return 0


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Record schema version."""
    cur = conn.cursor()
    cur.execute(
        "INSERT OR REPLACE INTO schema_version (version, applied_at) VALUES (?, ?)",
        (version, datetime.now().isoformat()),
    )
    conn.commit()


def table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
    """Check if a table exists."""
    cur = conn.cursor()
    cur.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table_name,),
    )
    return cur.fetchone() is not None


def get_table_columns(conn: sqlite3.Connection, table_name: str) -> List[str]:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table_name})")
    return [row[1] for row in cur.fetchall()]


def create_all_tables(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for ddl in ALL_TABLES:
        cur.execute(ddl)
    conn.commit()


def create_all_indexes(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for ddl in CREATE_INDEXES:
        cur.execute(ddl)
    conn.commit()


def initialize_fresh_db(conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Initialize a fresh database with full schema.
    Returns initialization stats.
    """
    create_all_tables(conn)
    create_all_indexes(conn)
    set_schema_version(conn, SCHEMA_VERSION)
    return {
        "tables_created": len(ALL_TABLES),
        "indexes_created": len(CREATE_INDEXES),
    }


def ensure_current_schema(conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Ensure database has current schema.
    This is the main entry point for schema management.
    """
    current_version = get_schema_version(conn)
    if current_version == SCHEMA_VERSION:
        return {"status": "current", "version": SCHEMA_VERSION}
    if current_version > SCHEMA_VERSION:
        return {"status": "newer", "version": current_version}
    stats = initialize_fresh_db(conn)
    return {"status": "initialized", "version": SCHEMA_VERSION, **stats}


def check_integrity(conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Run integrity checks on the database.
    Returns detailed status report.
    """
    result: Dict[str, Any] = {
        "status": "ok",
        "version": get_schema_version(conn),
        "tables": {},
        "integrity_check": None,
        "issues": [],
    }

    cur = conn.cursor()

    cur.execute("PRAGMA integrity_check")
    integrity = cur.fetchone()[0]
    result["integrity_check"] = integrity
    if integrity != "ok":
        result["status"] = "error"
        result["issues"].append(f"Integrity check failed: {integrity}")

    for table in EXPECTED_TABLES:
        if table_exists(conn, table):
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            count = cur.fetchone()[0]
            result["tables"][table] = {"exists": True, "rows": count}
        else:
            result["tables"][table] = {"exists": False, "rows": 0}
            result["status"] = "warning"
            result["issues"].append(f"Missing table: {table}")

    if table_exists(conn, "transactions") and table_exists(conn, "shifts"):
        # shift_id pointing at a shift that no longer exists
        cur.execute(
            """
            SELECT COUNT(*) FROM transactions t
            WHERE t.shift_id IS NOT NULL
              AND NOT EXISTS (SELECT 1 FROM shifts s WHERE s.id = t.shift_id)
            """
        )
        dangling = cur.fetchone()[0]
        if dangling:
            result["status"] = "warning"
            result["issues"].append(
                f"{dangling} transactions reference missing shifts - run rematch"
            )

    return result


def get_table_stats(conn: sqlite3.Connection) -> Dict[str, int]:
    """Get row counts for all tables."""
    stats = {}
    cur = conn.cursor()
    for table in EXPECTED_TABLES:
        if table_exists(conn, table):
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            stats[table] = cur.fetchone()[0]
        else:
            stats[table] = -1  # Doesn't exist
    return stats
