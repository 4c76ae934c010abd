# storage/sqlite_store.py
"""
SQLite storage layer for rideshare statements.

Provides persistence for:
- Transactions (grouped by statement period, optionally assigned to a shift)
- Shifts (start/end, plus the earnings totals written back after matching)
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from matching.aggregate import TransactionTotals
from matching.matcher import ShiftMatcher
from rst_core.models import DEFAULT_BOUNDARY_OFFSET, Shift, Transaction
from rst_utils.fingerprint import transaction_fingerprint

from .migrations import check_integrity, ensure_current_schema, get_table_stats

DEFAULT_DB_PATH = "data/rideshare.sqlite"


def open_conn(path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a database connection with row factory."""
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    # concurrent importers wait on the exclusive lock instead of failing fast
    conn = sqlite3.connect(path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    return conn


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat(sep=" ", timespec="seconds") if ts else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def row_to_transaction(row: Mapping[str, Any]) -> Transaction:
    return Transaction(
        id=row["id"],
        transaction_date=datetime.fromisoformat(row["transaction_date"]),
        event_date=_dt(row["event_date"]),
        event_type=row["event_type"],
        amount=row["amount"],
        tolls_reimbursed=row["tolls_reimbursed"],
        statement_period=row["statement_period"],
        shift_id=row["shift_id"],
        import_date=datetime.fromisoformat(row["import_date"]),
        source_row=row["source_row"] or 0,
        needs_manual_verification=bool(row["needs_manual_verification"]),
    )


def row_to_shift(row: Mapping[str, Any]) -> Shift:
    return Shift(
        id=row["id"],
        start_date=datetime.fromisoformat(row["start_date"]),
        end_date=_dt(row["end_date"]),
        created_at=_dt(row["created_at"]),
    )


class SQLiteStore:
    """
    Main storage class. Every write commits on its own unless it runs
    inside exclusive(), which commits or rolls back as one unit.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._exclusive = False

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = open_conn(self.db_path)
        return self._conn

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _commit(self) -> None:
        if not self._exclusive:
            self.conn.commit()

    @contextmanager
    def exclusive(self) -> Iterator["SQLiteStore"]:
        """
        Hold SQLite's EXCLUSIVE lock for the duration of the block.
        Commits on success, rolls everything back on any exception.
        """
        conn = self.conn
        if conn.in_transaction:
            conn.commit()
        conn.execute("BEGIN EXCLUSIVE")
        self._exclusive = True
        try:
            yield self
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()
        finally:
            self._exclusive = False

    def ensure_schema(self) -> Dict[str, Any]:
        """Ensure database has current schema."""
        return ensure_current_schema(self.conn)

    def check_integrity(self) -> Dict[str, Any]:
        return check_integrity(self.conn)

    def get_stats(self) -> Dict[str, int]:
        return get_table_stats(self.conn)

    # =========================================================================
    # Transaction Operations
    # =========================================================================

    def has_statement_period(self, label: str) -> bool:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT 1 FROM transactions WHERE statement_period = ? LIMIT 1", (label,)
        )
        return cur.fetchone() is not None

    def exists_by_fingerprint(
        self, fingerprint: str, *, exclude_period: Optional[str] = None
    ) -> bool:
        """True when an equal transaction is already stored (optionally outside one period)."""
        cur = self.conn.cursor()
        if exclude_period is None:
            cur.execute(
                "SELECT 1 FROM transactions WHERE fingerprint = ? LIMIT 1", (fingerprint,)
            )
        else:
            cur.execute(
                "SELECT 1 FROM transactions WHERE fingerprint = ? "
                "AND statement_period != ? LIMIT 1",
                (fingerprint, exclude_period),
            )
        return cur.fetchone() is not None

    def delete_statement_period(self, label: str) -> int:
        cur = self.conn.cursor()
        cur.execute("DELETE FROM transactions WHERE statement_period = ?", (label,))
        self._commit()
        return cur.rowcount

    def insert_transaction(self, txn: Transaction) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT INTO transactions (
                id, transaction_date, event_date, event_type, amount,
                tolls_reimbursed, statement_period, shift_id, import_date,
                source_row, needs_manual_verification, fingerprint
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                txn.id,
                _iso(txn.transaction_date),
                _iso(txn.event_date),
                txn.event_type,
                txn.amount,
                txn.tolls_reimbursed,
                txn.statement_period,
                txn.shift_id,
                txn.import_date.isoformat(sep=" "),
                txn.source_row,
                int(txn.needs_manual_verification),
                transaction_fingerprint(txn.transaction_date, txn.event_type, txn.amount),
            ),
        )
        self._commit()

    def save_statement_period(
        self, label: str, transactions: Iterable[Transaction], *, replace: bool = False
    ) -> Tuple[int, int]:
        """
        Store one statement's transactions. With replace=True the period's
        previous rows are deleted first. Rows already stored under another
        period (overlapping statements) are skipped.
        Returns (inserted, duplicates).
        """
        if replace:
            self.delete_statement_period(label)
        inserted = duplicates = 0
        for txn in transactions:
            fp = transaction_fingerprint(txn.transaction_date, txn.event_type, txn.amount)
            if self.exists_by_fingerprint(fp, exclude_period=label):
                duplicates += 1
                continue
            self.insert_transaction(txn)
            inserted += 1
        return inserted, duplicates

    def _fetch(self, where: str = "", params: Tuple[Any, ...] = ()) -> List[Transaction]:
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT * FROM transactions {where} "
            "ORDER BY COALESCE(event_date, transaction_date), source_row",
            params,
        )
        return [row_to_transaction(r) for r in cur.fetchall()]

    def fetch_transactions(self) -> List[Transaction]:
        return self._fetch()

    def fetch_by_period(self, label: str) -> List[Transaction]:
        return self._fetch("WHERE statement_period = ?", (label,))

    def fetch_by_shift(self, shift_id: str) -> List[Transaction]:
        return self._fetch("WHERE shift_id = ?", (shift_id,))

    def fetch_orphans(self) -> List[Transaction]:
        """Transactions with no shift. Ignored ones are included; callers categorize."""
        return self._fetch("WHERE shift_id IS NULL")

    def orphan_transactions_for_shift(
        self, shift: Shift, offset: timedelta = DEFAULT_BOUNDARY_OFFSET
    ) -> List[Transaction]:
        """Unassigned transactions that fall inside the shift's candidate window."""
        window = ShiftMatcher(offset=offset).candidate_window(shift)
        if window is None:
            return []
        lo, hi = window
        return self._fetch(
            "WHERE shift_id IS NULL "
            "AND COALESCE(event_date, transaction_date) >= ? "
            "AND COALESCE(event_date, transaction_date) < ?",
            (_iso(lo), _iso(hi)),
        )

    def statement_periods(self) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute(
            """
            SELECT statement_period, COUNT(*) AS transactions,
                   SUM(CASE WHEN shift_id IS NULL THEN 1 ELSE 0 END) AS unassigned,
                   MAX(import_date) AS imported
            FROM transactions
            GROUP BY statement_period
            ORDER BY MIN(transaction_date)
            """
        )
        return [dict(r) for r in cur.fetchall()]

    def apply_assignments(self, assignments: Mapping[str, Optional[str]]) -> int:
        """Set shift_id per transaction id. Returns rows actually changed."""
        cur = self.conn.cursor()
        changed = 0
        for txn_id, shift_id in assignments.items():
            cur.execute(
                "UPDATE transactions SET shift_id = ? WHERE id = ? AND shift_id IS NOT ?",
                (shift_id, txn_id, shift_id),
            )
            changed += cur.rowcount
        self._commit()
        return changed

    # =========================================================================
    # Shift Operations
    # =========================================================================

    def upsert_shift(self, shift: Shift) -> None:
        created = shift.created_at or datetime.now()
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT INTO shifts (id, start_date, end_date, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                start_date = excluded.start_date,
                end_date = excluded.end_date
            """,
            (shift.id, _iso(shift.start_date), _iso(shift.end_date), _iso(created)),
        )
        self._commit()

    def get_shift(self, shift_id: str) -> Optional[Shift]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM shifts WHERE id = ?", (shift_id,))
        row = cur.fetchone()
        return row_to_shift(row) if row else None

    def list_shifts(self) -> List[Shift]:
        """Shifts by start time; insertion order breaks ties."""
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM shifts ORDER BY start_date, rowid")
        return [row_to_shift(r) for r in cur.fetchall()]

    def delete_shift(self, shift_id: str) -> bool:
        """Delete a shift; its transactions become orphans, never deleted."""
        cur = self.conn.cursor()
        cur.execute("UPDATE transactions SET shift_id = NULL WHERE shift_id = ?", (shift_id,))
        cur.execute("DELETE FROM shifts WHERE id = ?", (shift_id,))
        deleted = cur.rowcount > 0
        self._commit()
        return deleted

    def write_shift_totals(self, shift_id: str, totals: TransactionTotals) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            UPDATE shifts
            SET net_fare = ?, tips = ?, promotions = ?, tolls_reimbursed = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (
                round(totals.net_fare, 2),
                round(totals.tips, 2),
                round(totals.promotions, 2),
                round(totals.tolls_reimbursed, 2),
                datetime.now().isoformat(sep=" ", timespec="seconds"),
                shift_id,
            ),
        )
        self._commit()

    def shift_totals(self, shift_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT net_fare, tips, promotions, tolls_reimbursed FROM shifts WHERE id = ?",
            (shift_id,),
        )
        row = cur.fetchone()
        return dict(row) if row else None
