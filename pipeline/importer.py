# pipeline/importer.py
"""
Statement import:
  PDF --layout--> rows --assemble--> transactions --match--> store

One import runs synchronously under the store's exclusive lock, from the
shift snapshot read to the last write, so concurrent imports serialize and
a failure leaves the previous state untouched.

CLI examples (run from repo root):
  python -m pipeline.importer --input data/statements/2025-10-13.pdf
  python -m pipeline.importer --input data/statements/2025-10-13.pdf --replace
"""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from categorizer.rules import Categorize
from categorizer.service import categorizer_from_config
from config.loader import boundary_offset, load_config
from layout.reader import Source
from matching.aggregate import aggregate
from matching.matcher import MatchResult, ShiftMatcher
from parser.statement import parse_statement
from rst_core.errors import BlockParseError, ImportWarning
from rst_core.models import StatementPeriod
from rst_utils.logging_setup import setup_logging
from storage import SQLiteStore

log = logging.getLogger("pipeline")

STATUS_IMPORTED = "imported"
STATUS_REPLACED = "replaced"
STATUS_DUPLICATE_PERIOD = "duplicate_period"


@dataclass
class ImportSummary:
    source: str
    period: str = ""
    status: str = ""
    parsed: int = 0
    inserted: int = 0
    duplicates: int = 0
    matched: int = 0
    orphaned: int = 0
    ignored: int = 0
    delayed_tips: int = 0
    needs_verification: int = 0
    errors: List[BlockParseError] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (STATUS_IMPORTED, STATUS_REPLACED)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "period": self.period,
            "status": self.status,
            "parsed": self.parsed,
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "matched": self.matched,
            "orphaned": self.orphaned,
            "ignored": self.ignored,
            "delayed_tips": self.delayed_tips,
            "needs_verification": self.needs_verification,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
        }


@dataclass
class RematchSummary:
    transactions: int = 0
    changed: int = 0
    matched: int = 0
    orphaned: int = 0
    ignored: int = 0
    delayed_tips: int = 0


def refresh_shift_totals(
    store: SQLiteStore, shift_ids: Iterable[str], categorize: Categorize
) -> int:
    """Recompute and write the earnings totals of the given shifts."""
    n = 0
    for shift_id in sorted(set(shift_ids)):
        if store.get_shift(shift_id) is None:
            continue
        store.write_shift_totals(shift_id, aggregate(store.fetch_by_shift(shift_id), categorize))
        n += 1
    return n


def import_statement(
    source: Source,
    store: SQLiteStore,
    cfg: Optional[Dict[str, Any]] = None,
    *,
    replace: bool = False,
    period: Optional[StatementPeriod] = None,
    categorize: Optional[Categorize] = None,
) -> ImportSummary:
    """
    Parse, match and persist one statement.

    DocumentLoadError propagates; block and match problems are collected
    into the summary. An already imported period is left alone unless
    replace=True.
    """
    cfg = cfg or {}
    categorize = categorize or categorizer_from_config(cfg)
    label = "<bytes>" if isinstance(source, (bytes, bytearray)) else str(source)
    summary = ImportSummary(source=label)

    parsed = parse_statement(source, cfg, period=period, categorize=categorize)
    summary.period = parsed.period.label
    summary.parsed = len(parsed.transactions)
    summary.errors.extend(parsed.errors)
    summary.warnings.extend(parsed.warnings)
    summary.needs_verification = len(parsed.flagged)

    matcher = ShiftMatcher(offset=boundary_offset(cfg), categorize=categorize)
    with store.exclusive():
        exists = store.has_statement_period(parsed.period.label)
        if exists and not replace:
            summary.status = STATUS_DUPLICATE_PERIOD
            log.warning(
                "Statement period %s already imported; use replace to re-import",
                parsed.period.label,
            )
            return summary

        touched = set()
        if exists:
            touched.update(
                t.shift_id for t in store.fetch_by_period(parsed.period.label) if t.shift_id
            )

        result: MatchResult = matcher.match(parsed.transactions, store.list_shifts())
        result.apply(parsed.transactions)
        summary.inserted, summary.duplicates = store.save_statement_period(
            parsed.period.label, parsed.transactions, replace=replace
        )
        touched.update(s for s in result.assignments.values() if s)
        refresh_shift_totals(store, touched, categorize)

    summary.status = STATUS_REPLACED if exists else STATUS_IMPORTED
    summary.matched = result.matched
    summary.orphaned = len(result.orphans)
    summary.ignored = len(result.ignored)
    summary.delayed_tips = len(result.delayed_tips)
    summary.warnings.extend(result.warnings)
    log.info(
        "Imported %s (%s): %d parsed, %d stored, %d matched, %d orphaned",
        label,
        summary.period,
        summary.parsed,
        summary.inserted,
        summary.matched,
        summary.orphaned,
    )
    return summary


def rematch(
    store: SQLiteStore,
    cfg: Optional[Dict[str, Any]] = None,
    *,
    categorize: Optional[Categorize] = None,
) -> RematchSummary:
    """
    Re-run matching over every stored transaction against the current
    shifts. Idempotent; recovers orphans once their shift exists.
    """
    cfg = cfg or {}
    categorize = categorize or categorizer_from_config(cfg)
    matcher = ShiftMatcher(offset=boundary_offset(cfg), categorize=categorize)

    with store.exclusive():
        transactions = store.fetch_transactions()
        shifts = store.list_shifts()
        before = {t.id: t.shift_id for t in transactions}
        result = matcher.match(transactions, shifts)
        changed = store.apply_assignments(result.assignments)
        touched = {s for s in before.values() if s} | {
            s for s in result.assignments.values() if s
        }
        refresh_shift_totals(store, touched, categorize)

    log.info("Rematch: %d transactions, %d reassigned", len(transactions), changed)
    return RematchSummary(
        transactions=len(transactions),
        changed=changed,
        matched=result.matched,
        orphaned=len(result.orphans),
        ignored=len(result.ignored),
        delayed_tips=len(result.delayed_tips),
    )


def main():
    ap = argparse.ArgumentParser(description="Import one statement PDF into the store.")
    ap.add_argument("--input", required=True, help="Statement PDF")
    ap.add_argument("--db", default=None, help="SQLite path (default: config [paths] db)")
    ap.add_argument("--replace", action="store_true", help="Re-import an existing period")
    args = ap.parse_args()

    cfg = load_config()
    setup_logging(cfg.get("logging", {}).get("level", "INFO"))
    db_path = args.db or cfg.get("paths", {}).get("db", "data/rideshare.sqlite")
    with SQLiteStore(db_path) as store:
        store.ensure_schema()
        summary = import_statement(Path(args.input), store, cfg, replace=args.replace)
    for k, v in summary.as_dict().items():
        print(f"{k:>20}: {v}")


if __name__ == "__main__":
    main()
