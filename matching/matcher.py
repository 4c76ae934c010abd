# matching/matcher.py
"""
Assign statement transactions to logged shifts.

The platform's operational day runs from 4 AM to 4 AM, so a shift's
candidate window is widened by the boundary offset on both ends and then
clipped to the operational day(s) the shift actually covers. A 2 AM ride
therefore lands on the previous evening's shift and never on a shift that
starts later the same calendar date.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from categorizer.rules import Categorize, categorize_transaction
from rst_core.errors import NoMatchWarning
from rst_core.models import (
    DEFAULT_BOUNDARY_OFFSET,
    Category,
    Shift,
    StatementPeriod,
    Transaction,
)

log = logging.getLogger("matching")


def operational_day(ts: datetime, offset: timedelta = DEFAULT_BOUNDARY_OFFSET) -> date:
    """Calendar day a timestamp is booked under (2 AM belongs to yesterday)."""
    return (ts - offset).date()


def day_start(day: date, offset: timedelta = DEFAULT_BOUNDARY_OFFSET) -> datetime:
    return datetime.combine(day, time()) + offset


def operational_week(ts: datetime, offset: timedelta = DEFAULT_BOUNDARY_OFFSET) -> date:
    """Monday of the operational week containing `ts`."""
    day = operational_day(ts, offset)
    return day - timedelta(days=day.weekday())


@dataclass
class MatchResult:
    # transaction id -> shift id; None for orphaned and ignored transactions
    assignments: Dict[str, Optional[str]] = field(default_factory=dict)
    orphans: List[Transaction] = field(default_factory=list)
    ignored: List[Transaction] = field(default_factory=list)
    delayed_tips: Set[str] = field(default_factory=set)
    warnings: List[NoMatchWarning] = field(default_factory=list)

    @property
    def matched(self) -> int:
        return sum(1 for s in self.assignments.values() if s is not None)

    def shift_for(self, transaction_id: str) -> Optional[str]:
        return self.assignments.get(transaction_id)

    def is_delayed_tip(self, transaction_id: str) -> bool:
        return transaction_id in self.delayed_tips

    def apply(self, transactions: Iterable[Transaction]) -> int:
        """Write assignments onto the transactions; returns how many changed."""
        changed = 0
        for txn in transactions:
            if txn.id not in self.assignments:
                continue
            new = self.assignments[txn.id]
            if txn.shift_id != new:
                txn.shift_id = new
                changed += 1
        return changed


class ShiftMatcher:
    """Stateless apart from its settings; the shift list is always passed in."""

    def __init__(
        self,
        offset: timedelta = DEFAULT_BOUNDARY_OFFSET,
        categorize: Categorize = categorize_transaction,
    ):
        self.offset = offset
        self.categorize = categorize
        self._periods: Dict[str, Optional[StatementPeriod]] = {}

    def candidate_window(self, shift: Shift) -> Optional[Tuple[datetime, datetime]]:
        """Half-open [start, end) window, or None for a shift still in progress."""
        if shift.end_date is None:
            return None
        lo = shift.start_date - self.offset
        hi = shift.end_date + self.offset
        first_day = operational_day(shift.start_date, self.offset)
        last_day = operational_day(shift.end_date, self.offset)
        lo = max(lo, day_start(first_day, self.offset))
        hi = min(hi, day_start(last_day + timedelta(days=1), self.offset))
        if hi <= lo:
            return None
        return lo, hi

    def find_shift(self, ts: datetime, shifts: Sequence[Shift]) -> Optional[Shift]:
        """
        Best shift for a timestamp: smallest window, then most recently
        created, then later in the list, then shift id.
        """
        best: Optional[Shift] = None
        best_key: Optional[tuple] = None
        for position, shift in enumerate(shifts):
            window = self.candidate_window(shift)
            if window is None:
                continue
            lo, hi = window
            if not (lo <= ts < hi):
                continue
            created = shift.created_at.timestamp() if shift.created_at else float("-inf")
            key = ((hi - lo).total_seconds(), -created, -position, shift.id)
            if best_key is None or key < best_key:
                best, best_key = shift, key
        return best

    def statement_period(self, label: str) -> Optional[StatementPeriod]:
        if label not in self._periods:
            self._periods[label] = StatementPeriod.from_label(label, self.offset)
        return self._periods[label]

    def is_delayed_tip(
        self, txn: Transaction, period: Optional[StatementPeriod] = None
    ) -> bool:
        """A tip booked in an operational week other than its statement's week."""
        if self.categorize(txn) is not Category.TIP:
            return False
        period = period or self.statement_period(txn.statement_period)
        if period is None:
            return False
        return operational_week(txn.effective_timestamp, self.offset) != operational_week(
            period.start, self.offset
        )

    def match(
        self, transactions: Iterable[Transaction], shifts: Sequence[Shift]
    ) -> MatchResult:
        """
        Match every transaction against a snapshot of shifts. Pure: the
        transactions are not modified; call MatchResult.apply for that.
        """
        result = MatchResult()
        for txn in transactions:
            if self.categorize(txn) is Category.IGNORE:
                result.assignments[txn.id] = None
                result.ignored.append(txn)
                continue

            if self.is_delayed_tip(txn):
                result.delayed_tips.add(txn.id)

            shift = self.find_shift(txn.effective_timestamp, shifts)
            if shift is None:
                result.assignments[txn.id] = None
                result.orphans.append(txn)
                result.warnings.append(
                    NoMatchWarning(
                        f"No shift covers {txn.effective_timestamp:%Y-%m-%d %H:%M} "
                        f"({txn.event_type})",
                        transaction_id=txn.id,
                    )
                )
                continue
            result.assignments[txn.id] = shift.id

        log.info(
            "Matched %d, orphaned %d, ignored %d, delayed tips %d",
            result.matched,
            len(result.orphans),
            len(result.ignored),
            len(result.delayed_tips),
        )
        return result


def match_transactions(
    transactions: Iterable[Transaction],
    shifts: Sequence[Shift],
    *,
    offset: timedelta = DEFAULT_BOUNDARY_OFFSET,
    categorize: Categorize = categorize_transaction,
) -> MatchResult:
    return ShiftMatcher(offset=offset, categorize=categorize).match(transactions, shifts)
