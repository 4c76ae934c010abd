# matching/aggregate.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from categorizer.rules import Categorize, categorize_transaction
from matching.matcher import MatchResult, ShiftMatcher
from rst_core.models import DEFAULT_BOUNDARY_OFFSET, Category, Shift, Transaction


@dataclass
class TransactionTotals:
    tips: float = 0.0
    promotions: float = 0.0
    net_fare: float = 0.0
    tolls_reimbursed: float = 0.0
    count: int = 0
    needs_verification: int = 0

    @property
    def revenue(self) -> float:
        return self.net_fare + self.tips + self.promotions

    def add(self, txn: Transaction, category: Category) -> None:
        if category is Category.IGNORE:
            return
        self.count += 1
        if txn.needs_manual_verification:
            self.needs_verification += 1
        amount = txn.amount or 0.0
        if category is Category.TIP:
            self.tips += amount
        elif category is Category.PROMOTION:
            self.promotions += amount
        else:
            self.net_fare += amount
        # tolls ride along with any category
        self.tolls_reimbursed += txn.tolls_reimbursed or 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "tips": round(self.tips, 2),
            "promotions": round(self.promotions, 2),
            "net_fare": round(self.net_fare, 2),
            "tolls_reimbursed": round(self.tolls_reimbursed, 2),
            "revenue": round(self.revenue, 2),
            "count": self.count,
            "needs_verification": self.needs_verification,
        }


def aggregate(
    transactions: Iterable[Transaction],
    categorize: Categorize = categorize_transaction,
) -> TransactionTotals:
    """Sum a shift's transactions by category. Ignored ones add nothing."""
    totals = TransactionTotals()
    for txn in transactions:
        totals.add(txn, categorize(txn))
    return totals


@dataclass
class GroupedTransaction:
    transaction: Transaction
    category: Category
    is_delayed_tip: bool = False


@dataclass
class ShiftGroup:
    """Everything a summary renderer needs for one shift."""

    shift: Shift
    transactions: List[GroupedTransaction] = field(default_factory=list)
    totals: TransactionTotals = field(default_factory=TransactionTotals)


def group_by_shift(
    shifts: Sequence[Shift],
    transactions: Iterable[Transaction],
    result: Optional[MatchResult] = None,
    categorize: Categorize = categorize_transaction,
    offset: timedelta = DEFAULT_BOUNDARY_OFFSET,
) -> List[ShiftGroup]:
    """
    Group matched transactions under their shifts, in shift order.

    Assignments come from `result` when given, else from each
    transaction's stored shift_id. Shifts with no transactions are kept.
    """
    groups: Dict[str, ShiftGroup] = {s.id: ShiftGroup(shift=s) for s in shifts}
    matcher = ShiftMatcher(offset=offset, categorize=categorize)
    ordered = sorted(transactions, key=lambda t: t.effective_timestamp)
    for txn in ordered:
        shift_id = result.shift_for(txn.id) if result is not None else txn.shift_id
        group = groups.get(shift_id) if shift_id else None
        if group is None:
            continue
        category = categorize(txn)
        if result is not None:
            delayed = result.is_delayed_tip(txn.id)
        else:
            delayed = matcher.is_delayed_tip(txn)
        group.transactions.append(GroupedTransaction(txn, category, delayed))
        group.totals.add(txn, category)
    return [groups[s.id] for s in shifts]
