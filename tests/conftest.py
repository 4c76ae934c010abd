# tests/conftest.py
from datetime import datetime
from typing import Iterable, List, Sequence, Tuple

import fitz  # PyMuPDF
import pytest

from layout.families import UberWeeklyLayout
from rst_core.models import (
    PositionedFragment,
    Shift,
    StatementPeriod,
    Transaction,
    TransactionRow,
)

Cell = Tuple[float, str]  # (x, text)

# Column x positions of the six-column statement table used by the fixtures.
X_DATE = 40.0
X_EVENT = 120.0
X_EARNINGS = 330.0
X_REFUNDS = 400.0
X_PAYOUTS = 470.0
X_BALANCE = 530.0


def make_row(y: float, *cells: Cell) -> TransactionRow:
    return TransactionRow(
        y=y, fragments=[PositionedFragment(text=t, x=x, y=y) for x, t in cells]
    )


def header_row(y: float = 100.0, six_columns: bool = True) -> TransactionRow:
    cells: List[Cell] = [
        (X_DATE, "Processed"),
        (X_EVENT, "Event"),
        (X_EARNINGS, "Your earnings"),
    ]
    if six_columns:
        cells.append((X_REFUNDS, "Refunds & Expenses"))
    cells += [(X_PAYOUTS, "Payouts"), (X_BALANCE, "Balance")]
    return make_row(y, *cells)


def make_pdf(pages: Iterable[Sequence[Tuple[float, float, str]]]) -> bytes:
    """Build a PDF in memory; each page is a list of (x, baseline_y, text)."""
    doc = fitz.open()
    for items in pages:
        page = doc.new_page(width=612, height=792)
        for x, y, text in items:
            page.insert_text((x, y), text, fontsize=9)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def family():
    return UberWeeklyLayout()


@pytest.fixture
def period():
    # Oct 13, 2025 4 AM - Oct 20, 2025 4 AM (Monday to Monday)
    return StatementPeriod.from_dates(datetime(2025, 10, 13, 4), datetime(2025, 10, 20, 4))


@pytest.fixture
def statement_pdf():
    """A one-page statement with a ride, a tip, a quest and a bank transfer."""
    items = [
        (40, 60, "Weekly statement"),
        (40, 75, "Oct 13, 2025 4 AM - Oct 20, 2025 4 AM"),
        (X_DATE, 110, "Processed"),
        (X_EVENT, 110, "Event"),
        (X_EARNINGS, 110, "Your earnings"),
        (X_REFUNDS, 110, "Refunds & Expenses"),
        (X_PAYOUTS, 110, "Payouts"),
        (X_BALANCE, 110, "Balance"),
        # UberX with a toll
        (X_DATE, 140, "Tue, Oct 14"),
        (X_EVENT, 140, "UberX"),
        (X_EARNINGS, 140, "$21.55"),
        (X_REFUNDS, 140, "$2.71"),
        (X_PAYOUTS, 140, "$0.00"),
        (X_DATE, 152, "7:49 PM"),
        (X_EVENT, 152, "Oct 14 7:20 PM"),
        (X_BALANCE, 152, "$448.32"),
        # Tip
        (X_DATE, 180, "Wed, Oct 15"),
        (X_EVENT, 180, "Tip"),
        (X_EARNINGS, 180, "$5.00"),
        (X_DATE, 192, "9:02 AM"),
        (X_EVENT, 192, "Oct 14 8:05 PM"),
        (X_BALANCE, 192, "$453.32"),
        # Bank transfer
        (X_DATE, 220, "Thu, Oct 16"),
        (X_EVENT, 220, "Transferred to bank account"),
        (X_EARNINGS, 220, "-$453.32"),
        (X_DATE, 232, "2:00 AM"),
        (X_BALANCE, 232, "$0.00"),
        (40, 760, "Page 1 of 1"),
    ]
    return make_pdf([items])


def txn(
    when: datetime,
    event_type: str = "UberX",
    amount: float = 10.0,
    *,
    event_date: datetime = None,
    tolls: float = None,
    period_label: str = "Oct 13, 2025 - Oct 20, 2025",
) -> Transaction:
    return Transaction(
        transaction_date=when,
        event_type=event_type,
        amount=amount,
        event_date=event_date,
        tolls_reimbursed=tolls,
        statement_period=period_label,
    )


def shift(shift_id: str, start: datetime, end: datetime = None, created: datetime = None) -> Shift:
    return Shift(id=shift_id, start_date=start, end_date=end, created_at=created)
