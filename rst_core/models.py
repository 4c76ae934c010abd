from __future__ import annotations
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional


# Operational day of the platform starts at 4 AM, not midnight.
DEFAULT_BOUNDARY_OFFSET = timedelta(hours=4)


@dataclass
class PositionedFragment:
    text: str
    x: float
    y: float  # top-left origin, grows downward


@dataclass
class TransactionRow:
    y: float
    fragments: List[PositionedFragment] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(f.text for f in self.fragments)

    @property
    def first_text(self) -> str:
        return self.fragments[0].text if self.fragments else ""


class Category(str, Enum):
    TIP = "tip"
    PROMOTION = "promotion"
    NET_FARE = "net_fare"
    IGNORE = "ignore"


_PERIOD_LABEL_RX = re.compile(
    r"^([A-Za-z]+)\s+(\d{1,2}),\s+(\d{4})\s+-\s+([A-Za-z]+)\s+(\d{1,2}),\s+(\d{4})$"
)


@dataclass
class StatementPeriod:
    label: str
    start: datetime
    end: datetime

    @classmethod
    def from_dates(cls, start: datetime, end: datetime) -> "StatementPeriod":
        label = (
            f"{start.strftime('%b')} {start.day}, {start.year} - "
            f"{end.strftime('%b')} {end.day}, {end.year}"
        )
        return cls(label=label, start=start, end=end)

    @classmethod
    def from_label(
        cls, label: str, offset: timedelta = DEFAULT_BOUNDARY_OFFSET
    ) -> Optional["StatementPeriod"]:
        """
        Rebuild a period from its stored label ("Oct 13, 2025 - Oct 20, 2025").
        Start and end sit on the operational-day boundary.
        """
        m = _PERIOD_LABEL_RX.match((label or "").strip())
        if not m:
            return None
        try:
            start = datetime.strptime(
                f"{m.group(1)[:3]} {m.group(2)} {m.group(3)}", "%b %d %Y"
            )
            end = datetime.strptime(
                f"{m.group(4)[:3]} {m.group(5)} {m.group(6)}", "%b %d %Y"
            )
        except ValueError:
            return None
        return cls(label=label.strip(), start=start + offset, end=end + offset)


@dataclass
class Shift:
    id: str
    start_date: datetime
    end_date: Optional[datetime] = None  # None while in progress
    created_at: Optional[datetime] = None


def new_transaction_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Transaction:
    transaction_date: datetime  # when the platform processed it
    event_type: str
    amount: Optional[float]  # None only when unresolved
    statement_period: str = ""
    event_date: Optional[datetime] = None  # when the ride actually happened
    tolls_reimbursed: Optional[float] = None
    shift_id: Optional[str] = None
    import_date: datetime = field(default_factory=datetime.now)
    source_row: int = 0
    needs_manual_verification: bool = False
    id: str = field(default_factory=new_transaction_id)

    @property
    def effective_timestamp(self) -> datetime:
        return self.event_date or self.transaction_date
