"""
Layout families: the format-specific half of statement parsing.

Block grouping and line roles live in parser.assembler and never look at
column positions. Everything that depends on where a given statement
format puts things (table header, page footer, block date marker, money
columns) sits behind LayoutFamily so a new format plugs in as one more
subclass registered under a new identifier.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Type

from rst_core.errors import UnknownLayoutFamilyError
from rst_core.models import TransactionRow


class ColumnLayout(Enum):
    FIVE_COLUMN = 5  # Processed | Event | Your earnings | Payouts | Balance
    SIX_COLUMN = 6  # ... with Refunds & Expenses (tolls) after earnings


@dataclass
class ColumnMap:
    layout: ColumnLayout = ColumnLayout.FIVE_COLUMN
    positions: Dict[str, float] = field(default_factory=dict)  # header -> x

    def nearest(self, x: float) -> Optional[str]:
        if not self.positions:
            return None
        return min(self.positions.items(), key=lambda kv: abs(kv[1] - x))[0]


@dataclass
class AmountCell:
    """A money value found in a block, with where it sat."""

    value: float
    x: float
    line: int


class LayoutFamily(ABC):
    """Column-position and marker rules for one statement format."""

    identifier: str = ""

    @abstractmethod
    def is_table_header(self, row: TransactionRow) -> bool: ...

    @abstractmethod
    def is_footer(self, row: TransactionRow) -> bool: ...

    @abstractmethod
    def match_date_marker(self, text: str) -> Optional[Tuple[str, int, str]]:
        """
        (month name, day, rest) when `text` opens a transaction block. `rest`
        is whatever text extraction merged onto the marker, usually "".
        """

    @abstractmethod
    def read_columns(self, header: TransactionRow) -> ColumnMap: ...

    @abstractmethod
    def designated_amount(
        self, cells: Sequence[AmountCell], columns: ColumnMap
    ) -> Optional[float]:
        """Amount taken from the format's earnings column, if one is known."""

    @abstractmethod
    def tolls(
        self,
        line0_cells: Sequence[AmountCell],
        columns: ColumnMap,
        amount: Optional[float],
    ) -> Optional[float]: ...

    def is_block_start(self, row: TransactionRow) -> bool:
        return self.match_date_marker(row.first_text) is not None


DEFAULT_DAY_TOKENS: Tuple[str, ...] = (
    "Mon",
    "Tue",
    "Wed",
    "Thu",
    "Fri",
    "Sat",
    "Sun",
    "T ue",
)

# the whole row is the footer: "Page 2 of 3" or "2 of 3"
_FOOTER_RX = re.compile(r"^(?:Page\s+)?\d+\s+of\s+\d+$", re.IGNORECASE)


class UberWeeklyLayout(LayoutFamily):
    """Weekly earnings statement, 5- or 6-column transaction table."""

    identifier = "uber-weekly-v1"

    PROCESSED = "Processed"
    EVENT = "Event"
    EARNINGS = "Your earnings"
    REFUNDS = "Refunds & Expenses"
    PAYOUTS = "Payouts"
    BALANCE = "Balance"
    HEADERS = (PROCESSED, EVENT, EARNINGS, REFUNDS, PAYOUTS, BALANCE)

    def __init__(self, day_tokens: Optional[Iterable[str]] = None):
        tokens = list(day_tokens or DEFAULT_DAY_TOKENS)
        # "T ue" style tokens tolerate any whitespace inside them
        alts = "|".join(
            r"\s+".join(re.escape(part) for part in tok.split()) for tok in tokens
        )
        self.day_tokens = tokens
        self.date_marker_rx = re.compile(
            rf"^(?:{alts}),\s+([A-Za-z]+)\s+(\d{{1,2}})(?:\s+(.*))?$"
        )

    def is_table_header(self, row: TransactionRow) -> bool:
        text = row.text
        return self.PROCESSED in text and self.EVENT in text

    def is_footer(self, row: TransactionRow) -> bool:
        return bool(_FOOTER_RX.match(" ".join(row.text.split())))

    def match_date_marker(self, text: str) -> Optional[Tuple[str, int, str]]:
        m = self.date_marker_rx.match((text or "").strip())
        if not m:
            return None
        return m.group(1), int(m.group(2)), (m.group(3) or "").strip()

    def detect_layout(self, header_text: str) -> ColumnLayout:
        if self.REFUNDS in header_text or "Refunds &amp; Expenses" in header_text:
            return ColumnLayout.SIX_COLUMN
        return ColumnLayout.FIVE_COLUMN

    def read_columns(self, header: TransactionRow) -> ColumnMap:
        columns = ColumnMap(layout=self.detect_layout(header.text))
        for frag in header.fragments:
            text = frag.text.replace("&amp;", "&")
            for name in self.HEADERS:
                # one fragment per header cell; merged header text gives no positions
                if text == name:
                    columns.positions[name] = frag.x
        return columns

    def designated_amount(
        self, cells: Sequence[AmountCell], columns: ColumnMap
    ) -> Optional[float]:
        if self.EARNINGS not in columns.positions:
            return None
        for cell in cells:
            if cell.line <= 1 and columns.nearest(cell.x) == self.EARNINGS:
                return cell.value
        return None

    def tolls(
        self,
        line0_cells: Sequence[AmountCell],
        columns: ColumnMap,
        amount: Optional[float],
    ) -> Optional[float]:
        if columns.layout is not ColumnLayout.SIX_COLUMN:
            return None

        toll: Optional[float] = None
        if self.REFUNDS in columns.positions:
            for cell in line0_cells:
                if columns.nearest(cell.x) == self.REFUNDS:
                    toll = cell.value
                    break
        elif len(line0_cells) >= 3:
            # earnings, refunds, payouts left to right
            toll = line0_cells[1].value

        if toll is None or toll <= 0:
            return None
        if amount is not None and toll == amount:
            return None  # merged-text duplicate of the earnings cell
        return toll


LAYOUT_FAMILIES: Dict[str, Type[LayoutFamily]] = {
    UberWeeklyLayout.identifier: UberWeeklyLayout,
}


def get_layout_family(identifier: str, **kwargs) -> LayoutFamily:
    try:
        cls = LAYOUT_FAMILIES[identifier]
    except KeyError:
        raise UnknownLayoutFamilyError(
            f"Unknown layout family {identifier!r}; known: {sorted(LAYOUT_FAMILIES)}"
        ) from None
    return cls(**kwargs)


def available_families() -> List[str]:
    return sorted(LAYOUT_FAMILIES)
