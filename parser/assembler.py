# parser/assembler.py
"""
Rows -> transaction blocks -> Transaction records.

A block opens at a row whose leftmost fragment is a date marker
("Sat, Oct 11") and runs until the next marker or page footer.
Inside a block the lines play fixed roles:

  line 0   date marker, start of the event type, and usually the amount
           as a trailing run of $ tokens ("$20.00 $20.00")
  line 1   time of day, the embedded event date ("Oct 11 10:27 PM") and
           the running balance, which is dropped
  line 2+  continuation of the event type, kept verbatim

Column positions are only consulted through the layout family.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from categorizer.rules import Categorize, categorize_transaction
from layout.families import AmountCell, ColumnMap, LayoutFamily
from parser.dates import (
    EVENT_DATE_RX,
    build_datetime,
    is_event_date,
    is_time_of_day,
    month_number,
    parse_event_datetime,
    to_24h,
)
from rst_core.errors import (
    AmbiguousAmountWarning,
    BlockParseError,
    ImportWarning,
    MissingEventDateWarning,
)
from rst_core.models import Category, StatementPeriod, Transaction, TransactionRow
from rst_utils.normalizers import find_amounts, is_pure_amounts, split_trailing_amounts

log = logging.getLogger("parser")

# Time of day inside merged text; "4:00:00 AM" inside a description is not one.
_TIME_IN_TEXT_RX = re.compile(r"(?<![\d:])(\d{1,2}):(\d{2})\s*(AM|PM)\b", re.IGNORECASE)


@dataclass
class Block:
    page: int
    row: int  # index of the opening row on its page
    source_row: int  # document-wide row ordinal, 1-based
    rows: List[TransactionRow] = field(default_factory=list)
    columns: ColumnMap = field(default_factory=ColumnMap)

    @property
    def text(self) -> str:
        return " ".join(r.text for r in self.rows)


@dataclass
class AssemblyResult:
    transactions: List[Transaction] = field(default_factory=list)
    errors: List[BlockParseError] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)
    blocks: int = 0


def split_blocks(
    pages: Iterable[Tuple[int, Sequence[TransactionRow]]], family: LayoutFamily
) -> List[Block]:
    """
    Group rows into transaction blocks, page by page.

    A page with a table header only contributes rows below the header; a
    page without one is scanned whole. Footer rows end the current block.
    """
    blocks: List[Block] = []
    ordinal = 0
    columns = ColumnMap()

    for page_no, rows in pages:
        has_header = any(family.is_table_header(r) for r in rows)
        in_table = not has_header
        current: Optional[Block] = None

        for idx, row in enumerate(rows):
            ordinal += 1
            if has_header and family.is_table_header(row):
                current = None
                in_table = True
                columns = family.read_columns(row)
                log.debug(
                    "Page %d: table header, %s, columns=%s",
                    page_no,
                    columns.layout.name,
                    sorted(columns.positions),
                )
                continue
            if family.is_footer(row):
                current = None
                continue
            if not in_table:
                continue
            if family.is_block_start(row):
                current = Block(
                    page=page_no, row=idx, source_row=ordinal, rows=[row], columns=columns
                )
                blocks.append(current)
            elif current is not None:
                current.rows.append(row)
    return blocks


def _take_time(text: str) -> Tuple[str, Optional[Tuple[int, int]]]:
    """Pull the first valid time of day out of merged text."""
    for m in _TIME_IN_TEXT_RX.finditer(text):
        hour, minute = int(m.group(1)), int(m.group(2))
        if 1 <= hour <= 12 and 0 <= minute <= 59:
            rest = (text[: m.start()] + " " + text[m.end() :]).strip()
            return rest, (to_24h(hour, m.group(3)), minute)
    return text, None


def _is_structural(text: str, family: LayoutFamily) -> bool:
    marker = family.match_date_marker(text)
    return (
        (marker is not None and not marker[2])
        or is_time_of_day(text)
        or is_event_date(text)
    )


def _clean(text: str) -> str:
    return " ".join(text.split())


@dataclass
class _Lines:
    """Event-type pieces and amount evidence pulled out of one block."""

    text_parts: List[str] = field(default_factory=list)
    leading_amounts: List[float] = field(default_factory=list)
    line0_cells: List[AmountCell] = field(default_factory=list)
    line1_cells: List[AmountCell] = field(default_factory=list)
    time: Optional[Tuple[int, int]] = None


def _read_line0(
    row: TransactionRow, marker_rest: str, family: LayoutFamily, out: _Lines
) -> None:
    pieces = [(f.text, f.x) for f in row.fragments[1:]]
    if marker_rest:
        # extraction merged the marker with the text after it
        pieces.insert(0, (marker_rest, row.fragments[0].x))

    texts: List[str] = []
    for piece, x in pieces:
        if _is_structural(piece, family):
            if out.time is None and is_time_of_day(piece):
                out.time = _take_time(piece)[1]
            continue
        _, amounts = split_trailing_amounts(piece)
        out.line0_cells.extend(AmountCell(value=v, x=x, line=0) for v in amounts)
        texts.append(piece)

    stripped, amounts = split_trailing_amounts(_clean(" ".join(texts)))
    out.leading_amounts = amounts
    if stripped:
        out.text_parts.append(stripped)


def _read_line1(row: TransactionRow, family: LayoutFamily, out: _Lines) -> None:
    texts: List[str] = []
    has_event_date = any(is_event_date(f.text) for f in row.fragments)
    for frag in row.fragments:
        if _is_structural(frag.text, family):
            if is_time_of_day(frag.text):
                out.time = _take_time(frag.text)[1]
            continue
        if is_pure_amounts(frag.text):
            out.line1_cells.extend(
                AmountCell(value=v, x=frag.x, line=1) for v in find_amounts(frag.text)
            )
            continue
        # merged "10:27 PM Oct 11 10:05 PM": drop the event date, then the time
        text = frag.text
        if not has_event_date:
            text = EVENT_DATE_RX.sub(" ", text, count=1)
        if out.time is None:
            text, out.time = _take_time(text)
        texts.append(text)

    # trailing amount on this line is the running balance
    stripped, _ = split_trailing_amounts(_clean(" ".join(texts)))
    if stripped:
        out.text_parts.append(stripped)


def _read_continuation(row: TransactionRow, out: _Lines) -> None:
    if row.fragments:
        out.text_parts.append(row.text)


def resolve_amount(
    lines: _Lines, columns: ColumnMap, family: LayoutFamily
) -> Optional[float]:
    if lines.leading_amounts:
        return lines.leading_amounts[0]
    return family.designated_amount(lines.line0_cells + lines.line1_cells, columns)


def assemble_block(
    block: Block,
    family: LayoutFamily,
    period: Optional[StatementPeriod],
    *,
    fallback_year: Optional[int] = None,
) -> Transaction:
    """Build one Transaction; raises BlockParseError when no date can be recovered."""
    head = block.rows[0]
    marker = family.match_date_marker(head.first_text)
    if marker is None:
        raise BlockParseError(
            "block does not open with a date marker",
            page=block.page,
            row=block.row,
            text=block.text,
        )
    month = month_number(marker[0])
    if month is None:
        raise BlockParseError(
            f"unknown month {marker[0]!r}", page=block.page, row=block.row, text=block.text
        )

    lines = _Lines()
    _read_line0(head, marker[2], family, lines)
    if len(block.rows) > 1:
        _read_line1(block.rows[1], family, lines)
    for row in block.rows[2:]:
        _read_continuation(row, lines)

    if lines.time is None:
        raise BlockParseError(
            "no time of day in block", page=block.page, row=block.row, text=block.text
        )
    hour, minute = lines.time
    transaction_date = build_datetime(month, marker[1], hour, minute, period, fallback_year)
    if transaction_date is None:
        raise BlockParseError(
            f"invalid date {marker[0]} {marker[1]}",
            page=block.page,
            row=block.row,
            text=block.text,
        )

    # line 1 carries the event date; a description on line 0 may quote others
    event_date: Optional[datetime] = None
    for row in block.rows[1:] + block.rows[:1]:
        for frag in row.fragments:
            event_date = parse_event_datetime(frag.text, period, fallback_year)
            if event_date is not None:
                break
        if event_date is not None:
            break

    amount = resolve_amount(lines, block.columns, family)
    return Transaction(
        transaction_date=transaction_date,
        event_date=event_date,
        event_type=_clean(" ".join(lines.text_parts)),
        amount=amount,
        tolls_reimbursed=family.tolls(lines.line0_cells, block.columns, amount),
        statement_period=period.label if period else "",
        source_row=block.source_row,
        needs_manual_verification=amount is None,
    )


def assemble(
    pages: Iterable[Tuple[int, Sequence[TransactionRow]]],
    family: LayoutFamily,
    period: Optional[StatementPeriod],
    *,
    categorize: Categorize = categorize_transaction,
    fallback_year: Optional[int] = None,
) -> AssemblyResult:
    """
    Assemble every block on the given pages.

    Blocks without a recoverable transaction date are skipped and reported;
    blocks with an unresolved amount or no event date are kept and flagged.
    """
    result = AssemblyResult()
    blocks = split_blocks(pages, family)
    result.blocks = len(blocks)

    for block in blocks:
        try:
            txn = assemble_block(block, family, period, fallback_year=fallback_year)
        except BlockParseError as e:
            log.warning("Skipping block: %s", e)
            result.errors.append(e)
            continue

        if txn.amount is None:
            result.warnings.append(
                AmbiguousAmountWarning(
                    f"page {block.page} row {block.row}: no amount for {txn.event_type!r}",
                    transaction_id=txn.id,
                )
            )
            log.warning("Unresolved amount: page %d row %d", block.page, block.row)

        if txn.event_date is None and categorize(txn) is not Category.IGNORE:
            txn.needs_manual_verification = True
            result.warnings.append(
                MissingEventDateWarning(
                    f"page {block.page} row {block.row}: no event date for "
                    f"{txn.event_type!r}; matching on processed time",
                    transaction_id=txn.id,
                )
            )
            log.debug("No event date: page %d row %d", block.page, block.row)

        result.transactions.append(txn)

    log.info(
        "Assembled %d transactions from %d blocks (%d skipped)",
        len(result.transactions),
        len(blocks),
        len(result.errors),
    )
    return result
