# parser/statement.py
"""
Whole-document parsing shared by the import pipeline and the validator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from categorizer.rules import Categorize, categorize_transaction
from config.loader import day_tokens
from layout.families import LayoutFamily, get_layout_family
from layout.reader import Source, StatementDocument, load_statement
from layout.rows import DEFAULT_ROW_TOLERANCE
from parser.assembler import assemble
from parser.dates import parse_statement_period
from rst_core.errors import BlockParseError, ImportWarning, StatementPeriodNotFoundError
from rst_core.models import StatementPeriod, Transaction

log = logging.getLogger("parser")

DEFAULT_LAYOUT_FAMILY = "uber-weekly-v1"


@dataclass
class ParsedStatement:
    source: str
    period: StatementPeriod
    layout_family: str
    transactions: List[Transaction] = field(default_factory=list)
    errors: List[BlockParseError] = field(default_factory=list)
    warnings: List[ImportWarning] = field(default_factory=list)
    blocks: int = 0

    @property
    def flagged(self) -> List[Transaction]:
        return [t for t in self.transactions if t.needs_manual_verification]


def family_from_config(cfg: Optional[Dict[str, Any]] = None) -> LayoutFamily:
    cfg = cfg or {}
    identifier = cfg.get("statement", {}).get("layout_family", DEFAULT_LAYOUT_FAMILY)
    return get_layout_family(identifier, day_tokens=day_tokens(cfg))


def parse_document(
    document: StatementDocument,
    family: LayoutFamily,
    *,
    period: Optional[StatementPeriod] = None,
    categorize: Categorize = categorize_transaction,
) -> ParsedStatement:
    """
    Parse a laid-out document. `period` overrides the one printed on the
    statement; without either, StatementPeriodNotFoundError is raised.
    """
    if period is None:
        period = parse_statement_period(document.text)
    if period is None:
        raise StatementPeriodNotFoundError(
            f"No statement period found in {document.source}", source=document.source
        )
    log.info("Statement %s: period %s", document.source, period.label)

    result = assemble(
        ((p.number, p.rows) for p in document.pages),
        family,
        period,
        categorize=categorize,
    )
    return ParsedStatement(
        source=document.source,
        period=period,
        layout_family=family.identifier,
        transactions=result.transactions,
        errors=result.errors,
        warnings=result.warnings,
        blocks=result.blocks,
    )


def parse_statement(
    source: Source,
    cfg: Optional[Dict[str, Any]] = None,
    *,
    period: Optional[StatementPeriod] = None,
    categorize: Categorize = categorize_transaction,
) -> ParsedStatement:
    """Load a statement PDF (path or bytes) and parse it."""
    cfg = cfg or {}
    tolerance = float(
        cfg.get("statement", {}).get("row_tolerance", DEFAULT_ROW_TOLERANCE)
    )
    document = load_statement(source, row_tolerance=tolerance)
    return parse_document(
        document, family_from_config(cfg), period=period, categorize=categorize
    )
