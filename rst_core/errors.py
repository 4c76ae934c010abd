"""
Error and warning types for statement import.

Only DocumentLoadError (and its subclasses) is raised out of an import.
Everything else describes a single block or transaction and is collected
into the ImportSummary so partial results stay visible.
"""
from __future__ import annotations

from typing import Optional


class DocumentLoadError(Exception):
    """The statement document could not be opened or read."""

    def __init__(self, message: str, *, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class StatementPeriodNotFoundError(DocumentLoadError):
    """The document opened but carries no recognizable statement period."""


class UnknownLayoutFamilyError(KeyError):
    pass


class BlockParseError(Exception):
    """A transaction block without a recoverable transaction date."""

    def __init__(self, message: str, *, page: int, row: int, text: str = ""):
        super().__init__(message)
        self.page = page
        self.row = row
        self.text = text

    def __str__(self) -> str:
        return f"page {self.page} row {self.row}: {self.args[0]}"


class ImportWarning(UserWarning):
    """Base for per-transaction warnings collected during an import."""

    def __init__(self, message: str, *, transaction_id: Optional[str] = None):
        super().__init__(message)
        self.transaction_id = transaction_id


class AmbiguousAmountWarning(ImportWarning):
    pass


class MissingEventDateWarning(ImportWarning):
    pass


class NoMatchWarning(ImportWarning):
    pass
