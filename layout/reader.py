# layout/reader.py
from __future__ import annotations
import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Union, cast

import fitz  # PyMuPDF

from layout.rows import DEFAULT_ROW_TOLERANCE, group_rows
from rst_core.errors import DocumentLoadError
from rst_core.models import PositionedFragment, TransactionRow

log = logging.getLogger("layout")

Source = Union[str, Path, bytes]


@dataclass
class PageLayout:
    number: int  # 1-based
    fragments: List[PositionedFragment] = field(default_factory=list)
    rows: List[TransactionRow] = field(default_factory=list)
    text: str = ""


@dataclass
class StatementDocument:
    source: str
    pages: List[PageLayout] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.pages)


def page_fragments(page: Any) -> List[PositionedFragment]:
    """One fragment per extracted text line, positioned at its bbox top-left."""
    fragments: List[PositionedFragment] = []
    data = page.get_text("dict")
    for block in data.get("blocks", []):
        if block.get("type", 0) != 0:
            continue  # image block
        for line in block.get("lines", []):
            text = "".join(span.get("text", "") for span in line.get("spans", []))
            text = " ".join(text.split())
            if not text:
                continue
            x0, y0 = line["bbox"][0], line["bbox"][1]
            fragments.append(PositionedFragment(text=text, x=float(x0), y=float(y0)))
    return fragments


def _open(source: Source) -> Any:
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise DocumentLoadError("Empty document", source="<bytes>")
        return fitz.open(stream=bytes(source), filetype="pdf")
    path = Path(source)
    if not path.exists():
        raise DocumentLoadError(f"Input not found: {path}", source=str(path))
    return fitz.open(path)


def load_statement(
    source: Source, *, row_tolerance: float = DEFAULT_ROW_TOLERANCE
) -> StatementDocument:
    """
    Open a statement PDF and lay out every page as positioned rows.
    Raises DocumentLoadError when the document cannot be opened.
    """
    label = "<bytes>" if isinstance(source, (bytes, bytearray)) else str(source)
    try:
        doc = _open(source)
    except DocumentLoadError:
        raise
    except (RuntimeError, ValueError, OSError) as e:
        raise DocumentLoadError(f"Cannot open PDF: {label}: {e}", source=label) from e

    statement = StatementDocument(source=label)
    with doc:
        if doc.needs_pass:
            raise DocumentLoadError(f"PDF is encrypted: {label}", source=label)
        for i in range(doc.page_count):
            page = cast(Any, doc.load_page(i))
            fragments = page_fragments(page)
            rows = group_rows(fragments, row_tolerance)
            statement.pages.append(
                PageLayout(
                    number=i + 1,
                    fragments=fragments,
                    rows=rows,
                    text=page.get_text("text"),
                )
            )
            log.debug("Page %d: %d fragments, %d rows", i + 1, len(fragments), len(rows))
    return statement


def _cli():
    p = argparse.ArgumentParser(description="Dump positioned rows of a statement PDF.")
    p.add_argument("--input", required=True)
    p.add_argument("--tolerance", type=float, default=DEFAULT_ROW_TOLERANCE)
    args = p.parse_args()
    statement = load_statement(args.input, row_tolerance=args.tolerance)
    for page in statement.pages:
        print(f"--- page {page.number} ({len(page.rows)} rows)")
        for row in page.rows:
            cells = " | ".join(f"{f.text}@{f.x:.0f}" for f in row.fragments)
            print(f"{row.y:7.1f}  {cells}")


if __name__ == "__main__":
    _cli()
