# layout/rows.py
from __future__ import annotations
from typing import Iterable, List

from rst_core.models import PositionedFragment, TransactionRow

DEFAULT_ROW_TOLERANCE = 5.0


def group_rows(
    fragments: Iterable[PositionedFragment],
    tolerance: float = DEFAULT_ROW_TOLERANCE,
) -> List[TransactionRow]:
    """
    Group fragments into rows: a fragment joins the first row whose anchor y
    is within `tolerance`, otherwise it opens a new row. Rows come back
    top-to-bottom, fragments left-to-right.
    """
    rows: List[TransactionRow] = []
    for frag in sorted(fragments, key=lambda f: (f.y, f.x)):
        if not (frag.text or "").strip():
            continue
        for row in rows:
            if abs(row.y - frag.y) < tolerance:
                row.fragments.append(frag)
                break
        else:
            rows.append(TransactionRow(y=frag.y, fragments=[frag]))

    rows.sort(key=lambda r: r.y)
    for row in rows:
        row.fragments.sort(key=lambda f: f.x)
    return rows
