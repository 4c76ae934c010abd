from __future__ import annotations

import re
from typing import List, Optional, Tuple


# ---------------- Money tokens ----------------

# "$20.00", "-$473.61", "+$2.71", "$1,234.56"
AMOUNT_TOKEN = r"[-+]?\$\d{1,3}(?:,\d{3})*(?:\.\d{2})|[-+]?\$\d+(?:\.\d{2})"
AMOUNT_RX = re.compile(AMOUNT_TOKEN)

# Whole string is nothing but amount tokens ("$20.00 $20.00", "-$473.61-$473.61")
PURE_AMOUNTS_RX = re.compile(rf"^\s*(?:(?:{AMOUNT_TOKEN})\s*)+$")

# Trailing run of amount tokens at the end of a text fragment
TRAILING_AMOUNTS_RX = re.compile(rf"(?:(?<=\s)|^)((?:(?:{AMOUNT_TOKEN})\s*)+)$")


def parse_money(token: Optional[str]) -> Optional[float]:
    """'-$1,234.56' -> -1234.56 ; returns None when the token is not money."""
    if token is None:
        return None
    s = token.strip().replace(",", "").replace("$", "")
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def find_amounts(text: str) -> List[float]:
    out: List[float] = []
    for m in AMOUNT_RX.finditer(text or ""):
        val = parse_money(m.group(0))
        if val is not None:
            out.append(val)
    return out


def is_pure_amounts(text: str) -> bool:
    return bool(PURE_AMOUNTS_RX.match(text or ""))


def split_trailing_amounts(text: str) -> Tuple[str, List[float]]:
    """
    Split "Quest (Friday Oct 10, 2025 $20.00 $20.00" into
    ("Quest (Friday Oct 10, 2025", [20.0, 20.0]).
    Text without a trailing amount run comes back unchanged with [].
    """
    s = (text or "").rstrip()
    m = TRAILING_AMOUNTS_RX.search(s)
    if not m:
        return text or "", []
    amounts = find_amounts(m.group(1))
    if not amounts:
        return text or "", []
    return s[: m.start(1)].strip(), amounts


def format_amount(value: float) -> str:
    """CSV money format: blank for zero, two decimals otherwise."""
    if not value:
        return ""
    return f"{value:.2f}"
