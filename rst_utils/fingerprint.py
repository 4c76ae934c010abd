# rst_utils/fingerprint.py
# Purpose: stable content fingerprint for transaction de-duplication.

from __future__ import annotations
import hashlib
import re
from datetime import datetime
from typing import Optional


def canonicalize_text(s: str) -> str:
    """
    Minimal canonicalization so the same event label yields the same fingerprint.
    - Lowercase
    - Collapse whitespace
    """
    if not isinstance(s, str):
        s = str(s or "")
    s = s.lower()
    s = re.sub(r"\s+", " ", s).strip()
    return s


def transaction_fingerprint(
    transaction_date: datetime, event_type: str, amount: Optional[float]
) -> str:
    """
    Short SHA-1 fingerprint over (processed time, event label, amount in cents).
    Two statement rows with the same fingerprint are the same transaction.
    """
    cents = "none" if amount is None else str(int(round(amount * 100)))
    canon = "|".join(
        [
            transaction_date.replace(second=0, microsecond=0).isoformat(),
            canonicalize_text(event_type),
            cents,
        ]
    )
    return hashlib.sha1(canon.encode("utf-8")).hexdigest()[:20]
