# parser/dates.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional, Tuple

from rst_core.models import StatementPeriod

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_MONTH = r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?"

# "Oct 13, 2025 4 AM - Oct 20, 2025 4 AM"
PERIOD_RX = re.compile(
    rf"{_MONTH}\s+(\d{{1,2}}),\s+(\d{{4}})\s+(\d{{1,2}})\s*(AM|PM)\s*[-–]\s*"
    rf"{_MONTH}\s+(\d{{1,2}}),\s+(\d{{4}})\s+(\d{{1,2}})\s*(AM|PM)",
    re.IGNORECASE,
)

# "10:27 PM"
TIME_RX = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)

# "Oct 11 10:27 PM"
EVENT_DATE_RX = re.compile(
    rf"\b{_MONTH}\s+(\d{{1,2}})\s+(\d{{1,2}}):(\d{{2}})\s*(AM|PM)\b",
    re.IGNORECASE,
)
EVENT_DATE_EXACT_RX = re.compile(rf"^{EVENT_DATE_RX.pattern}$", re.IGNORECASE)


def month_number(name: str) -> Optional[int]:
    return MONTHS.get((name or "").strip().lower()[:3])


def to_24h(hour12: int, am_pm: str) -> int:
    if am_pm.upper() == "AM":
        return 0 if hour12 == 12 else hour12
    return hour12 if hour12 == 12 else hour12 + 12


def parse_time_of_day(text: str) -> Optional[Tuple[int, int]]:
    """'10:27 PM' -> (22, 27)"""
    m = TIME_RX.match((text or "").strip())
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    if not (1 <= hour <= 12 and 0 <= minute <= 59):
        return None
    return to_24h(hour, m.group(3)), minute


def is_time_of_day(text: str) -> bool:
    return parse_time_of_day(text) is not None


def is_event_date(text: str) -> bool:
    return bool(EVENT_DATE_EXACT_RX.match((text or "").strip()))


def infer_year(
    month: int, period: Optional[StatementPeriod], fallback_year: Optional[int] = None
) -> int:
    """
    Statements print dates without a year. Inside a single-year period the
    year is the period's; a period crossing New Year assigns months from the
    start month onward to the start year and earlier months to the end year.
    """
    if period is None:
        return fallback_year or datetime.now().year
    start_year, end_year = period.start.year, period.end.year
    if start_year == end_year:
        return start_year
    if month >= period.start.month:
        return start_year
    if month <= period.end.month:
        return end_year
    return start_year


def build_datetime(
    month: int,
    day: int,
    hour: int,
    minute: int,
    period: Optional[StatementPeriod],
    fallback_year: Optional[int] = None,
) -> Optional[datetime]:
    year = infer_year(month, period, fallback_year)
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def parse_event_datetime(
    text: str,
    period: Optional[StatementPeriod],
    fallback_year: Optional[int] = None,
) -> Optional[datetime]:
    """Find '<Month> <Day> <H>:<MM> <AM|PM>' anywhere in `text`."""
    m = EVENT_DATE_RX.search(text or "")
    if not m:
        return None
    month = month_number(m.group(1))
    hour, minute = int(m.group(3)), int(m.group(4))
    if month is None or not (1 <= hour <= 12 and 0 <= minute <= 59):
        return None
    return build_datetime(
        month, int(m.group(2)), to_24h(hour, m.group(5)), minute, period, fallback_year
    )


def parse_statement_period(text: str) -> Optional[StatementPeriod]:
    """Find the 'Oct 13, 2025 4 AM - Oct 20, 2025 4 AM' statement period."""
    m = PERIOD_RX.search(text or "")
    if not m:
        return None
    parts = m.groups()
    try:
        start = datetime(
            int(parts[2]),
            month_number(parts[0]) or 0,
            int(parts[1]),
            to_24h(int(parts[3]), parts[4]),
        )
        end = datetime(
            int(parts[7]),
            month_number(parts[5]) or 0,
            int(parts[6]),
            to_24h(int(parts[8]), parts[9]),
        )
    except ValueError:
        return None
    return StatementPeriod.from_dates(start, end)
