# matching/orphans.py
"""
Unmatched transactions -> suggested missing shifts.

Orphans are clustered by operational day (4 AM boundary); each cluster
spans its earliest to latest effective time so the suggested shift never
overlaps a logged one. The CSV uses the shift import columns with the
earnings prefilled and everything the driver must enter left blank.
"""
from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TextIO

from categorizer.rules import Categorize, categorize_transaction
from matching.aggregate import TransactionTotals
from matching.matcher import operational_day
from rst_core.models import DEFAULT_BOUNDARY_OFFSET, Category, Transaction
from rst_utils.normalizers import format_amount

SHIFT_CSV_COLUMNS = [
    "StartDate",
    "StartTime",
    "EndDate",
    "EndTime",
    "StartMileage",
    "EndMileage",
    "StartTankReading",
    "EndTankReading",
    "RefuelGallons",
    "RefuelCost",
    "GasPrice",
    "StandardMileageRate",
    "Trips",
    "NetFare",
    "Tips",
    "CashTips",
    "Promotions",
    "Tolls",
    "TollsReimbursed",
    "ParkingFees",
    "MiscFees",
]


@dataclass
class OrphanCluster:
    day: date
    start: datetime
    end: datetime
    totals: TransactionTotals = field(default_factory=TransactionTotals)
    transactions: List[Transaction] = field(default_factory=list)


def build_orphan_report(
    orphans: Iterable[Transaction],
    *,
    offset: timedelta = DEFAULT_BOUNDARY_OFFSET,
    categorize: Categorize = categorize_transaction,
) -> List[OrphanCluster]:
    """Cluster orphans by operational day, oldest first. Inputs are not modified."""
    by_day: Dict[date, List[Transaction]] = {}
    for txn in orphans:
        if categorize(txn) is Category.IGNORE:
            continue
        by_day.setdefault(operational_day(txn.effective_timestamp, offset), []).append(txn)

    clusters: List[OrphanCluster] = []
    for day in sorted(by_day):
        txns = sorted(by_day[day], key=lambda t: t.effective_timestamp)
        cluster = OrphanCluster(
            day=day,
            start=txns[0].effective_timestamp,
            end=txns[-1].effective_timestamp,
            transactions=txns,
        )
        for txn in txns:
            cluster.totals.add(txn, categorize(txn))
        clusters.append(cluster)
    return clusters


def _time(ts: datetime) -> str:
    # "4:01:00 PM"
    return ts.strftime("%I:%M:%S %p").lstrip("0")


def cluster_row(cluster: OrphanCluster) -> Dict[str, str]:
    row = {col: "" for col in SHIFT_CSV_COLUMNS}
    row.update(
        {
            "StartDate": cluster.start.strftime("%m/%d/%Y"),
            "StartTime": _time(cluster.start),
            "EndDate": cluster.end.strftime("%m/%d/%Y"),
            "EndTime": _time(cluster.end),
            "NetFare": format_amount(cluster.totals.net_fare),
            "Tips": format_amount(cluster.totals.tips),
            "Promotions": format_amount(cluster.totals.promotions),
            "TollsReimbursed": format_amount(cluster.totals.tolls_reimbursed),
        }
    )
    return row


def write_missing_shifts(clusters: Iterable[OrphanCluster], f: TextIO) -> int:
    w = csv.DictWriter(f, fieldnames=SHIFT_CSV_COLUMNS, lineterminator="\n")
    w.writeheader()
    n = 0
    for cluster in clusters:
        w.writerow(cluster_row(cluster))
        n += 1
    return n


def missing_shifts_csv(
    clusters: Iterable[OrphanCluster], csv_path: Optional[Path] = None
) -> str:
    """Render clusters as shift-import CSV; also written to `csv_path` if given."""
    buf = io.StringIO()
    write_missing_shifts(clusters, buf)
    text = buf.getvalue()
    if csv_path is not None:
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        with csv_path.open("w", newline="", encoding="utf-8") as f:
            f.write(text)
    return text
