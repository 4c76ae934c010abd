# stmtproc.py
# Command-line front end for rideshare statement reconciliation.
# - Statement import (import) with exclusive store locking
# - Re-matching after shifts change (rematch)
# - Shift maintenance (shift-add, shift-delete, shifts)
# - Missing-shift report and CSV (orphans)
# - Database management (db --init, --check, --stats)
#
# Examples:
#   python stmtproc.py db --init
#   python stmtproc.py import data/statements/2025-10-13.pdf
#   python stmtproc.py import data/statements/2025-10-13.pdf --replace
#   python stmtproc.py shift-add "2025-10-11 18:00" "2025-10-12 01:30"
#   python stmtproc.py rematch
#   python stmtproc.py orphans --csv data/exports/missing_shifts.csv

from __future__ import annotations

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import click

from categorizer.service import categorizer_from_config
from config.loader import boundary_offset, load_config
from matching.aggregate import group_by_shift
from matching.orphans import build_orphan_report, missing_shifts_csv
from pipeline.importer import import_statement, rematch
from rst_core.errors import DocumentLoadError
from rst_core.models import Shift
from rst_utils.logging_setup import setup_logging
from rst_utils.normalizers import format_amount
from storage import SCHEMA_VERSION, DEFAULT_DB_PATH, SQLiteStore


def _config() -> Dict[str, Any]:
    try:
        return load_config()
    except FileNotFoundError:
        return {}


def _db_default() -> str:
    return _config().get("paths", {}).get("db", DEFAULT_DB_PATH)


def _parse_when(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        raise click.BadParameter(
            f"{value!r} is not a date/time like '2025-10-11 18:00'"
        ) from None


def _open_store(db_path: str) -> SQLiteStore:
    store = SQLiteStore(db_path)
    store.ensure_schema()
    return store


db_option = click.option(
    "--db",
    "db_path",
    default=_db_default,
    show_default="config [paths] db",
    help="Path to SQLite database file.",
)


# ----------------------------- CLI -----------------------------
@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override config [logging] level.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Rideshare statement processor CLI."""
    cfg = _config()
    ctx.obj = cfg
    setup_logging(log_level or cfg.get("logging", {}).get("level", "INFO"))


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, readable=True))
@db_option
@click.option("--replace", is_flag=True, help="Replace an already imported statement period.")
@click.option("--json", "output_json", is_flag=True, help="Output summary as JSON.")
@click.pass_obj
def import_cmd(
    cfg: Dict[str, Any], path: str, db_path: str, replace: bool, output_json: bool
) -> None:
    """Import one statement PDF: parse, match to shifts, store."""
    with _open_store(db_path) as store:
        try:
            summary = import_statement(Path(path), store, cfg, replace=replace)
        except DocumentLoadError as e:
            click.echo(f"[error] {e}", err=True)
            raise SystemExit(3)

    if output_json:
        click.echo(json.dumps(summary.as_dict(), indent=2))
    else:
        click.echo(f"[{summary.status}] {summary.period} | {path}")
        if summary.status == "duplicate_period":
            click.echo("  already imported; pass --replace to re-import")
        else:
            click.echo(
                f"  parsed={summary.parsed} stored={summary.inserted} "
                f"duplicates={summary.duplicates} matched={summary.matched} "
                f"orphaned={summary.orphaned} ignored={summary.ignored} "
                f"delayed_tips={summary.delayed_tips}"
            )
            for err in summary.errors:
                click.echo(f"  ! {err}")
            for w in summary.warnings:
                click.echo(f"  ~ {type(w).__name__}: {w}")

    if summary.status == "duplicate_period":
        raise SystemExit(2)


@cli.command("rematch")
@db_option
@click.pass_obj
def rematch_cmd(cfg: Dict[str, Any], db_path: str) -> None:
    """Re-run shift matching over every stored transaction."""
    with _open_store(db_path) as store:
        result = rematch(store, cfg)
    click.echo(
        f"[rematch] transactions={result.transactions} changed={result.changed} "
        f"matched={result.matched} orphaned={result.orphaned} ignored={result.ignored}"
    )


@cli.command("orphans")
@db_option
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write missing shifts in shift-import CSV format.",
)
@click.pass_obj
def orphans_cmd(cfg: Dict[str, Any], db_path: str, csv_path: Optional[str]) -> None:
    """Report unmatched transactions grouped into missing shifts."""
    categorize = categorizer_from_config(cfg)
    with _open_store(db_path) as store:
        clusters = build_orphan_report(
            store.fetch_orphans(), offset=boundary_offset(cfg), categorize=categorize
        )

    if not clusters:
        click.echo("[orphans] none")
        return
    for c in clusters:
        t = c.totals
        click.echo(
            f"{c.day.isoformat()}  {c.start:%H:%M}-{c.end:%H:%M}  "
            f"n={t.count} fare={t.net_fare:.2f} tips={t.tips:.2f} "
            f"promo={t.promotions:.2f} tolls={t.tolls_reimbursed:.2f}"
        )
    if csv_path:
        missing_shifts_csv(clusters, Path(csv_path))
        click.echo(f"[orphans] wrote {len(clusters)} row(s) to {csv_path}")


@cli.command("shift-add")
@click.argument("start")
@click.argument("end", required=False)
@db_option
@click.option("--id", "shift_id", default=None, help="Shift id (default: random).")
@click.option(
    "--rematch/--no-rematch",
    "do_rematch",
    default=True,
    show_default=True,
    help="Re-run matching so orphans inside the new shift are picked up.",
)
@click.pass_obj
def shift_add_cmd(
    cfg: Dict[str, Any],
    start: str,
    end: Optional[str],
    db_path: str,
    shift_id: Optional[str],
    do_rematch: bool,
) -> None:
    """Log a shift from START to END (omit END for one still in progress)."""
    shift = Shift(
        id=shift_id or uuid.uuid4().hex[:12],
        start_date=_parse_when(start),
        end_date=_parse_when(end) if end else None,
        created_at=datetime.now(),
    )
    if shift.end_date is not None and shift.end_date <= shift.start_date:
        raise click.BadParameter("END must be after START")

    with _open_store(db_path) as store:
        store.upsert_shift(shift)
        click.echo(f"[shift-add] {shift.id} {shift.start_date} -> {shift.end_date or '...'}")
        if do_rematch:
            result = rematch(store, cfg)
            click.echo(f"[rematch] changed={result.changed} orphaned={result.orphaned}")


@cli.command("shift-delete")
@click.argument("shift_id")
@db_option
def shift_delete_cmd(shift_id: str, db_path: str) -> None:
    """Delete a shift. Its transactions become orphans."""
    with _open_store(db_path) as store:
        if not store.delete_shift(shift_id):
            click.echo(f"[shift-delete] no shift {shift_id}", err=True)
            raise SystemExit(2)
    click.echo(f"[shift-delete] {shift_id}")


@cli.command("shifts")
@db_option
@click.pass_obj
def shifts_cmd(cfg: Dict[str, Any], db_path: str) -> None:
    """List shifts with their matched statement earnings."""
    categorize = categorizer_from_config(cfg)
    with _open_store(db_path) as store:
        shifts = store.list_shifts()
        groups = group_by_shift(
            shifts,
            store.fetch_transactions(),
            categorize=categorize,
            offset=boundary_offset(cfg),
        )

    for g in groups:
        t = g.totals
        delayed = sum(1 for item in g.transactions if item.is_delayed_tip)
        end = f"{g.shift.end_date:%Y-%m-%d %H:%M}" if g.shift.end_date else "..."
        click.echo(f"{g.shift.id}  {g.shift.start_date:%Y-%m-%d %H:%M} -> {end}")
        click.echo(
            f"    n={t.count} revenue={format_amount(t.revenue) or '0'} "
            f"tolls={format_amount(t.tolls_reimbursed) or '0'} "
            f"verify={t.needs_verification} delayed_tips={delayed}"
        )


# ----------------------------- Database Management Commands -----------------------------
@cli.command("db")
@db_option
@click.option("--init", "do_init", is_flag=True, help="Initialize database schema.")
@click.option(
    "--check", "do_check", is_flag=True, help="Run integrity checks and report database health."
)
@click.option("--stats", "do_stats", is_flag=True, help="Show table row counts and periods.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
def db_cmd(
    db_path: str, do_init: bool, do_check: bool, do_stats: bool, output_json: bool
) -> None:
    """
    Database management commands.

    Examples:

        stmtproc db --init

        stmtproc db --check --json
    """
    if not any([do_init, do_check, do_stats]):
        click.echo("No action specified. Use --init, --check, or --stats.")
        click.echo("Run 'stmtproc db --help' for usage.")
        raise SystemExit(1)

    results: Dict[str, Any] = {"db_path": db_path, "actions": []}
    store = SQLiteStore(db_path)

    if do_init:
        result = store.ensure_schema()
        results["init"] = result
        results["actions"].append("init")
        if not output_json:
            click.echo(f"[init] status={result['status']}, schema_version={SCHEMA_VERSION}")

    if do_check:
        result = store.check_integrity()
        results["check"] = result
        results["actions"].append("check")
        if not output_json:
            status_icon = (
                "[OK]"
                if result["status"] == "ok"
                else "[WARN]" if result["status"] == "warning" else "[ERR]"
            )
            click.echo(
                f"[check] {status_icon} status={result['status']}, version={result['version']}"
            )
            click.echo(f"  - integrity_check: {result['integrity_check']}")
            click.echo("  - tables:")
            for table, info in result["tables"].items():
                exists = "[+]" if info.get("exists", True) else "[-]"
                click.echo(f"      {exists} {table}: {info.get('rows', 0)} rows")
            if result["issues"]:
                click.echo("  - issues:")
                for issue in result["issues"]:
                    click.echo(f"      ! {issue}")

        if result["status"] == "error":
            results["exit_code"] = 3
        elif result["status"] == "warning":
            results["exit_code"] = 2

    if do_stats:
        stats = store.get_stats()
        periods = store.statement_periods() if stats.get("transactions", -1) >= 0 else []
        results["stats"] = stats
        results["periods"] = periods
        results["actions"].append("stats")
        if not output_json:
            click.echo("[stats] Table row counts:")
            for table, count in stats.items():
                if count >= 0:
                    click.echo(f"  - {table}: {count}")
                else:
                    click.echo(f"  - {table}: (not found)")
            for p in periods:
                click.echo(
                    f"  * {p['statement_period']}: {p['transactions']} transactions, "
                    f"{p['unassigned']} unassigned"
                )

    store.close()

    if output_json:
        click.echo(json.dumps(results, indent=2))

    exit_code = results.get("exit_code", 0)
    if exit_code != 0:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    cli()
