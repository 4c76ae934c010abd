# cli/validate.py
"""
Standalone statement validator.

Parses every statement PDF under a directory with the same library the
import pipeline uses and reports, per file, what would be imported and
what needs a look. Nothing is written to the store.

    python -m cli.validate data/statements
    python -m cli.validate data/statements --json
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from categorizer.service import categorizer_from_config
from config.loader import load_config
from parser.statement import ParsedStatement, parse_statement
from rst_core.errors import DocumentLoadError

LOGGER = logging.getLogger("validate")


def make_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("validate", description="Validate statement PDFs")
    p.add_argument("path", help="Statement PDF or folder of statements")
    p.add_argument(
        "--json",
        action="store_true",
        help="Output JSON report to stdout instead of human-readable text",
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress info logs; only warnings/errors.",
    )
    p.add_argument(
        "--verbose",
        action="store_true",
        help="Verbose logging.",
    )
    return p


def _setup_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if args.quiet:
        level = logging.WARNING
    if args.verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _discover_sources(path_str: str) -> List[Path]:
    """Single PDF, or every PDF under a directory (recursive)."""
    p = Path(path_str)
    if p.is_file():
        return [p]
    if not p.exists():
        raise FileNotFoundError(f"Path does not exist: {path_str}")
    return sorted(q for q in p.rglob("*") if q.is_file() and q.suffix.lower() == ".pdf")


def _report(src: Path, parsed: ParsedStatement) -> Dict[str, Any]:
    return {
        "source": str(src),
        "ok": True,
        "period": parsed.period.label,
        "layout_family": parsed.layout_family,
        "blocks": parsed.blocks,
        "transactions": len(parsed.transactions),
        "needs_verification": len(parsed.flagged),
        "errors": [str(e) for e in parsed.errors],
        "warnings": [f"{type(w).__name__}: {w}" for w in parsed.warnings],
    }


def _print_human(reports: List[Dict[str, Any]]) -> None:
    for r in reports:
        print("-" * 60)
        print(f"Source       : {r['source']}")
        if not r["ok"]:
            print(f"FAILED       : {r['error']}")
            continue
        print(f"Period       : {r['period']}")
        print(f"Transactions : {r['transactions']} of {r['blocks']} blocks")
        print(f"To verify    : {r['needs_verification']}")
        for e in r["errors"]:
            print(f"  ! {e}")
        for w in r["warnings"]:
            print(f"  ~ {w}")
    failed = sum(1 for r in reports if not r["ok"])
    print("=" * 60)
    print(f"{len(reports)} file(s), {failed} failed")


def run(args: argparse.Namespace) -> int:
    _setup_logging(args)
    try:
        cfg = load_config()
    except FileNotFoundError:
        cfg = {}

    try:
        sources = _discover_sources(args.path)
    except FileNotFoundError as e:
        LOGGER.error(str(e))
        return 3

    if not sources:
        LOGGER.warning("No statement PDFs found under: %s", args.path)
        return 2

    categorize = categorizer_from_config(cfg)
    reports: List[Dict[str, Any]] = []
    for src in sources:
        try:
            parsed = parse_statement(src, cfg, categorize=categorize)
        except DocumentLoadError as e:
            LOGGER.error("Cannot parse %s: %s", src, e)
            reports.append({"source": str(src), "ok": False, "error": str(e)})
            continue
        reports.append(_report(src, parsed))

    if args.json:
        print(json.dumps({"schema_version": "1.0", "results": reports}, ensure_ascii=True))
    else:
        _print_human(reports)

    return 3 if any(not r["ok"] for r in reports) else 0


def main() -> int:
    return run(make_parser().parse_args())


if __name__ == "__main__":
    raise SystemExit(main())
