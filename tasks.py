# tasks.py
"""
Developer task runner using Invoke.
Run `inv --list` to see tasks.

Key tasks:
  inv rows --input <statement.pdf>
  inv validate [--path data/statements]
  inv import --input <statement.pdf> [--replace]
  inv rematch
  inv orphans [--csv data/exports/missing_shifts.csv]
  inv test
  inv clean
"""

from invoke import task
from pathlib import Path
import shutil
import sys


REPO = Path(__file__).parent
STATEMENTS = REPO / "data" / "statements"
EXPORTS = REPO / "data" / "exports"


def _python():
    """Return the python executable inside the current venv."""
    return sys.executable or "python"


@task(
    help={
        "input": "Path to a statement PDF",
        "tolerance": "Row grouping tolerance in points (default: 5.0)",
    }
)
def rows(c, input, tolerance=5.0):
    """Dump the positioned rows of one statement PDF."""
    c.run(
        f'"{_python()}" -m layout.reader --input "{input}" --tolerance {tolerance}',
        pty=False,
    )


@task(
    help={
        "path": "Statement PDF or folder (default: data/statements)",
        "json": "Emit a JSON report",
    }
)
def validate(c, path=str(STATEMENTS), json=False):
    """Parse statements without storing anything and report problems."""
    args = ["-m", "cli.validate", f'"{path}"']
    if json:
        args.append("--json")
    c.run(f'"{_python()}" ' + " ".join(args), pty=False, warn=True)


@task(
    name="import",
    help={
        "input": "Statement PDF to import",
        "replace": "Replace an already imported statement period",
    },
)
def import_(c, input, replace=False):
    """Import one statement into the store and match it to shifts."""
    args = ["stmtproc.py", "import", f'"{input}"']
    if replace:
        args.append("--replace")
    c.run(f'"{_python()}" ' + " ".join(args), pty=False)


@task
def rematch(c):
    """Re-run shift matching over every stored transaction."""
    c.run(f'"{_python()}" stmtproc.py rematch', pty=False)


@task(help={"csv": "Write missing shifts CSV here"})
def orphans(c, csv=None):
    """Show unmatched transactions grouped into missing shifts."""
    args = ["stmtproc.py", "orphans"]
    if csv:
        args += ["--csv", f'"{csv}"']
    c.run(f'"{_python()}" ' + " ".join(args), pty=False)


@task
def test(c):
    """Run unit tests with pytest."""
    c.run(f'"{_python()}" -m pytest -q', pty=False)


@task
def clean(c):
    """Delete exported reports."""
    if EXPORTS.exists():
        shutil.rmtree(EXPORTS)
        print(f"Removed {EXPORTS}")
    # Recreate empty dirs to keep structure predictable
    EXPORTS.mkdir(parents=True, exist_ok=True)
