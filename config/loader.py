# config/loader.py
from __future__ import annotations
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List

# Python 3.11 has tomllib; fall back to "tomli" on older versions if needed
try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

REPO = Path(__file__).resolve().parents[1]
DEFAULT_CATEGORY_RULES = REPO / "config" / "categories.yaml"


def load_config(config_path: Path | None = None) -> Dict[str, Any]:
    """
    Load config.toml from repo root by default.
    """
    if config_path is None:
        # repo root is parent of this file's parent
        config_path = REPO / "config.toml"

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with config_path.open("rb") as f:
        return tomllib.load(f)


def boundary_offset(cfg: Dict[str, Any]) -> timedelta:
    hours = cfg.get("matching", {}).get("boundary_offset_hours", 4)
    return timedelta(hours=float(hours))


def day_tokens(cfg: Dict[str, Any]) -> List[str] | None:
    tokens = cfg.get("statement", {}).get("day_tokens")
    return list(tokens) if tokens else None
