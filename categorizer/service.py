"""
Categorizer service backed by a YAML rule file.
"""
from __future__ import annotations

import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from rst_core.models import Category, Transaction
from categorizer.rules import DEFAULT_RULES, apply_rules_with_name
from config.loader import DEFAULT_CATEGORY_RULES


class CategorizerService:
    """Classifies transactions by event type using rule-based matching."""

    def __init__(self, rules_path: Optional[str] = None):
        self.cfg = DEFAULT_RULES
        if rules_path:
            p = Path(rules_path)
            if p.exists():
                with open(p, "r", encoding="utf-8") as f:
                    self.cfg = yaml.safe_load(f) or self.cfg

    def __call__(self, transaction: Transaction) -> Category:
        return self.categorize(transaction)

    def categorize(self, transaction: Transaction) -> Category:
        return apply_rules_with_name(transaction.event_type, self.cfg)[0]

    def categorize_with_rule(
        self, transaction: Transaction
    ) -> Tuple[Category, Optional[str]]:
        """
        Return (category, rule_name).
        rule_name is None if no rule matched (defaults used).
        """
        return apply_rules_with_name(transaction.event_type, self.cfg)

    def get_rule_count(self) -> int:
        """Return number of rules configured."""
        return len(self.cfg.get("rules", []))


def categorizer_from_config(cfg: Optional[Dict[str, Any]] = None) -> CategorizerService:
    """Service for the rule file named in [paths] categories, else the bundled one."""
    path = (cfg or {}).get("paths", {}).get("categories") or str(DEFAULT_CATEGORY_RULES)
    return CategorizerService(path)
