"""
Rules engine for statement transaction categorization.

Category is derived from the event-type label every time it is needed and
never stored, so editing a rule reclassifies historical transactions.

Rule conditions (any one matching is enough):
- if_equals: exact event type ("Tip")
- if_label: leading label, alone or followed by a description
  ("Quest", "Quest (Friday Oct 10, ...)", "Incentive - Quest (...)")
- if_contains: case-insensitive substring ("transferred to bank")
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple

from rst_core.models import Category, Transaction


DEFAULT_RULES: Dict[str, Any] = {
    "rules": [
        {"name": "tip", "if_equals": ["Tip"], "assign": "tip"},
        {
            "name": "promotion",
            "if_label": ["Quest", "Incentive"],
            "assign": "promotion",
        },
        {
            "name": "bank-transfer",
            "if_contains": ["transferred to bank"],
            "assign": "ignore",
        },
    ],
    "defaults": {"assign": "net_fare"},
}


@dataclass(frozen=True)
class Rule:
    """A single categorization rule with conditions and an assignment."""

    name: str
    category: Category
    equals: Tuple[str, ...] = field(default_factory=tuple)
    labels: Tuple[str, ...] = field(default_factory=tuple)
    contains: Tuple[str, ...] = field(default_factory=tuple)

    def check_equals(self, event_type: str) -> bool:
        return event_type in self.equals

    def check_label(self, event_type: str) -> bool:
        for label in self.labels:
            if event_type == label:
                return True
            if event_type.startswith(label):
                nxt = event_type[len(label)]
                if not nxt.isalnum():
                    return True
        return False

    def check_contains(self, event_type: str) -> bool:
        low = event_type.lower()
        return any(c.lower() in low for c in self.contains)

    def applies(self, event_type: str) -> bool:
        return (
            self.check_equals(event_type)
            or self.check_label(event_type)
            or self.check_contains(event_type)
        )


def parse_rule(r: Dict[str, Any]) -> Rule:
    """Parse a rule from a YAML config dict."""
    return Rule(
        name=r.get("name", "unnamed"),
        category=Category(r["assign"]),
        equals=tuple(r.get("if_equals", [])),
        labels=tuple(r.get("if_label", [])),
        contains=tuple(r.get("if_contains", [])),
    )


def compile_rules(cfg: Dict[str, Any]) -> List[Rule]:
    """Compile rules in file order; first match wins."""
    return [parse_rule(r) for r in cfg.get("rules", [])]


def default_category(cfg: Dict[str, Any]) -> Category:
    return Category(cfg.get("defaults", {}).get("assign", Category.NET_FARE.value))


def apply_rules_with_name(
    event_type: str, cfg: Dict[str, Any]
) -> Tuple[Category, Optional[str]]:
    """Return (category, rule_name); rule_name is None when the default applied."""
    label = (event_type or "").strip()
    for rule in compile_rules(cfg):
        if rule.applies(label):
            return rule.category, rule.name
    return default_category(cfg), None


@lru_cache(maxsize=1)
def _default_rules() -> Tuple[Rule, ...]:
    return tuple(compile_rules(DEFAULT_RULES))


def categorize(event_type: str) -> Category:
    """Built-in classification: tip / promotion / ignore / net fare."""
    label = (event_type or "").strip()
    for rule in _default_rules():
        if rule.applies(label):
            return rule.category
    return Category.NET_FARE


def categorize_transaction(transaction: Transaction) -> Category:
    return categorize(transaction.event_type)


# Anything that classifies a transaction: categorize_transaction or a
# CategorizerService instance.
Categorize = Callable[[Transaction], Category]
