"""
Risk Rules - YAML Loader.

File format:

    rules:
      - name: max_delta
        condition: "short_delta > 65"
        action: block_trade
        params: {max_delta: 65}
        priority: 1
        rule_set: conservative
        enabled: true

The condition string picks the condition type; params are
stored as-is. Existing (name, rule_set) rules are updated.
"""

import logging
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .store import RuleStore
from .types import ConditionType, RiskRule, RuleAction


logger = logging.getLogger(__name__)


def condition_type_for(condition: str) -> ConditionType:
    """Map a free-form condition string to a condition type."""
    text = (condition or "").lower()
    if "delta" in text:
        return ConditionType.DELTA_BREACH
    if any(word in text for word in ("time", "hour", "minute")):
        return ConditionType.TIME_EXIT
    if any(word in text for word in ("margin", "credit", "position_count")):
        return ConditionType.PORTFOLIO_LIMIT
    return ConditionType.CUSTOM


def _rule_from_entry(entry: Dict[str, Any]) -> RiskRule:
    params = dict(entry.get("params") or {})
    if entry.get("condition"):
        params.setdefault("condition", entry["condition"])

    return RiskRule(
        rule_id=str(entry.get("rule_id") or f"rule-{uuid.uuid4().hex[:12]}"),
        name=str(entry["name"]),
        rule_set=str(entry.get("rule_set") or "default"),
        condition_type=condition_type_for(str(entry.get("condition", ""))),
        condition_params=params,
        action=RuleAction(entry.get("action", RuleAction.BLOCK_TRADE.value)),
        priority=int(entry.get("priority", 10)),
        enabled=entry.get("enabled") is not False,
    )


def load_rules_from_yaml(store: RuleStore, path: Union[str, Path]) -> int:
    """
    Load rules from a YAML file into the store.

    Returns:
        Number of rules inserted or updated (0 if the file is missing)
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Risk rules file not found: {path}")
        return 0

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    loaded = 0
    for entry in data.get("rules") or []:
        rule = _rule_from_entry(entry)
        existing = store.find_rule(rule.name, rule.rule_set)
        if existing is not None:
            rule = replace(rule, rule_id=existing.rule_id, created_at=existing.created_at)
            logger.info(f"Updating risk rule {rule.name} ({rule.rule_set})")
        store.save_rule(rule)
        loaded += 1

    logger.info(f"Loaded {loaded} risk rules from {path}")
    return loaded
