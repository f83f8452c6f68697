"""
Risk Rules.

Data-driven, prioritized risk rules evaluated against trade
and portfolio snapshots.
"""

from .engine import RiskRuleEngine
from .loader import condition_type_for, load_rules_from_yaml
from .predicates import CustomPredicateRegistry
from .seed import default_rules, seed_default_rules
from .store import InMemoryRuleStore, RuleStore, SqlRuleStore
from .types import (
    ConditionType,
    RiskEvent,
    RiskRule,
    RuleAction,
    RuleEvaluationContext,
    RuleEvaluationResult,
    TradeSnapshot,
    TriggeredRule,
)


__all__ = [
    "ConditionType",
    "CustomPredicateRegistry",
    "InMemoryRuleStore",
    "RiskEvent",
    "RiskRule",
    "RiskRuleEngine",
    "RuleAction",
    "RuleEvaluationContext",
    "RuleEvaluationResult",
    "RuleStore",
    "SqlRuleStore",
    "TradeSnapshot",
    "TriggeredRule",
    "condition_type_for",
    "default_rules",
    "load_rules_from_yaml",
    "seed_default_rules",
]
