"""
Risk Rules - Default Rule Sets.

conservative:
    max_delta_breach (block), midday_exit (close), margin_usage_limit (block)
moderate:
    moderate_delta_breach (alert), moderate_margin_limit (block)
"""

import logging
from typing import List

from .store import RuleStore
from .types import ConditionType, RiskRule, RuleAction


logger = logging.getLogger(__name__)


def default_rules() -> List[RiskRule]:
    return [
        RiskRule(
            rule_id="rule-1",
            name="max_delta_breach",
            rule_set="conservative",
            condition_type=ConditionType.DELTA_BREACH,
            condition_params={"max_delta": 65},
            action=RuleAction.BLOCK_TRADE,
            priority=1,
        ),
        RiskRule(
            rule_id="rule-2",
            name="midday_exit",
            rule_set="conservative",
            condition_type=ConditionType.TIME_EXIT,
            condition_params={"exit_time": "12:00:00"},
            action=RuleAction.CLOSE_TRADE,
            priority=2,
        ),
        RiskRule(
            rule_id="rule-3",
            name="margin_usage_limit",
            rule_set="conservative",
            condition_type=ConditionType.PORTFOLIO_LIMIT,
            condition_params={"max_margin_usage": 80},
            action=RuleAction.BLOCK_TRADE,
            priority=3,
        ),
        RiskRule(
            rule_id="rule-4",
            name="moderate_delta_breach",
            rule_set="moderate",
            condition_type=ConditionType.DELTA_BREACH,
            condition_params={"max_delta": 85},
            action=RuleAction.ALERT,
            priority=1,
        ),
        RiskRule(
            rule_id="rule-5",
            name="moderate_margin_limit",
            rule_set="moderate",
            condition_type=ConditionType.PORTFOLIO_LIMIT,
            condition_params={"max_margin_usage": 90},
            action=RuleAction.BLOCK_TRADE,
            priority=2,
        ),
    ]


def seed_default_rules(store: RuleStore) -> int:
    """
    Insert the default rules that are not already stored.

    Returns:
        Number of rules inserted
    """
    inserted = 0
    for rule in default_rules():
        if store.get_rule(rule.rule_id) is not None:
            continue
        store.save_rule(rule)
        inserted += 1

    logger.info(f"Seeded {inserted} default risk rules")
    return inserted
