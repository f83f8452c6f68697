"""
Risk Rules - Rule Engine.

============================================================
PURPOSE
============================================================
Evaluate a prioritized, data-driven rule set against a trade
and portfolio snapshot.

EVALUATION:
1. Load enabled rules (one set or all), ascending priority
2. Evaluate each rule's condition
3. Record a RiskEvent for every trigger
4. BLOCK_TRADE stops evaluation; CLOSE_TRADE / ALERT / WARN
   accumulate

CRITICAL:
- evaluate() NEVER raises; a store or evaluation failure
  becomes passed=False with the error as blocking reason
- Snapshots are read-only; the engine never mutates them

============================================================
"""

import logging
from datetime import datetime, time
from typing import Any, Dict, List, Optional, Union

from core.clock import ClockProtocol, SystemClock, to_market_time

from .predicates import CustomPredicateRegistry
from .store import RuleStore
from .types import (
    ConditionType,
    RiskEvent,
    RiskRule,
    RuleAction,
    RuleEvaluationContext,
    RuleEvaluationResult,
    TriggeredRule,
)


logger = logging.getLogger(__name__)


DEFAULT_MAX_DELTA = 65.0
DEFAULT_MAX_MARGIN_USAGE = 80.0


def _to_seconds(value: Union[datetime, time, str]) -> int:
    """Seconds after midnight (datetimes in exchange-local time)."""
    if isinstance(value, datetime):
        value = to_market_time(value).time()
    if isinstance(value, time):
        return value.hour * 3600 + value.minute * 60 + value.second

    parts = [int(p) for p in str(value).strip().split(":")]
    if len(parts) == 2:
        parts.append(0)
    if len(parts) != 3:
        raise ValueError(f"Malformed time: {value!r}")
    hour, minute, second = parts
    return hour * 3600 + minute * 60 + second


class RiskRuleEngine:
    """
    Prioritized rule evaluator.

    Usage:
        engine = RiskRuleEngine(store)
        result = engine.evaluate(context, rule_set="conservative")
        if not result.passed:
            reject(result.blocking_reason)
    """

    def __init__(
        self,
        store: RuleStore,
        predicates: Optional[CustomPredicateRegistry] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._store = store
        self._predicates = predicates or CustomPredicateRegistry()
        self._clock = clock or SystemClock()

    @property
    def predicates(self) -> CustomPredicateRegistry:
        return self._predicates

    # --------------------------------------------------------
    # PUBLIC API
    # --------------------------------------------------------

    def evaluate(
        self,
        context: RuleEvaluationContext,
        rule_set: Optional[str] = None,
    ) -> RuleEvaluationResult:
        try:
            return self._evaluate(context, rule_set)
        except Exception as e:
            logger.error(f"Rule evaluation failed: {e}")
            return RuleEvaluationResult(
                passed=False,
                blocking_reason=f"Rule evaluation error: {e}",
            )

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    def _evaluate(
        self,
        context: RuleEvaluationContext,
        rule_set: Optional[str],
    ) -> RuleEvaluationResult:
        rules = sorted(
            self._store.list_rules(rule_set=rule_set, enabled_only=True),
            key=lambda r: r.priority,
        )

        triggered: List[TriggeredRule] = []
        actions: List[RuleAction] = []

        for rule in rules:
            reason = self._check_rule(rule, context)
            if reason is None:
                continue

            triggered.append(TriggeredRule(
                rule_id=rule.rule_id,
                rule_name=rule.name,
                action=rule.action,
                reason=reason,
            ))
            actions.append(rule.action)
            self._record_event(rule, context)

            if rule.action.is_blocking():
                logger.info(f"Rule {rule.name} ({rule.rule_set}) blocked trade: {reason}")
                return RuleEvaluationResult(
                    passed=False,
                    triggered_rules=triggered,
                    actions=actions,
                    blocking_reason=reason,
                )

            if rule.action in (RuleAction.ALERT, RuleAction.WARN):
                logger.warning(f"Risk {rule.action.value} from {rule.name}: {reason}")
            else:
                logger.info(f"Rule {rule.name} requests {rule.action.value}: {reason}")

        return RuleEvaluationResult(passed=True, triggered_rules=triggered, actions=actions)

    def _check_rule(self, rule: RiskRule, context: RuleEvaluationContext) -> Optional[str]:
        """Reason string when the rule triggers, else None."""
        params = rule.condition_params or {}
        portfolio = context.portfolio

        if rule.condition_type == ConditionType.DELTA_BREACH:
            max_delta = float(params.get("max_delta", DEFAULT_MAX_DELTA))
            if abs(portfolio.short_delta) > max_delta:
                return f"Short delta {portfolio.short_delta:g} exceeds max {max_delta:g}"
            return None

        if rule.condition_type == ConditionType.TIME_EXIT:
            exit_time = params.get("exit_time")
            if not exit_time or context.evaluation_time is None:
                return None
            if _to_seconds(context.evaluation_time) >= _to_seconds(exit_time):
                return f"Time exit reached ({exit_time})"
            return None

        if rule.condition_type == ConditionType.PORTFOLIO_LIMIT:
            limit = float(params.get("max_margin_usage", DEFAULT_MAX_MARGIN_USAGE))
            if portfolio.margin_usage > limit:
                return f"Margin usage {portfolio.margin_usage:g}% exceeds max {limit:g}%"
            return None

        if rule.condition_type == ConditionType.CUSTOM:
            return self._check_custom(rule, context, params)

        return None

    def _check_custom(
        self,
        rule: RiskRule,
        context: RuleEvaluationContext,
        params: Dict[str, Any],
    ) -> Optional[str]:
        name = params.get("predicate") or rule.name
        predicate = self._predicates.get(name)
        if predicate is None:
            logger.warning(f"No custom predicate registered for rule {rule.name} ({name})")
            return None

        try:
            fired = predicate(context, params)
        except Exception as e:
            logger.error(f"Custom predicate {name} failed for rule {rule.name}: {e}")
            return None

        if not fired:
            return None
        return params.get("reason") or f"Custom rule {rule.name} triggered"

    def _record_event(self, rule: RiskRule, context: RuleEvaluationContext) -> None:
        """Write the risk event; a failing event log never changes the result."""
        try:
            self._store.record_event(self._build_event(rule, context))
        except Exception as e:
            logger.error(f"Failed to record risk event for rule {rule.name}: {e}")

    def _build_event(self, rule: RiskRule, context: RuleEvaluationContext) -> RiskEvent:
        trade = context.trade
        return RiskEvent(
            rule_name=rule.name,
            rule_set=rule.rule_set,
            action=rule.action,
            trade_id=trade.trade_id,
            context={
                "trade_id": trade.trade_id,
                "underlying": trade.underlying,
                "strategy": trade.strategy,
                "short_delta": context.portfolio.short_delta,
                "margin_usage": context.portfolio.margin_usage,
            },
            metadata={"condition_params": dict(rule.condition_params or {})},
            timestamp=self._clock.now(),
        )
