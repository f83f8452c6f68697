"""
Risk Rule Engine Tests.

============================================================
PURPOSE
============================================================
Tests for prioritized rule evaluation:
1. Built-in conditions (delta, time, margin)
2. Custom predicates
3. Action semantics (block / close / alert / warn)
4. Risk event recording
5. Failure handling

============================================================
"""

from datetime import datetime, time
from unittest.mock import MagicMock

import pytest

from risk_management.portfolio_tracker import PortfolioSnapshot
from risk_rules import (
    ConditionType,
    CustomPredicateRegistry,
    InMemoryRuleStore,
    RiskRule,
    RiskRuleEngine,
    RuleAction,
    RuleEvaluationContext,
    TradeSnapshot,
    default_rules,
)


# ============================================================
# HELPERS
# ============================================================

def make_context(short_delta=0.0, margin_usage=0.0, evaluation_time=None, quantity=1):
    return RuleEvaluationContext(
        trade=TradeSnapshot(underlying="SPX", quantity=quantity, trade_id="trade-1"),
        portfolio=PortfolioSnapshot(
            underlying="SPX",
            short_delta=short_delta,
            margin_usage=margin_usage,
        ),
        evaluation_time=evaluation_time,
    )


def make_rule(rule_id, condition_type, action, params=None, priority=10, rule_set="test", **kwargs):
    return RiskRule(
        rule_id=rule_id,
        name=kwargs.pop("name", rule_id),
        rule_set=rule_set,
        condition_type=condition_type,
        action=action,
        condition_params=params or {},
        priority=priority,
        **kwargs,
    )


@pytest.fixture
def store():
    return InMemoryRuleStore(default_rules())


@pytest.fixture
def engine(store):
    return RiskRuleEngine(store)


# ============================================================
# BUILT-IN CONDITIONS
# ============================================================

class TestBuiltInConditions:
    """Tests for delta, time and margin conditions."""

    def test_clean_context_passes(self, engine):
        result = engine.evaluate(make_context(short_delta=30, margin_usage=20), "conservative")

        assert result.passed
        assert result.triggered_rules == []
        assert result.blocking_reason is None

    def test_delta_breach_blocks(self, engine):
        result = engine.evaluate(make_context(short_delta=70), "conservative")

        assert not result.passed
        assert result.blocking_reason == "Short delta 70 exceeds max 65"
        assert result.actions == [RuleAction.BLOCK_TRADE]

    def test_delta_uses_absolute_value(self, engine):
        result = engine.evaluate(make_context(short_delta=-66), "conservative")

        assert not result.passed

    def test_delta_at_threshold_passes(self, engine):
        assert engine.evaluate(make_context(short_delta=65), "conservative").passed

    def test_margin_limit_blocks(self, engine):
        result = engine.evaluate(make_context(margin_usage=85), "conservative")

        assert not result.passed
        assert result.blocking_reason == "Margin usage 85% exceeds max 80%"

    @pytest.mark.parametrize("evaluation_time", [
        "12:00",
        "12:00:00",
        "14:30",
        time(12, 0, 1),
        datetime(2025, 10, 31, 12, 5),
    ])
    def test_time_exit_closes(self, engine, evaluation_time):
        result = engine.evaluate(make_context(evaluation_time=evaluation_time), "conservative")

        assert result.passed
        assert result.should_close
        assert result.triggered_rules[0].reason == "Time exit reached (12:00:00)"

    @pytest.mark.parametrize("evaluation_time", [None, "11:59:59", time(9, 30)])
    def test_time_exit_not_reached(self, engine, evaluation_time):
        result = engine.evaluate(make_context(evaluation_time=evaluation_time), "conservative")

        assert result.passed
        assert not result.should_close

    def test_default_thresholds_when_params_missing(self):
        store = InMemoryRuleStore([
            make_rule("d", ConditionType.DELTA_BREACH, RuleAction.WARN),
            make_rule("m", ConditionType.PORTFOLIO_LIMIT, RuleAction.WARN),
        ])

        result = RiskRuleEngine(store).evaluate(make_context(short_delta=66, margin_usage=81))

        assert [t.rule_id for t in result.triggered_rules] == ["d", "m"]

    def test_time_rule_without_exit_time_never_triggers(self):
        store = InMemoryRuleStore([make_rule("t", ConditionType.TIME_EXIT, RuleAction.CLOSE_TRADE)])

        assert RiskRuleEngine(store).evaluate(make_context(evaluation_time="15:00")).triggered_rules == []


# ============================================================
# ACTIONS AND PRIORITY
# ============================================================

class TestActions:
    """Tests for action accumulation and ordering."""

    def test_block_stops_evaluation(self):
        store = InMemoryRuleStore([
            make_rule("late", ConditionType.PORTFOLIO_LIMIT, RuleAction.ALERT, {"max_margin_usage": 10}, priority=5),
            make_rule("first", ConditionType.DELTA_BREACH, RuleAction.BLOCK_TRADE, {"max_delta": 10}, priority=1),
        ])

        result = RiskRuleEngine(store).evaluate(make_context(short_delta=50, margin_usage=50))

        assert not result.passed
        assert [t.rule_id for t in result.triggered_rules] == ["first"]
        assert len(store.list_events()) == 1

    def test_non_blocking_actions_accumulate(self):
        store = InMemoryRuleStore([
            make_rule("a", ConditionType.DELTA_BREACH, RuleAction.ALERT, {"max_delta": 10}, priority=1),
            make_rule("w", ConditionType.PORTFOLIO_LIMIT, RuleAction.WARN, {"max_margin_usage": 10}, priority=2),
            make_rule("c", ConditionType.TIME_EXIT, RuleAction.CLOSE_TRADE, {"exit_time": "10:00"}, priority=3),
        ])

        result = RiskRuleEngine(store).evaluate(
            make_context(short_delta=50, margin_usage=50, evaluation_time="11:00")
        )

        assert result.passed
        assert result.actions == [RuleAction.ALERT, RuleAction.WARN, RuleAction.CLOSE_TRADE]
        assert result.should_close

    def test_moderate_set_alerts_instead_of_blocking(self, engine):
        result = engine.evaluate(make_context(short_delta=90), "moderate")

        assert result.passed
        assert result.actions == [RuleAction.ALERT]

    def test_disabled_rules_are_skipped(self):
        store = InMemoryRuleStore([
            make_rule("off", ConditionType.DELTA_BREACH, RuleAction.BLOCK_TRADE, {"max_delta": 1}, enabled=False),
        ])

        assert RiskRuleEngine(store).evaluate(make_context(short_delta=50)).passed

    def test_rule_set_filter(self, engine):
        # moderate has no time rule
        result = engine.evaluate(make_context(evaluation_time="13:00"), "moderate")

        assert result.triggered_rules == []

    def test_all_sets_when_no_filter(self, engine):
        result = engine.evaluate(make_context(short_delta=90))

        assert not result.passed
        assert result.triggered_rules[0].rule_name == "max_delta_breach"


# ============================================================
# RISK EVENTS
# ============================================================

class TestRiskEvents:
    """Tests for event recording."""

    def test_event_snapshot(self, store, engine):
        engine.evaluate(make_context(short_delta=70, margin_usage=12), "conservative")

        events = store.list_events("trade-1")
        assert len(events) == 1
        event = events[0]
        assert event.rule_name == "max_delta_breach"
        assert event.rule_set == "conservative"
        assert event.action == RuleAction.BLOCK_TRADE
        assert event.context == {
            "trade_id": "trade-1",
            "underlying": "SPX",
            "strategy": "Vertical",
            "short_delta": 70,
            "margin_usage": 12,
        }
        assert event.metadata == {"condition_params": {"max_delta": 65}}

    def test_events_recorded_for_non_blocking_actions(self, store, engine):
        engine.evaluate(make_context(evaluation_time="12:30"), "conservative")

        assert [e.action for e in store.list_events()] == [RuleAction.CLOSE_TRADE]


# ============================================================
# CUSTOM PREDICATES
# ============================================================

class TestCustomPredicates:
    """Tests for custom rules."""

    def test_registered_predicate_triggers(self):
        registry = CustomPredicateRegistry()

        @registry.register("max_quantity")
        def max_quantity(ctx, params):
            return ctx.trade.quantity > params["limit"]

        store = InMemoryRuleStore([
            make_rule(
                "q",
                ConditionType.CUSTOM,
                RuleAction.BLOCK_TRADE,
                {"predicate": "max_quantity", "limit": 5, "reason": "Too many contracts"},
            ),
        ])
        engine = RiskRuleEngine(store, predicates=registry)

        assert engine.evaluate(make_context(quantity=5)).passed
        result = engine.evaluate(make_context(quantity=6))
        assert not result.passed
        assert result.blocking_reason == "Too many contracts"

    def test_predicate_falls_back_to_rule_name(self):
        registry = CustomPredicateRegistry()
        registry.register("always", lambda ctx, params: True)
        store = InMemoryRuleStore([
            make_rule("c1", ConditionType.CUSTOM, RuleAction.WARN, name="always"),
        ])

        result = RiskRuleEngine(store, predicates=registry).evaluate(make_context())

        assert result.triggered_rules[0].reason == "Custom rule always triggered"

    def test_unregistered_predicate_does_not_trigger(self):
        store = InMemoryRuleStore([
            make_rule("c1", ConditionType.CUSTOM, RuleAction.BLOCK_TRADE, {"predicate": "missing"}),
        ])

        assert RiskRuleEngine(store).evaluate(make_context()).passed

    def test_failing_predicate_does_not_trigger(self):
        registry = CustomPredicateRegistry()

        def boom(ctx, params):
            raise RuntimeError("boom")

        registry.register("boom", boom)
        store = InMemoryRuleStore([
            make_rule("c1", ConditionType.CUSTOM, RuleAction.BLOCK_TRADE, {"predicate": "boom"}),
        ])

        assert RiskRuleEngine(store, predicates=registry).evaluate(make_context()).passed

    def test_registry_management(self):
        registry = CustomPredicateRegistry()
        registry.register("b", lambda c, p: True)
        registry.register("a", lambda c, p: False)

        assert registry.names() == ["a", "b"]
        assert registry.unregister("a")
        assert not registry.unregister("a")
        assert registry.get("a") is None


# ============================================================
# FAILURE HANDLING
# ============================================================

class TestFailureHandling:
    """evaluate() never raises."""

    def test_store_failure(self):
        store = MagicMock()
        store.list_rules.side_effect = RuntimeError("db down")

        result = RiskRuleEngine(store).evaluate(make_context())

        assert not result.passed
        assert result.blocking_reason == "Rule evaluation error: db down"

    def test_event_log_failure_does_not_block(self):
        store = MagicMock()
        store.list_rules.return_value = [
            make_rule("w", ConditionType.DELTA_BREACH, RuleAction.WARN, {"max_delta": 65}),
        ]
        store.record_event.side_effect = RuntimeError("audit db down")

        result = RiskRuleEngine(store).evaluate(make_context(short_delta=70))

        assert result.passed
        assert [t.rule_id for t in result.triggered_rules] == ["w"]
        assert result.blocking_reason is None
        store.record_event.assert_called_once()

    def test_event_log_failure_keeps_block_reason(self):
        store = MagicMock()
        store.list_rules.return_value = [
            make_rule("b", ConditionType.DELTA_BREACH, RuleAction.BLOCK_TRADE, {"max_delta": 65}),
        ]
        store.record_event.side_effect = RuntimeError("audit db down")

        result = RiskRuleEngine(store).evaluate(make_context(short_delta=70))

        assert not result.passed
        assert result.blocking_reason == "Short delta 70 exceeds max 65"

    def test_malformed_exit_time(self):
        store = InMemoryRuleStore([
            make_rule("t", ConditionType.TIME_EXIT, RuleAction.CLOSE_TRADE, {"exit_time": "noon"}),
        ])

        result = RiskRuleEngine(store).evaluate(make_context(evaluation_time="12:00"))

        assert not result.passed
        assert result.blocking_reason.startswith("Rule evaluation error:")
