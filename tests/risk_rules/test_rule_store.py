"""
Rule Store, Seeding and YAML Loader Tests.
"""

from dataclasses import replace

import pytest

from risk_rules import (
    ConditionType,
    InMemoryRuleStore,
    RiskEvent,
    RiskRuleEngine,
    RuleAction,
    SqlRuleStore,
    condition_type_for,
    load_rules_from_yaml,
    seed_default_rules,
)

from tests.risk_rules.test_rule_engine import make_context


RULES_YAML = """
rules:
  - name: tight_delta
    condition: "short_delta > 40"
    action: block_trade
    params: {max_delta: 40}
    priority: 1
    rule_set: aggressive
  - name: late_exit
    condition: "time >= 11:30"
    action: close_trade
    params: {exit_time: "11:30"}
    rule_set: aggressive
  - name: parked
    condition: "margin_usage > 50"
    enabled: false
"""


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory):
    if request.param == "memory":
        return InMemoryRuleStore()
    return SqlRuleStore(session_factory)


# ============================================================
# STORE
# ============================================================

class TestRuleStore:
    """Behaviour shared by the in-memory and SQL stores."""

    def test_seed_is_idempotent(self, store):
        assert seed_default_rules(store) == 5
        assert seed_default_rules(store) == 0

        assert len(store.list_rules()) == 5
        assert [r.name for r in store.list_rules("moderate")] == [
            "moderate_delta_breach",
            "moderate_margin_limit",
        ]

    def test_rules_sorted_by_priority(self, store):
        seed_default_rules(store)

        priorities = [r.priority for r in store.list_rules("conservative")]

        assert priorities == [1, 2, 3]

    def test_enabled_only_filter(self, store):
        seed_default_rules(store)
        rule = store.get_rule("rule-2")
        store.save_rule(replace(rule, enabled=False))

        assert len(store.list_rules("conservative")) == 2
        assert len(store.list_rules("conservative", enabled_only=False)) == 3

    def test_find_rule(self, store):
        seed_default_rules(store)

        rule = store.find_rule("midday_exit", "conservative")

        assert rule.rule_id == "rule-2"
        assert rule.condition_type == ConditionType.TIME_EXIT
        assert rule.condition_params == {"exit_time": "12:00:00"}
        assert store.find_rule("midday_exit", "moderate") is None

    def test_events_by_trade(self, store):
        store.record_event(RiskEvent(
            rule_name="max_delta_breach",
            rule_set="conservative",
            action=RuleAction.BLOCK_TRADE,
            trade_id="trade-1",
            context={"short_delta": 70},
            metadata={"condition_params": {"max_delta": 65}},
        ))
        store.record_event(RiskEvent(
            rule_name="midday_exit",
            rule_set="conservative",
            action=RuleAction.CLOSE_TRADE,
            trade_id="trade-2",
        ))

        events = store.list_events("trade-1")

        assert len(events) == 1
        assert events[0].context == {"short_delta": 70}
        assert events[0].metadata == {"condition_params": {"max_delta": 65}}
        assert len(store.list_events()) == 2

    def test_engine_over_store(self, store):
        seed_default_rules(store)

        result = RiskRuleEngine(store).evaluate(make_context(margin_usage=95), "moderate")

        assert not result.passed
        assert result.blocking_reason == "Margin usage 95% exceeds max 90%"
        assert store.list_events("trade-1")[0].rule_name == "moderate_margin_limit"


# ============================================================
# YAML LOADER
# ============================================================

class TestYamlLoader:
    """Tests for load_rules_from_yaml."""

    @pytest.mark.parametrize("condition,expected", [
        ("short_delta > 65", ConditionType.DELTA_BREACH),
        ("time >= 12:00", ConditionType.TIME_EXIT),
        ("hours held > 3", ConditionType.TIME_EXIT),
        ("margin_usage > 80", ConditionType.PORTFOLIO_LIMIT),
        ("position_count > 4", ConditionType.PORTFOLIO_LIMIT),
        ("vix > 30", ConditionType.CUSTOM),
        ("", ConditionType.CUSTOM),
    ])
    def test_condition_type_for(self, condition, expected):
        assert condition_type_for(condition) == expected

    def test_load_rules(self, store, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(RULES_YAML)

        assert load_rules_from_yaml(store, path) == 3

        aggressive = store.list_rules("aggressive")
        assert [r.name for r in aggressive] == ["tight_delta", "late_exit"]
        assert aggressive[1].priority == 10
        assert aggressive[1].action == RuleAction.CLOSE_TRADE
        assert aggressive[0].condition_params["max_delta"] == 40

        parked = store.find_rule("parked", "default")
        assert parked is not None
        assert not parked.enabled
        assert parked.action == RuleAction.BLOCK_TRADE
        assert parked.condition_type == ConditionType.PORTFOLIO_LIMIT

    def test_reload_updates_in_place(self, store, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(RULES_YAML)
        load_rules_from_yaml(store, path)
        original = store.find_rule("tight_delta", "aggressive")

        path.write_text(RULES_YAML.replace("{max_delta: 40}", "{max_delta: 45}"))
        load_rules_from_yaml(store, path)

        updated = store.find_rule("tight_delta", "aggressive")
        assert updated.rule_id == original.rule_id
        assert updated.condition_params["max_delta"] == 45
        assert len(store.list_rules(enabled_only=False)) == 3

    def test_missing_file_loads_nothing(self, store, tmp_path):
        assert load_rules_from_yaml(store, tmp_path / "absent.yaml") == 0
        assert store.list_rules() == []
