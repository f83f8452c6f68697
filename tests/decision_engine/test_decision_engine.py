"""
Decision Engine Tests.

============================================================
PURPOSE
============================================================
Tests for signal approval:
1. Market gate
2. Portfolio gate
3. Trade spec normalization
4. Decision log (in-memory and SQL)
5. Never-raise guarantee

============================================================
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from core.clock import MockClock
from decision_engine import (
    DecisionConfig,
    DecisionEngine,
    Direction,
    InMemoryDecisionLog,
    MarketContext,
    PortfolioContext,
    SignalSource,
    SqlDecisionLog,
    TradeSignal,
    TradeSignalSchema,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def signal():
    return TradeSignal(
        signal_id="sig-1",
        source=SignalSource.DISCORD,
        underlying="SPX",
        strategy_type="Vertical",
        direction=Direction.CALL,
        metadata={
            "strikes": [6855, 6860],
            "price": 0.3,
            "quantity": 2,
            "targetDelta": 25,
            "ruleBundle": {"takeProfitPct": 40, "stopLossPct": 150},
        },
    )


@pytest.fixture
def market():
    return MarketContext.from_quote("SPX", bid=10.0, ask=10.2)


@pytest.fixture
def engine():
    return DecisionEngine(clock=MockClock(datetime(2025, 10, 31, 10, 30)))


# ============================================================
# MARKET GATE
# ============================================================

class TestMarketGate:
    """Tests for market condition checks."""

    def test_approves_tight_market(self, engine, signal, market):
        decision = engine.decide(signal, market, PortfolioContext())

        assert decision.should_trade
        assert decision.reason == "All checks passed"
        assert decision.trade_spec is not None

    def test_rejects_wide_spread(self, engine, signal):
        market = MarketContext.from_quote("SPX", bid=1.0, ask=1.2)

        decision = engine.decide(signal, market, PortfolioContext())

        assert not decision.should_trade
        assert decision.reason == "Spread too wide: 18.18% > 5%"
        assert decision.trade_spec is None

    def test_rejects_non_positive_mid(self, engine, signal):
        market = MarketContext.from_quote("SPX", bid=0.0, ask=0.0)

        decision = engine.decide(signal, market, PortfolioContext())

        assert not decision.should_trade
        assert decision.reason == "Invalid market data"

    def test_spread_exactly_at_limit_passes(self, engine, signal):
        market = MarketContext(symbol="SPX", bid=9.75, ask=10.25, mid=10.0, spread=0.5)

        assert engine.decide(signal, market, PortfolioContext()).should_trade


# ============================================================
# PORTFOLIO GATE
# ============================================================

class TestPortfolioGate:
    """Tests for exposure checks."""

    def test_rejects_delta_over_limit(self, engine, signal, market):
        portfolio = PortfolioContext(exposures={"SPX": -120})

        decision = engine.decide(signal, market, portfolio)

        assert not decision.should_trade
        assert decision.reason == "Max delta exceeded for SPX: -120 > 100"

    def test_delta_at_limit_passes(self, engine, signal, market):
        portfolio = PortfolioContext(exposures={"SPX": 100, "QQQ": 500})

        assert engine.decide(signal, market, portfolio).should_trade

    def test_rejects_buying_power(self, engine, signal, market):
        portfolio = PortfolioContext(buying_power_used=85)

        decision = engine.decide(signal, market, portfolio)

        assert not decision.should_trade
        assert decision.reason == "Buying power limit exceeded: 85.0% > 80%"

    def test_custom_limits(self, signal, market):
        engine = DecisionEngine(config=DecisionConfig(max_buying_power_pct=50))

        decision = engine.decide(signal, market, PortfolioContext(buying_power_used=60))

        assert not decision.should_trade


# ============================================================
# TRADE SPEC
# ============================================================

class TestTradeSpec:
    """Tests for trade spec normalization."""

    def test_spec_fields_from_metadata(self, engine, signal, market):
        spec = engine.decide(signal, market, PortfolioContext()).trade_spec

        assert spec.underlying == "SPX"
        assert spec.direction == Direction.CALL
        assert spec.strikes == [6855.0, 6860.0]
        assert spec.price == 0.3
        assert spec.quantity == 2
        assert spec.target_delta == 25
        assert spec.target_delta_fraction == 0.25
        assert spec.rule_bundle.take_profit_pct == 40
        assert spec.rule_bundle.stop_loss_pct == 150
        assert spec.strategy_version == "v1"

    def test_spec_defaults(self, engine, market):
        bare = TradeSignal(
            signal_id="sig-2",
            source=SignalSource.MANUAL,
            underlying="QQQ",
            strategy_type="Vertical",
            direction=Direction.PUT,
        )

        spec = engine.decide(bare, market, PortfolioContext()).trade_spec

        assert spec.target_delta == 30
        assert spec.quantity == 1
        assert spec.strikes == []
        assert spec.account_id == "default-account"
        assert spec.rule_bundle.take_profit_pct == 50
        assert spec.rule_bundle.stop_loss_pct == 100

    def test_fractional_target_delta_kept(self, engine, signal, market):
        signal.metadata["targetDelta"] = 0.2

        spec = engine.decide(signal, market, PortfolioContext()).trade_spec

        assert spec.target_delta_fraction == 0.2


# ============================================================
# DECISION LOG
# ============================================================

class TestDecisionLog:
    """Tests for decision persistence."""

    def test_every_decision_is_logged(self, signal, market):
        log = InMemoryDecisionLog()
        engine = DecisionEngine(decision_log=log)

        engine.decide(signal, market, PortfolioContext())
        engine.decide(signal, market, PortfolioContext(buying_power_used=99))

        records = log.get_decisions("sig-1")
        assert [r["should_trade"] for r in records] == [True, False]

    def test_failing_log_does_not_change_decision(self, signal, market):
        log = MagicMock()
        log.append.side_effect = RuntimeError("disk full")
        engine = DecisionEngine(decision_log=log)

        decision = engine.decide(signal, market, PortfolioContext())

        assert decision.should_trade
        log.append.assert_called_once()

    def test_sql_decision_log(self, session_factory, signal, market):
        log = SqlDecisionLog(session_factory)
        engine = DecisionEngine(decision_log=log)

        decision = engine.decide(signal, market, PortfolioContext())

        records = log.get_decisions("sig-1")
        assert len(records) == 1
        assert records[0]["decision_id"] == decision.decision_id
        assert records[0]["trade_spec"]["direction"] == "CALL"


# ============================================================
# NEVER RAISES
# ============================================================

class TestNeverRaises:
    """decide() converts internal errors into rejections."""

    def test_bad_direction_becomes_rejection(self, engine, market):
        bad = TradeSignal(
            signal_id="sig-3",
            source=SignalSource.MANUAL,
            underlying="SPX",
            strategy_type="Vertical",
            direction="SIDEWAYS",
        )

        decision = engine.decide(bad, market, PortfolioContext())

        assert not decision.should_trade
        assert decision.reason.startswith("Decision error:")
        assert decision.signal_id == "sig-3"

    def test_malformed_market_becomes_rejection(self, engine, signal):
        decision = engine.decide(signal, None, PortfolioContext())

        assert not decision.should_trade
        assert decision.reason.startswith("Decision error:")


# ============================================================
# SCHEMA
# ============================================================

class TestTradeSignalSchema:
    """Tests for the inbound pydantic schema."""

    def test_normalizes_fields(self):
        signal = TradeSignalSchema(underlying=" spx ", direction="p").to_signal()

        assert signal.underlying == "SPX"
        assert signal.direction == Direction.PUT
        assert signal.source == SignalSource.MANUAL
        assert signal.signal_id.startswith("signal-")

    def test_rejects_unknown_direction(self):
        with pytest.raises(ValidationError):
            TradeSignalSchema(underlying="SPX", direction="SIDEWAYS")

    def test_rejects_empty_underlying(self):
        with pytest.raises(ValidationError):
            TradeSignalSchema(underlying="", direction="CALL")
