"""
Chase Strategy Tests.
"""

import pytest

from execution_engine.chase_strategies import (
    CHASE_STRATEGIES,
    ChaseContext,
    aggressive_linear,
    base_step,
    cap_chase_price,
    compute_slippage,
    conservative_bounded,
    delta_weighted,
    get_chase_strategy,
    hybrid_time_delta,
    spread_adaptive,
    time_weighted,
)


def ctx(attempt=2, elapsed_ms=0, bid=1.00, ask=1.40, **kwargs):
    kwargs.setdefault("underlying", "SPX")
    return ChaseContext(attempt=attempt, elapsed_ms=elapsed_ms, bid=bid, ask=ask, **kwargs)


class TestChaseStrategies:
    """Tests for the pure pricing strategies."""

    def test_base_step(self):
        assert base_step("SPX") == 0.05
        assert base_step("ndx") == 0.05
        assert base_step("QQQ") == 0.01
        assert base_step(None) == 0.01

    def test_aggressive_linear(self):
        assert aggressive_linear(ctx()) == pytest.approx(1.10)
        assert aggressive_linear(ctx(attempt=3, underlying="QQQ")) == pytest.approx(1.03)

    def test_explicit_step_overrides_underlying(self):
        assert aggressive_linear(ctx(attempt=1, step_size=0.10)) == pytest.approx(1.10)

    def test_time_weighted(self):
        assert time_weighted(ctx(elapsed_ms=0)) == pytest.approx(1.00)
        assert time_weighted(ctx(elapsed_ms=15_000)) == pytest.approx(1.10)
        assert time_weighted(ctx(elapsed_ms=60_000)) == pytest.approx(1.20)

    def test_spread_adaptive(self):
        assert spread_adaptive(ctx()) == pytest.approx(1.15)
        assert spread_adaptive(ctx(ask=1.05)) == pytest.approx(1.10)

    def test_conservative_bounded_caps_at_mid(self):
        assert conservative_bounded(ctx()) == pytest.approx(1.10)
        assert conservative_bounded(ctx(attempt=10)) == pytest.approx(1.20)

    def test_delta_weighted_slows_deep_contracts(self):
        assert delta_weighted(ctx(delta=0.30)) == pytest.approx(1.10)
        assert delta_weighted(ctx(delta=-0.80)) == pytest.approx(1.05)

    def test_hybrid_time_delta(self):
        assert hybrid_time_delta(ctx()) == pytest.approx(1.10)
        assert hybrid_time_delta(ctx(elapsed_ms=30_000)) == pytest.approx(1.20)

    def test_registry(self):
        assert set(CHASE_STRATEGIES) == {
            "aggressive-linear",
            "time-weighted",
            "spread-adaptive",
            "conservative-bounded",
            "delta-weighted",
            "hybrid-time-delta",
        }
        assert get_chase_strategy("time-weighted") is time_weighted

    def test_unknown_strategy(self):
        with pytest.raises(KeyError, match="Available: aggressive-linear"):
            get_chase_strategy("yolo")

    def test_cap_and_slippage(self):
        assert cap_chase_price(1.80, 1.20, 0.50) == pytest.approx(1.70)
        assert cap_chase_price(1.30, 1.20, 0.50) == pytest.approx(1.30)
        assert compute_slippage(1.20, 1.35) == pytest.approx(0.15)
        assert compute_slippage(1.20, 1.10) == 0.0
