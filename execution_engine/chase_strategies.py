"""
Execution Engine - Chase Strategies.

============================================================
PURPOSE
============================================================
Declarative price-walk strategies for the chase engine.

Every strategy is a pure function of a ChaseContext and
returns the next limit price. The engine still enforces
max steps and max slippage; strategies only shape the path.

STRATEGIES:
- aggressive-linear:     bid + step * attempt
- time-weighted:         bid + min(spread/2, mid-bid) * time fraction
- spread-adaptive:       linear, step scaled up on wide spreads
- conservative-bounded:  linear, capped at mid
- delta-weighted:        linear, step scaled down for high |delta|
- hybrid-time-delta:     step * delta weight * (1 + time weight), capped at mid

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


INDEX_UNDERLYINGS = {"SPX", "NDX", "RUT"}

INDEX_STEP = 0.05
EQUITY_STEP = 0.01

TIME_HORIZON_MS = 30_000
"""Elapsed time at which time-weighted strategies reach full weight."""


@dataclass(frozen=True)
class ChaseContext:
    """Inputs for one step."""

    attempt: int
    """1-based attempt number."""

    elapsed_ms: int
    bid: float
    ask: float
    step_size: Optional[float] = None
    """Overrides the underlying's base step."""

    delta: Optional[float] = None
    underlying: Optional[str] = None

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> float:
        return self.ask - self.bid


ChaseStrategy = Callable[[ChaseContext], float]


# ============================================================
# HELPERS
# ============================================================

def base_step(underlying: Optional[str]) -> float:
    """Tick-sized step: 0.05 for cash-settled indexes, 0.01 otherwise."""
    if underlying and underlying.upper() in INDEX_UNDERLYINGS:
        return INDEX_STEP
    return EQUITY_STEP


def _step(ctx: ChaseContext) -> float:
    return ctx.step_size if ctx.step_size is not None else base_step(ctx.underlying)


def _time_weight(ctx: ChaseContext) -> float:
    return min(max(ctx.elapsed_ms, 0) / TIME_HORIZON_MS, 1.0)


def _delta_weight(delta: Optional[float]) -> float:
    if delta is None:
        return 1.0
    magnitude = abs(delta)
    if magnitude > 0.7:
        return 0.5
    if magnitude > 0.5:
        return 0.75
    return 1.0


def cap_chase_price(price: float, initial_price: float, max_slippage: float) -> float:
    """Clamp a buy-side chase price to initial + max_slippage."""
    return round(min(price, initial_price + max_slippage), 2)


def compute_slippage(initial_price: float, final_price: float) -> float:
    """Price given up versus the initial limit (never negative)."""
    return round(max(0.0, final_price - initial_price), 2)


# ============================================================
# STRATEGIES
# ============================================================

def aggressive_linear(ctx: ChaseContext) -> float:
    return round(ctx.bid + _step(ctx) * ctx.attempt, 2)


def time_weighted(ctx: ChaseContext) -> float:
    reach = min(ctx.spread * 0.5, ctx.mid - ctx.bid)
    return round(ctx.bid + reach * _time_weight(ctx), 2)


def spread_adaptive(ctx: ChaseContext) -> float:
    multiplier = 1.0
    if ctx.spread > 0.25:
        multiplier = 1.5
    elif ctx.spread > 0.10:
        multiplier = 1.2
    return round(ctx.bid + _step(ctx) * multiplier * ctx.attempt, 2)


def conservative_bounded(ctx: ChaseContext) -> float:
    return round(min(ctx.bid + _step(ctx) * ctx.attempt, ctx.mid), 2)


def delta_weighted(ctx: ChaseContext) -> float:
    return round(ctx.bid + _step(ctx) * _delta_weight(ctx.delta) * ctx.attempt, 2)


def hybrid_time_delta(ctx: ChaseContext) -> float:
    step = _step(ctx) * _delta_weight(ctx.delta) * (1 + _time_weight(ctx))
    return round(min(ctx.bid + step * ctx.attempt, ctx.mid), 2)


CHASE_STRATEGIES: Dict[str, ChaseStrategy] = {
    "aggressive-linear": aggressive_linear,
    "time-weighted": time_weighted,
    "spread-adaptive": spread_adaptive,
    "conservative-bounded": conservative_bounded,
    "delta-weighted": delta_weighted,
    "hybrid-time-delta": hybrid_time_delta,
}


def get_chase_strategy(name: str) -> ChaseStrategy:
    """
    Look up a strategy by name.

    Raises:
        KeyError: Unknown strategy name
    """
    try:
        return CHASE_STRATEGIES[name]
    except KeyError:
        raise KeyError(
            f"Unknown chase strategy '{name}'. Available: {', '.join(sorted(CHASE_STRATEGIES))}"
        ) from None
