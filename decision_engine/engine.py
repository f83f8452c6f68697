"""
Decision Engine - Core.

============================================================
PURPOSE
============================================================
Approve or reject a trade signal against market and portfolio
snapshots, and emit a normalized TradeSpec on approval.

GATES (in order, first failure wins):
1. Market: mid must be positive, spread <= 5% of mid
2. Portfolio: |short delta| per underlying <= 100,
   buying power used <= 80%

CRITICAL:
- decide() NEVER raises; any error becomes a rejected decision
- Every decision is appended to the decision log
- A failing decision log never changes the decision

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from core.clock import ClockProtocol, SystemClock

from .repository import DecisionLog, InMemoryDecisionLog
from .types import (
    Decision,
    Direction,
    MarketContext,
    PortfolioContext,
    RuleBundle,
    TradeSignal,
    TradeSpec,
)


logger = logging.getLogger(__name__)


# ============================================================
# CONFIGURATION
# ============================================================

@dataclass
class DecisionConfig:
    """Gate thresholds."""

    max_spread_pct: float = 5.0
    """Maximum spread as percent of mid."""

    max_delta_per_underlying: float = 100.0
    """Maximum absolute aggregate short delta per underlying."""

    max_buying_power_pct: float = 80.0
    """Maximum buying power utilization."""

    default_target_delta: float = 30.0
    """Target delta when the signal carries none (x100 scale)."""

    default_account_id: str = "default-account"
    """Account used when the signal names none."""

    strategy_version: Optional[str] = "v1"
    """Version tag stamped on every decision."""


# ============================================================
# DECISION ENGINE
# ============================================================

class DecisionEngine:
    """
    Gatekeeper between signals and the risk rule engine.

    Usage:
        engine = DecisionEngine(decision_log=SqlDecisionLog(factory))
        decision = engine.decide(signal, market, portfolio)
        if decision.should_trade:
            spec = decision.trade_spec
    """

    def __init__(
        self,
        decision_log: Optional[DecisionLog] = None,
        config: Optional[DecisionConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._log = decision_log or InMemoryDecisionLog()
        self._config = config or DecisionConfig()
        self._clock = clock or SystemClock()

    @property
    def decision_log(self) -> DecisionLog:
        return self._log

    # --------------------------------------------------------
    # PUBLIC API
    # --------------------------------------------------------

    def decide(
        self,
        signal: TradeSignal,
        market: MarketContext,
        portfolio: PortfolioContext,
    ) -> Decision:
        """
        Evaluate a signal.

        Returns:
            Decision (never raises)
        """
        try:
            decision = self._evaluate(signal, market, portfolio)
        except Exception as e:
            logger.error(f"Decision error for signal {getattr(signal, 'signal_id', '?')}: {e}")
            decision = Decision(
                signal_id=getattr(signal, "signal_id", "unknown"),
                should_trade=False,
                reason=f"Decision error: {e}",
                decision_time=self._clock.now(),
                strategy_version=self._config.strategy_version,
            )

        self._persist(decision)
        return decision

    # --------------------------------------------------------
    # GATES
    # --------------------------------------------------------

    def _evaluate(
        self,
        signal: TradeSignal,
        market: MarketContext,
        portfolio: PortfolioContext,
    ) -> Decision:
        now = self._clock.now()

        approved, reason = self._check_market(market)
        if not approved:
            logger.info(f"Decision: signal {signal.signal_id} rejected (market): {reason}")
            return self._reject(signal, reason, now)

        approved, reason = self._check_portfolio(signal, portfolio)
        if not approved:
            logger.info(f"Decision: signal {signal.signal_id} rejected (portfolio): {reason}")
            return self._reject(signal, reason, now)

        spec = self._build_trade_spec(signal)
        logger.info(f"Decision: signal {signal.signal_id} approved for {spec.underlying}")
        return Decision(
            signal_id=signal.signal_id,
            should_trade=True,
            reason="All checks passed",
            trade_spec=spec,
            decision_time=now,
            strategy_version=self._config.strategy_version,
        )

    def _check_market(self, market: MarketContext) -> Tuple[bool, str]:
        # mid is checked first so the percentage below never divides by zero
        if market.mid <= 0:
            return False, "Invalid market data"

        spread_pct = market.spread / market.mid * 100
        if spread_pct > self._config.max_spread_pct:
            return False, (
                f"Spread too wide: {spread_pct:.2f}% > {self._config.max_spread_pct:g}%"
            )
        return True, "Market conditions acceptable"

    def _check_portfolio(
        self,
        signal: TradeSignal,
        portfolio: PortfolioContext,
    ) -> Tuple[bool, str]:
        exposure = portfolio.exposures.get(signal.underlying)
        limit = self._config.max_delta_per_underlying
        if exposure is not None and abs(exposure) > limit:
            return False, (
                f"Max delta exceeded for {signal.underlying}: {exposure:g} > {limit:g}"
            )

        bp_limit = self._config.max_buying_power_pct
        if portfolio.buying_power_used > bp_limit:
            return False, (
                f"Buying power limit exceeded: {portfolio.buying_power_used:.1f}% > {bp_limit:g}%"
            )
        return True, "Portfolio limits acceptable"

    # --------------------------------------------------------
    # TRADE SPEC
    # --------------------------------------------------------

    def _build_trade_spec(self, signal: TradeSignal) -> TradeSpec:
        metadata = signal.metadata or {}
        payload = signal.raw_payload or {}

        def pick(*keys: str, default: Any = None) -> Any:
            for source in (metadata, payload):
                for key in keys:
                    value = source.get(key)
                    if value:
                        return value
            return default

        bundle_raw = pick("rule_bundle", "ruleBundle")
        bundle = RuleBundle.from_dict(bundle_raw) if isinstance(bundle_raw, dict) else RuleBundle()

        return TradeSpec(
            underlying=signal.underlying,
            strategy=signal.strategy_type,
            direction=Direction(getattr(signal.direction, "value", signal.direction)),
            strikes=[float(s) for s in pick("strikes", default=[])],
            target_delta=float(pick("target_delta", "targetDelta", default=self._config.default_target_delta)),
            quantity=int(pick("quantity", default=1)),
            price=float(pick("price", default=0)),
            expiry=str(pick("expiry", default="")),
            account_id=str(pick("account_id", "accountId", default=self._config.default_account_id)),
            rule_bundle=bundle,
            strategy_version=self._config.strategy_version,
        )

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    def _reject(self, signal: TradeSignal, reason: str, now) -> Decision:
        return Decision(
            signal_id=signal.signal_id,
            should_trade=False,
            reason=reason,
            decision_time=now,
            strategy_version=self._config.strategy_version,
        )

    def _persist(self, decision: Decision) -> None:
        try:
            self._log.append(decision)
        except Exception as e:
            logger.error(f"Failed to persist decision {decision.decision_id}: {e}")
