"""
Decision Engine - Types.

============================================================
PURPOSE
============================================================
Inputs and outputs of the trade decision:

- TradeSignal: a proposed trade from an alert, preset or manual entry
- MarketContext / PortfolioContext: read-only snapshots
- TradeSpec: normalized trade produced by an approval
- Decision: approve/reject result, always persisted

============================================================
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# ENUMS
# ============================================================

class SignalSource(Enum):
    """Where a signal came from."""

    DISCORD = "discord"
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class Direction(Enum):
    """Spread direction (right of the short leg)."""

    CALL = "CALL"
    PUT = "PUT"


# ============================================================
# SIGNAL
# ============================================================

@dataclass
class TradeSignal:
    """A proposed trade awaiting a decision."""

    signal_id: str
    """Unique signal ID."""

    source: SignalSource
    """Origin of the signal."""

    underlying: str
    """Underlying symbol."""

    strategy_type: str
    """Strategy kind (e.g. Vertical)."""

    direction: Direction
    """CALL or PUT."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When the signal was received."""

    raw_payload: Dict[str, Any] = field(default_factory=dict)
    """Unparsed payload (alert text, webhook body)."""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Parsed trade parameters (strikes, price, quantity, ...)."""


# ============================================================
# CONTEXTS
# ============================================================

@dataclass(frozen=True)
class MarketContext:
    """Quote snapshot for the underlying."""

    symbol: str
    bid: float
    ask: float
    mid: float
    spread: float
    delta: Optional[float] = None
    iv: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_quote(cls, symbol: str, bid: float, ask: float, **kwargs) -> "MarketContext":
        """Build from bid/ask, deriving mid and spread."""
        return cls(
            symbol=symbol,
            bid=bid,
            ask=ask,
            mid=(bid + ask) / 2,
            spread=ask - bid,
            **kwargs,
        )


@dataclass(frozen=True)
class PortfolioContext:
    """Aggregate exposure snapshot."""

    exposures: Dict[str, float] = field(default_factory=dict)
    """Aggregate short delta per underlying."""

    buying_power_used: float = 0.0
    """Buying power utilization (percent)."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================
# TRADE SPEC
# ============================================================

@dataclass(frozen=True)
class RuleBundle:
    """Exit rules attached to a trade."""

    take_profit_pct: float = 50.0
    stop_loss_pct: float = 100.0
    time_exit: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleBundle":
        """Accepts snake_case or camelCase keys."""
        return cls(
            take_profit_pct=float(data.get("take_profit_pct", data.get("takeProfitPct", 50.0))),
            stop_loss_pct=float(data.get("stop_loss_pct", data.get("stopLossPct", 100.0))),
            time_exit=data.get("time_exit", data.get("timeExit")),
        )


@dataclass(frozen=True)
class TradeSpec:
    """
    Normalized trade produced by an approved decision.

    Read-only downstream.
    """

    underlying: str
    strategy: str
    direction: Direction
    strikes: List[float]
    target_delta: float
    quantity: int
    price: float
    expiry: str
    account_id: str
    rule_bundle: RuleBundle = field(default_factory=RuleBundle)
    strategy_version: Optional[str] = None

    @property
    def target_delta_fraction(self) -> float:
        """Target delta on the 0-1 scale (signals may use 30 for 0.30)."""
        return self.target_delta / 100 if abs(self.target_delta) > 1 else self.target_delta

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data


# ============================================================
# DECISION
# ============================================================

@dataclass
class Decision:
    """Approve/reject result for one signal."""

    signal_id: str
    should_trade: bool
    reason: str
    trade_spec: Optional[TradeSpec] = None
    decision_id: str = field(default_factory=lambda: f"decision-{uuid.uuid4().hex[:12]}")
    decision_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    strategy_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision_id": self.decision_id,
            "signal_id": self.signal_id,
            "should_trade": self.should_trade,
            "reason": self.reason,
            "trade_spec": self.trade_spec.to_dict() if self.trade_spec else None,
            "decision_time": self.decision_time.isoformat(),
            "strategy_version": self.strategy_version,
        }
