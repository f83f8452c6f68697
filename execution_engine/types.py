"""
Execution Engine - Types.

============================================================
PURPOSE
============================================================
All type definitions for the Execution Engine:

- Trade lifecycle (TradeState, Trade, StateTransitionEvent)
- Broker order contract (legs, requests, acks, statuses)
- Chase, fill and bracket results
- Orchestration outcome

CRITICAL PRINCIPLE:
    "Execution Engine is REACTIVE, not decision-making."
    "It executes only after the decision engine and the risk
     rules have approved the trade."

============================================================
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# TRADE LIFECYCLE
# ============================================================

class TradeState(Enum):
    """
    Trade lifecycle state.

    State Machine:

    PENDING ──► SUBMITTED ──► WORKING ──► FILLED ──► OCO_ATTACHED
       │            │            │           │             │
       │            ├──► FILLED  │           └──► CLOSED ◄─┘
       ▼            ▼            ▼
    CANCELLED    REJECTED     CANCELLED / REJECTED

    Any non-terminal state can transition to ERROR.
    """

    PENDING = "PENDING"
    """Created, entry not yet submitted."""

    SUBMITTED = "SUBMITTED"
    """Entry accepted by the broker."""

    WORKING = "WORKING"
    """Entry resting at the broker."""

    FILLED = "FILLED"
    """Entry filled, bracket not yet attached."""

    OCO_ATTACHED = "OCO_ATTACHED"
    """Take-profit / stop-loss bracket is live."""

    # Terminal states
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    ERROR = "ERROR"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {
            TradeState.CLOSED,
            TradeState.CANCELLED,
            TradeState.REJECTED,
            TradeState.ERROR,
        }

    def is_open(self) -> bool:
        """Check if the trade holds a position."""
        return self in {TradeState.FILLED, TradeState.OCO_ATTACHED}


@dataclass(frozen=True)
class StateTransitionEvent:
    """Event representing a trade state transition."""

    trade_id: str
    """Trade ID."""

    from_state: TradeState
    """Previous state."""

    to_state: TradeState
    """New state."""

    timestamp: datetime = field(default_factory=_utcnow)
    """When transition occurred."""

    error: Optional[str] = None
    """Error message for ERROR/REJECTED transitions."""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""


@dataclass
class Trade:
    """A trade tracked by the state machine."""

    trade_id: str
    """Unique trade ID."""

    state: TradeState = TradeState.PENDING
    """Current state."""

    state_history: List[StateTransitionEvent] = field(default_factory=list)
    """All transitions, oldest first."""

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    order_id: Optional[str] = None
    """Current entry order ID (changes when chased)."""

    position_id: Optional[str] = None
    """Broker position ID, once filled."""

    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "state": self.state.value,
            "order_id": self.order_id,
            "position_id": self.position_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "metadata": dict(self.metadata),
            "transitions": len(self.state_history),
        }


# ============================================================
# ORDER TYPES
# ============================================================

class OrderAction(Enum):
    """Option order leg action."""

    BUY_TO_OPEN = "Buy to Open"
    SELL_TO_OPEN = "Sell to Open"
    BUY_TO_CLOSE = "Buy to Close"
    SELL_TO_CLOSE = "Sell to Close"

    def is_opening(self) -> bool:
        return self in {OrderAction.BUY_TO_OPEN, OrderAction.SELL_TO_OPEN}


class OrderType(Enum):
    """Order type."""

    LIMIT = "Limit"
    """Execute at specified price or better."""

    STOP = "Stop"
    """Market order triggered at stop price."""

    STOP_LIMIT = "Stop Limit"
    """Limit order triggered at stop price."""

    MARKET = "Market"
    """Execute at current market price."""


class TimeInForce(Enum):
    """Time in force for orders."""

    DAY = "Day"
    GTC = "GTC"


class PriceEffect(Enum):
    """Whether the order pays or receives premium."""

    CREDIT = "Credit"
    DEBIT = "Debit"


class OrderStatus(Enum):
    """Normalized broker order status."""

    PENDING = "PENDING"
    WORKING = "WORKING"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"

    def is_terminal(self) -> bool:
        return self in {OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED}

    def is_live(self) -> bool:
        return self in {OrderStatus.PENDING, OrderStatus.WORKING}


@dataclass(frozen=True)
class OrderLeg:
    """One leg of a (possibly multi-leg) order."""

    symbol: str
    """OCC / broker option symbol."""

    quantity: int
    action: OrderAction
    instrument_type: str = "Equity Option"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "quantity": self.quantity,
            "action": self.action.value,
            "instrument_type": self.instrument_type,
        }


@dataclass
class OrderRequest:
    """Order as sent to the broker."""

    account_id: str
    legs: List[OrderLeg]
    order_type: OrderType = OrderType.LIMIT
    time_in_force: TimeInForce = TimeInForce.DAY
    price: Optional[float] = None
    """Limit price (None for MARKET/STOP)."""

    stop_trigger: Optional[float] = None
    """Trigger price for STOP/STOP_LIMIT."""

    price_effect: PriceEffect = PriceEffect.DEBIT
    client_order_id: Optional[str] = None
    """Idempotency key."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "order_type": self.order_type.value,
            "time_in_force": self.time_in_force.value,
            "price": self.price,
            "stop_trigger": self.stop_trigger,
            "price_effect": self.price_effect.value,
            "client_order_id": self.client_order_id,
            "legs": [leg.to_dict() for leg in self.legs],
        }


@dataclass(frozen=True)
class OrderAck:
    """Broker acknowledgement of a submit or replace."""

    order_id: str
    status: OrderStatus
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BrokerOrder:
    """Current broker view of an order."""

    order_id: str
    status: OrderStatus
    fill_price: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CancelResult:
    """Cancel outcome (cancels never raise)."""

    success: bool
    error: Optional[str] = None


# ============================================================
# CHASE
# ============================================================

class ChaseDirection(Enum):
    """UP walks the price up (buying), DOWN walks it down (selling)."""

    UP = "UP"
    DOWN = "DOWN"

    @property
    def sign(self) -> int:
        return 1 if self == ChaseDirection.UP else -1


class ChaseAbortReason(Enum):
    """Why a chase stopped without a fill."""

    MAX_STEPS = "MAX_STEPS"
    MAX_SLIPPAGE = "MAX_SLIPPAGE"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    STOPPED = "STOPPED"


@dataclass(frozen=True)
class ChaseAttempt:
    """One price step of a chase."""

    attempt: int
    elapsed_ms: int
    price: float
    order_id: str
    market: Dict[str, Any] = field(default_factory=dict)
    """Quote snapshot used for the step, if any."""


@dataclass
class ChaseResult:
    """Outcome of a chase loop."""

    filled: bool
    order_id: str
    """Last order ID (replacements may change it)."""

    final_price: float
    fill_price: Optional[float] = None
    attempts: List[ChaseAttempt] = field(default_factory=list)
    abort_reason: Optional[ChaseAbortReason] = None


# ============================================================
# FILL MONITORING
# ============================================================

class FillStatus(Enum):
    """How fill supervision ended."""

    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    TIMEOUT = "TIMEOUT"
    STOPPED = "STOPPED"


# ============================================================
# BRACKETS
# ============================================================

@dataclass
class BracketLeg:
    """One child of a bracket."""

    order_id: Optional[str]
    """None when submission failed."""

    price: float
    status: OrderStatus = OrderStatus.PENDING
    error: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.order_id is not None and self.status.is_live()


@dataclass
class BracketGroup:
    """
    Take-profit / stop-loss pair attached to a filled entry.

    Either child may be None only while the bracket is being
    repaired; a group registered with both children missing
    never reaches OCO_ATTACHED.
    """

    parent_order_id: str
    trade_id: str
    account_id: str
    entry_price: float
    tp_pct: float
    sl_pct: float
    entry_legs: List[OrderLeg] = field(default_factory=list)
    take_profit: Optional[BracketLeg] = None
    stop_loss: Optional[BracketLeg] = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def child_order_ids(self) -> List[str]:
        return [
            leg.order_id
            for leg in (self.take_profit, self.stop_loss)
            if leg is not None and leg.order_id
        ]

    @property
    def is_complete(self) -> bool:
        return bool(
            self.take_profit and self.take_profit.order_id
            and self.stop_loss and self.stop_loss.order_id
        )

    def to_dict(self) -> Dict[str, Any]:
        def leg(value: Optional[BracketLeg]) -> Optional[Dict[str, Any]]:
            if value is None:
                return None
            return {
                "order_id": value.order_id,
                "price": value.price,
                "status": value.status.value,
                "error": value.error,
            }

        return {
            "parent_order_id": self.parent_order_id,
            "trade_id": self.trade_id,
            "account_id": self.account_id,
            "entry_price": self.entry_price,
            "tp_pct": self.tp_pct,
            "sl_pct": self.sl_pct,
            "take_profit": leg(self.take_profit),
            "stop_loss": leg(self.stop_loss),
        }


@dataclass
class FillOutcome:
    """Result of fill supervision."""

    status: FillStatus
    order_id: str
    fill_price: Optional[float] = None
    polls: int = 0
    bracket: Optional[BracketGroup] = None


# ============================================================
# ORCHESTRATION
# ============================================================

class ExecutionStatus(Enum):
    """End state of one orchestrated execution."""

    REJECTED_BY_DECISION = "REJECTED_BY_DECISION"
    REJECTED_BY_RULES = "REJECTED_BY_RULES"
    NO_CONTRACT = "NO_CONTRACT"
    REJECTED_BY_THRESHOLDS = "REJECTED_BY_THRESHOLDS"
    FAILED = "FAILED"
    CHASE_ABORTED = "CHASE_ABORTED"
    NOT_FILLED = "NOT_FILLED"
    FILLED = "FILLED"


@dataclass
class ExecutionOutcome:
    """Everything one pass through the pipeline produced."""

    status: ExecutionStatus
    trade_id: Optional[str] = None
    reason: Optional[str] = None
    decision: Optional[Any] = None
    rule_result: Optional[Any] = None
    legs: Optional[Any] = None
    entry_order_id: Optional[str] = None
    chase: Optional[ChaseResult] = None
    fill: Optional[FillOutcome] = None
    error: Optional[Exception] = None
    execution_id: str = field(default_factory=lambda: f"exec-{uuid.uuid4().hex[:12]}")

    @property
    def filled(self) -> bool:
        return self.status == ExecutionStatus.FILLED
