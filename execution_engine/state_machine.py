"""
Execution Engine - Trade State Machine.

============================================================
PURPOSE
============================================================
Registry of trades with strict lifecycle transitions.

STATE MACHINE:

    PENDING ─────────► SUBMITTED ──────► WORKING
       │                  │  │             │
       │                  │  └──► FILLED ◄─┤
       │                  │         │      │
       ▼                  ▼         ▼      ▼
    CANCELLED          REJECTED  OCO_ATTACHED  CANCELLED / REJECTED
                                    │
                                    ▼
                                  CLOSED

    Every non-terminal state can transition to ERROR.
    FILLED may close directly (manual close before bracket).

INVARIANTS:
- Terminal states are final
- Every transition is recorded in the trade's history
- Event timestamps never decrease within a trade
- Listeners run after the mutation; their errors are logged

============================================================
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from core.clock import ClockProtocol, SystemClock
from core.exceptions import DuplicateTrade, InvalidStateTransition, TradeNotFound

from .types import StateTransitionEvent, Trade, TradeState


logger = logging.getLogger(__name__)


TransitionListener = Callable[[StateTransitionEvent], None]


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[TradeState, Set[TradeState]] = {
    TradeState.PENDING: {
        TradeState.SUBMITTED,
        TradeState.CANCELLED,
        TradeState.ERROR,
    },
    TradeState.SUBMITTED: {
        TradeState.WORKING,
        TradeState.FILLED,
        TradeState.REJECTED,
        TradeState.ERROR,
    },
    TradeState.WORKING: {
        TradeState.FILLED,
        TradeState.CANCELLED,
        TradeState.REJECTED,
        TradeState.ERROR,
    },
    TradeState.FILLED: {
        TradeState.OCO_ATTACHED,
        TradeState.CLOSED,
        TradeState.ERROR,
    },
    TradeState.OCO_ATTACHED: {
        TradeState.CLOSED,
        TradeState.ERROR,
    },
    # Terminal states - no transitions out
    TradeState.CLOSED: set(),
    TradeState.CANCELLED: set(),
    TradeState.REJECTED: set(),
    TradeState.ERROR: set(),
}


# ============================================================
# TRADE STATE MACHINE
# ============================================================

class TradeStateMachine:
    """
    Thread-safe trade registry and transition authority.

    Each trade has its own re-entrant lock; the registry lock
    only guards insertion and removal.
    """

    def __init__(self, clock: Optional[ClockProtocol] = None):
        self._clock = clock or SystemClock()
        self._trades: Dict[str, Trade] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._listeners: List[TransitionListener] = []

    # --------------------------------------------------------
    # PURE PREDICATES
    # --------------------------------------------------------

    @staticmethod
    def is_valid_transition(from_state: TradeState, to_state: TradeState) -> bool:
        return to_state in VALID_TRANSITIONS.get(from_state, set())

    @staticmethod
    def is_terminal_state(state: TradeState) -> bool:
        return state.is_terminal()

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def create_trade(
        self,
        trade_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Trade:
        """
        Register a new trade in PENDING.

        Raises:
            DuplicateTrade: If the ID is already registered
        """
        now = self._clock.now()
        with self._registry_lock:
            if trade_id in self._trades:
                raise DuplicateTrade(trade_id)
            trade = Trade(
                trade_id=trade_id,
                state=TradeState.PENDING,
                created_at=now,
                updated_at=now,
                metadata=dict(metadata or {}),
            )
            self._trades[trade_id] = trade
            self._locks[trade_id] = threading.RLock()

        logger.info(f"Trade {trade_id} created (PENDING)")
        return trade

    def transition_state(
        self,
        trade_id: str,
        new_state: TradeState,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Trade:
        """
        Move a trade to a new state.

        Metadata is merged into the trade; "order_id" and
        "position_id" keys also update the trade fields.

        Raises:
            TradeNotFound: Unknown trade ID
            InvalidStateTransition: Move not in VALID_TRANSITIONS
        """
        lock = self._lock_for(trade_id)
        with lock:
            trade = self._trades.get(trade_id)
            if trade is None:
                raise TradeNotFound(trade_id)

            current = trade.state
            if not self.is_valid_transition(current, new_state):
                raise InvalidStateTransition(
                    trade_id=trade_id,
                    from_state=current.value,
                    to_state=new_state.value,
                    valid_targets=[s.value for s in VALID_TRANSITIONS.get(current, set())],
                )

            event = StateTransitionEvent(
                trade_id=trade_id,
                from_state=current,
                to_state=new_state,
                timestamp=self._next_timestamp(trade),
                error=error,
                metadata=dict(metadata or {}),
            )

            trade.state = new_state
            trade.state_history.append(event)
            trade.updated_at = event.timestamp
            if metadata:
                trade.metadata.update(metadata)
                if metadata.get("order_id"):
                    trade.order_id = str(metadata["order_id"])
                if metadata.get("position_id"):
                    trade.position_id = str(metadata["position_id"])

            suffix = f" ({error})" if error else ""
            logger.info(f"Trade {trade_id}: {current.value} -> {new_state.value}{suffix}")

            self._notify(event)
            return trade

    def _next_timestamp(self, trade: Trade) -> datetime:
        now = self._clock.now()
        if trade.state_history and now < trade.state_history[-1].timestamp:
            return trade.state_history[-1].timestamp
        return now

    # --------------------------------------------------------
    # LISTENERS
    # --------------------------------------------------------

    def on_transition(self, listener: TransitionListener) -> Callable[[], None]:
        """
        Subscribe to transitions.

        Returns:
            Callable that unsubscribes the listener
        """
        with self._registry_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._registry_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: StateTransitionEvent) -> None:
        with self._registry_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"State listener error for trade {event.trade_id}: {e}")

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        return self._trades.get(trade_id)

    def get_all_trades(self) -> List[Trade]:
        with self._registry_lock:
            return list(self._trades.values())

    def get_trades_by_state(self, state: TradeState) -> List[Trade]:
        return [t for t in self.get_all_trades() if t.state == state]

    def get_state_history(self, trade_id: str) -> List[StateTransitionEvent]:
        trade = self._trades.get(trade_id)
        if trade is None:
            raise TradeNotFound(trade_id)
        with self._lock_for(trade_id):
            return list(trade.state_history)

    def update_trade_metadata(self, trade_id: str, metadata: Dict[str, Any]) -> Trade:
        """Merge metadata without a transition."""
        with self._lock_for(trade_id):
            trade = self._trades.get(trade_id)
            if trade is None:
                raise TradeNotFound(trade_id)
            trade.metadata.update(metadata)
            if metadata.get("order_id"):
                trade.order_id = str(metadata["order_id"])
            if metadata.get("position_id"):
                trade.position_id = str(metadata["position_id"])
            trade.updated_at = max(trade.updated_at, self._clock.now())
            return trade

    # --------------------------------------------------------
    # MAINTENANCE
    # --------------------------------------------------------

    def remove_trade(self, trade_id: str) -> bool:
        """Drop a trade from the registry (not a transition)."""
        with self._registry_lock:
            removed = self._trades.pop(trade_id, None)
            self._locks.pop(trade_id, None)
        if removed is not None:
            logger.info(f"Trade {trade_id} removed from registry")
        return removed is not None

    def clear_all_trades(self) -> None:
        with self._registry_lock:
            count = len(self._trades)
            self._trades.clear()
            self._locks.clear()
        logger.info(f"Cleared {count} trades from registry")

    def _lock_for(self, trade_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(trade_id)
            if lock is None:
                if trade_id not in self._trades:
                    raise TradeNotFound(trade_id)
                lock = self._locks[trade_id] = threading.RLock()
            return lock

    def __len__(self) -> int:
        return len(self._trades)
