"""
Decision Engine - Decision Log.

============================================================
PURPOSE
============================================================
Append-only audit log of every decision, keyed by signal id.

Two implementations share one interface:
- InMemoryDecisionLog: tests and dry runs
- SqlDecisionLog: trading_decisions table via SQLAlchemy

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database.engine import transaction_scope

from .models import TradingDecisionModel
from .types import Decision


logger = logging.getLogger(__name__)


class DecisionLog(ABC):
    """Append-only decision sink."""

    @abstractmethod
    def append(self, decision: Decision) -> None:
        """Persist one decision."""
        pass

    @abstractmethod
    def get_decisions(self, signal_id: str) -> List[Dict[str, Any]]:
        """All decisions recorded for a signal, oldest first."""
        pass


class InMemoryDecisionLog(DecisionLog):
    """Process-local decision log."""

    def __init__(self):
        self._records: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def append(self, decision: Decision) -> None:
        with self._lock:
            self._records.append(decision.to_dict())

    def get_decisions(self, signal_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [r for r in self._records if r["signal_id"] == signal_id]

    def __len__(self) -> int:
        return len(self._records)


class SqlDecisionLog(DecisionLog):
    """Decision log backed by the trading_decisions table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def append(self, decision: Decision) -> None:
        with transaction_scope(self._session_factory) as session:
            session.add(TradingDecisionModel(
                decision_id=decision.decision_id,
                signal_id=decision.signal_id,
                should_trade=decision.should_trade,
                reason=decision.reason,
                trade_spec=decision.trade_spec.to_dict() if decision.trade_spec else None,
                strategy_version=decision.strategy_version,
                decision_time=decision.decision_time,
            ))
        logger.debug(f"Decision {decision.decision_id} persisted for signal {decision.signal_id}")

    def get_decisions(self, signal_id: str) -> List[Dict[str, Any]]:
        with transaction_scope(self._session_factory) as session:
            rows = session.scalars(
                select(TradingDecisionModel)
                .where(TradingDecisionModel.signal_id == signal_id)
                .order_by(TradingDecisionModel.id)
            ).all()
            return [row.to_dict() for row in rows]
