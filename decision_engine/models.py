"""
Decision Engine - ORM Models.

============================================================
TABLES
============================================================
- trading_decisions: append-only decision log keyed by signal

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


class TradingDecisionModel(Base):
    """Persisted decision record (approved or rejected)."""

    __tablename__ = "trading_decisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    decision_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    signal_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    should_trade: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    trade_spec: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    strategy_version: Mapped[Optional[str]] = mapped_column(String(32))
    decision_time: Mapped[datetime] = mapped_column(nullable=False, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision_id": self.decision_id,
            "signal_id": self.signal_id,
            "should_trade": self.should_trade,
            "reason": self.reason,
            "trade_spec": self.trade_spec,
            "decision_time": self.decision_time.isoformat() if self.decision_time else None,
            "strategy_version": self.strategy_version,
        }
