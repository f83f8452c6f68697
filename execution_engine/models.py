"""
Execution Engine - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for execution persistence.

TABLES:
- execution_events: Audit events (transitions, chase
  attempts, fills, brackets, timeouts)
- trade_records: Latest snapshot of each trade

AUDIT REQUIREMENTS:
- Every state change is logged
- Every fill and bracket is recorded

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


# ============================================================
# EXECUTION EVENT MODEL
# ============================================================

class ExecutionEventModel(Base):
    """
    Persisted audit event.

    Append-only.
    """

    __tablename__ = "execution_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    trade_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("ix_execution_events_trade_time", "trade_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ExecutionEvent {self.event_type} trade={self.trade_id}>"


# ============================================================
# TRADE RECORD MODEL
# ============================================================

class TradeRecordModel(Base):
    """
    Latest persisted state of a trade.

    Overwritten on every transition.
    """

    __tablename__ = "trade_records"

    trade_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    state: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    position_id: Mapped[Optional[str]] = mapped_column(String(64))
    trade_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<TradeRecord {self.trade_id} {self.state}>"
