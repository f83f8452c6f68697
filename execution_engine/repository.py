"""
Execution Engine - Repository.

============================================================
PURPOSE
============================================================
Database operations for execution persistence.

RESPONSIBILITIES:
- Append audit events
- Save/load trade snapshots
- Query execution history

CRITICAL REQUIREMENTS:
- All operations are transactional (transaction_scope)
- Persistence failures raise DatabasePersistenceError

============================================================
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database.engine import transaction_scope

from .audit import AuditEvent, json_safe
from .models import ExecutionEventModel, TradeRecordModel
from .types import Trade


logger = logging.getLogger(__name__)


# ============================================================
# EXECUTION REPOSITORY
# ============================================================

class ExecutionRepository:
    """
    Repository for execution data persistence.

    Each call runs in its own transaction.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # --------------------------------------------------------
    # EVENTS
    # --------------------------------------------------------

    def save_event(self, event: AuditEvent) -> None:
        """Persist an AuditEvent."""
        with transaction_scope(self._session_factory) as session:
            session.add(ExecutionEventModel(
                event_id=event.event_id,
                event_type=event.event_type.value,
                trade_id=event.trade_id,
                payload=dict(event.payload),
                timestamp=event.timestamp,
            ))

    def get_events(
        self,
        trade_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        stmt = select(ExecutionEventModel).order_by(ExecutionEventModel.id).limit(limit)
        if trade_id is not None:
            stmt = stmt.where(ExecutionEventModel.trade_id == trade_id)
        if event_type is not None:
            stmt = stmt.where(ExecutionEventModel.event_type == event_type)

        with transaction_scope(self._session_factory) as session:
            return [
                {
                    "event_id": row.event_id,
                    "event_type": row.event_type,
                    "trade_id": row.trade_id,
                    "payload": dict(row.payload or {}),
                    "timestamp": row.timestamp,
                }
                for row in session.scalars(stmt).all()
            ]

    # --------------------------------------------------------
    # TRADES
    # --------------------------------------------------------

    def save_trade(self, trade: Trade) -> None:
        """Insert or overwrite the trade snapshot."""
        with transaction_scope(self._session_factory) as session:
            session.merge(TradeRecordModel(
                trade_id=trade.trade_id,
                state=trade.state.value,
                order_id=trade.order_id,
                position_id=trade.position_id,
                trade_metadata=json_safe(trade.metadata),
                created_at=trade.created_at,
                updated_at=trade.updated_at,
            ))
        logger.debug(f"Trade record {trade.trade_id} saved ({trade.state.value})")

    def get_trade(self, trade_id: str) -> Optional[Dict[str, Any]]:
        with transaction_scope(self._session_factory) as session:
            row = session.get(TradeRecordModel, trade_id)
            if row is None:
                return None
            return {
                "trade_id": row.trade_id,
                "state": row.state,
                "order_id": row.order_id,
                "position_id": row.position_id,
                "metadata": dict(row.trade_metadata or {}),
                "created_at": row.created_at,
                "updated_at": row.updated_at,
            }

    def get_trades_by_state(self, state: str) -> List[str]:
        with transaction_scope(self._session_factory) as session:
            return list(session.scalars(
                select(TradeRecordModel.trade_id).where(TradeRecordModel.state == state)
            ).all())

