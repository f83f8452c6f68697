"""
Execution Engine - Order Registry.

============================================================
PURPOSE
============================================================
In-process bookkeeping shared by the execution service and
the supervisor:

- Client order IDs (idempotent submission)
- Bracket groups keyed by parent order ID, with a reverse
  index from child order ID

Thread-safe. Records older than the retention window are
dropped by cleanup().

============================================================
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

from .config import IdempotencyConfig
from .types import BracketGroup, OrderAck


logger = logging.getLogger(__name__)


# ============================================================
# CLIENT ORDER RECORDS
# ============================================================

class ClientOrderStatus(Enum):
    """Submission status of a client order ID."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class ClientOrderRecord:
    """Tracking record for one client order ID."""

    client_order_id: str
    status: ClientOrderStatus = ClientOrderStatus.PENDING
    broker_order_id: Optional[str] = None
    retry_count: int = 0
    ack: Optional[OrderAck] = None
    """Cached ack returned for repeated submits."""

    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================
# ORDER REGISTRY
# ============================================================

class OrderRegistry:
    """Client order and bracket bookkeeping."""

    def __init__(self, config: Optional[IdempotencyConfig] = None):
        self._config = config or IdempotencyConfig()
        self._client_orders: Dict[str, ClientOrderRecord] = {}
        self._brackets: Dict[str, BracketGroup] = {}
        self._child_index: Dict[str, str] = {}
        self._lock = threading.RLock()

    # --------------------------------------------------------
    # CLIENT ORDER IDS
    # --------------------------------------------------------

    def generate_client_order_id(self) -> str:
        return f"{self._config.client_order_id_prefix}{uuid.uuid4().hex[:16]}"

    def get_client_order(self, client_order_id: str) -> Optional[ClientOrderRecord]:
        with self._lock:
            return self._client_orders.get(client_order_id)

    def begin_submission(self, client_order_id: str) -> ClientOrderRecord:
        """
        Mark a client order ID as being submitted.

        A repeated call for an unconfirmed ID counts as a retry.
        """
        with self._lock:
            record = self._client_orders.get(client_order_id)
            if record is None:
                record = ClientOrderRecord(client_order_id=client_order_id)
                self._client_orders[client_order_id] = record
            else:
                record.retry_count += 1
            record.status = ClientOrderStatus.SUBMITTED
            record.updated_at = datetime.now(timezone.utc)
            return record

    def confirm(self, client_order_id: str, ack: OrderAck) -> None:
        with self._lock:
            record = self._client_orders.setdefault(
                client_order_id, ClientOrderRecord(client_order_id=client_order_id)
            )
            record.status = ClientOrderStatus.CONFIRMED
            record.broker_order_id = ack.order_id
            record.ack = ack
            record.updated_at = datetime.now(timezone.utc)

    def fail(self, client_order_id: str, error: str) -> None:
        with self._lock:
            record = self._client_orders.setdefault(
                client_order_id, ClientOrderRecord(client_order_id=client_order_id)
            )
            record.status = ClientOrderStatus.FAILED
            record.last_error = error
            record.updated_at = datetime.now(timezone.utc)

    # --------------------------------------------------------
    # BRACKETS
    # --------------------------------------------------------

    def register_bracket(self, group: BracketGroup) -> None:
        """Insert or replace the group for its parent order."""
        with self._lock:
            # legs may have been swapped in place, so drop by parent, not by the group's ids
            stale = [cid for cid, parent in self._child_index.items() if parent == group.parent_order_id]
            for child_id in stale:
                del self._child_index[child_id]
            self._brackets[group.parent_order_id] = group
            for child_id in group.child_order_ids:
                self._child_index[child_id] = group.parent_order_id

    def get_bracket(self, parent_order_id: str) -> Optional[BracketGroup]:
        with self._lock:
            return self._brackets.get(parent_order_id)

    def get_bracket_by_child(self, child_order_id: str) -> Optional[BracketGroup]:
        with self._lock:
            parent = self._child_index.get(child_order_id)
            return self._brackets.get(parent) if parent else None

    def get_bracket_for_trade(self, trade_id: str) -> Optional[BracketGroup]:
        with self._lock:
            for group in self._brackets.values():
                if group.trade_id == trade_id:
                    return group
        return None

    def remove_bracket(self, parent_order_id: str) -> Optional[BracketGroup]:
        with self._lock:
            group = self._brackets.pop(parent_order_id, None)
            if group is not None:
                for child_id in group.child_order_ids:
                    self._child_index.pop(child_id, None)
            return group

    def all_brackets(self) -> List[BracketGroup]:
        with self._lock:
            return list(self._brackets.values())

    # --------------------------------------------------------
    # MAINTENANCE
    # --------------------------------------------------------

    def cleanup(self, max_age: Optional[timedelta] = None) -> int:
        """
        Drop client order records older than max_age.

        Returns:
            Number of records removed
        """
        max_age = max_age or timedelta(hours=self._config.retention_hours)
        cutoff = datetime.now(timezone.utc) - max_age
        with self._lock:
            stale = [cid for cid, rec in self._client_orders.items() if rec.created_at < cutoff]
            for cid in stale:
                del self._client_orders[cid]
        if stale:
            logger.info(f"Order registry cleanup removed {len(stale)} client order records")
        return len(stale)
