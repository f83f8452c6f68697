"""
Execution Engine - Broker Adapter Base.

============================================================
PURPOSE
============================================================
Abstract interface for options broker adapters.

DESIGN PRINCIPLES:
- Broker-agnostic interface
- Clean separation from execution logic
- Fully testable with mock adapters

Adapters raise BrokerError (with a code and retryable flag)
for any failed call; they never return error objects.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..types import BrokerOrder, OrderAck, OrderRequest, OrderStatus


logger = logging.getLogger(__name__)


# ============================================================
# STATUS MAPPING
# ============================================================

_STATUS_MAPPING: Dict[str, OrderStatus] = {
    "pending": OrderStatus.PENDING,
    "received": OrderStatus.PENDING,
    "routed": OrderStatus.PENDING,
    "contingent": OrderStatus.PENDING,
    "working": OrderStatus.WORKING,
    "live": OrderStatus.WORKING,
    "open": OrderStatus.WORKING,
    "filled": OrderStatus.FILLED,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
    "closed": OrderStatus.CANCELLED,
    "expired": OrderStatus.CANCELLED,
    "cancel requested": OrderStatus.CANCELLED,
    "rejected": OrderStatus.REJECTED,
    "error": OrderStatus.REJECTED,
}


def map_order_status(status: Any) -> OrderStatus:
    """
    Map a broker status string to OrderStatus.

    Matching is case-insensitive; underscores and dashes count
    as spaces. Unknown statuses map to PENDING.
    """
    if isinstance(status, OrderStatus):
        return status
    if not status:
        return OrderStatus.PENDING

    key = str(status).strip().lower().replace("_", " ").replace("-", " ")
    mapped = _STATUS_MAPPING.get(key)
    if mapped is None:
        logger.warning(f"Unknown order status: {status}")
        return OrderStatus.PENDING
    return mapped


# ============================================================
# ABSTRACT BROKER ADAPTER
# ============================================================

class BrokerAdapter(ABC):
    """
    Abstract interface for broker adapters.

    Implementations:
    - MockBrokerAdapter: For testing and dry runs
    """

    @property
    @abstractmethod
    def broker_id(self) -> str:
        """Get broker identifier."""
        pass

    # --------------------------------------------------------
    # ORDER OPERATIONS
    # --------------------------------------------------------

    @abstractmethod
    async def submit_order(self, request: OrderRequest) -> OrderAck:
        """
        Submit an order.

        Raises:
            BrokerError: If submission fails
        """
        pass

    @abstractmethod
    async def cancel_order(self, account_id: str, order_id: str) -> None:
        """
        Cancel an order.

        Raises:
            BrokerError: If cancellation fails
        """
        pass

    @abstractmethod
    async def replace_order(
        self,
        account_id: str,
        order_id: str,
        request: OrderRequest,
    ) -> OrderAck:
        """
        Replace a working order.

        The returned ack may carry a new order ID.

        Raises:
            BrokerError: If replacement fails
        """
        pass

    @abstractmethod
    async def get_order(self, account_id: str, order_id: str) -> BrokerOrder:
        """
        Get current order status.

        Raises:
            BrokerError: If the query fails
        """
        pass

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    @abstractmethod
    async def get_option_chain(self, symbol: str, expiration: str) -> Any:
        """
        Get the raw option chain payload for one expiration.

        Normalization happens in options.chain.
        """
        pass

    async def get_quote(self, symbol: str) -> Optional[Dict[str, Any]]:
        """
        Get a quote ({"bid", "ask", "mid", "delta"}) for a symbol.

        Optional; adapters without quotes return None.
        """
        return None
