"""
Execution Engine - Mock Broker Adapter.

============================================================
PURPOSE
============================================================
Mock broker for testing and dry runs.

FEATURES:
- Configurable latency
- Scripted order statuses and fill-after-N-polls
- Error injection (retryable or not) for submits and cancels
- Full call recording

============================================================
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import BrokerError

from ..types import BrokerOrder, OrderAck, OrderRequest, OrderStatus
from .base import BrokerAdapter


logger = logging.getLogger(__name__)


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for mock adapter."""

    latency_ms: float = 0.0
    """Simulated latency per call."""

    ack_status: OrderStatus = OrderStatus.WORKING
    """Status returned on submit/replace."""

    fill_after_polls: Optional[int] = None
    """Order reports FILLED on the Nth get_order (None: never)."""

    fill_on_replace: Optional[int] = None
    """The Nth replacement comes back FILLED (None: never)."""

    fill_price: Optional[float] = None
    """Fill price reported (defaults to the order's limit price)."""

    cancel_fails: bool = False
    """Whether cancel_order raises."""

    chains: Dict[str, Any] = field(default_factory=dict)
    """Raw chain payloads keyed by "SYMBOL:EXPIRATION"."""

    quotes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    """Quotes keyed by symbol."""


# ============================================================
# MOCK ORDER
# ============================================================

@dataclass
class MockOrder:
    """Mock order state."""

    order_id: str
    request: OrderRequest
    status: OrderStatus
    polls: int = 0
    fill_price: Optional[float] = None
    scripted: List[Tuple[OrderStatus, Optional[float]]] = field(default_factory=list)


# ============================================================
# MOCK BROKER ADAPTER
# ============================================================

class MockBrokerAdapter(BrokerAdapter):
    """
    Mock broker adapter for testing.

    Usage:
        broker = MockBrokerAdapter(MockConfig(fill_after_polls=2))
        broker.fail_next_submit(BrokerError("busy", code="RATE_LIMITED", is_retryable=True))
        ack = await broker.submit_order(request)
    """

    def __init__(self, config: Optional[MockConfig] = None):
        self._config = config or MockConfig()
        self._orders: Dict[str, MockOrder] = {}
        self._ids = itertools.count(1)
        self._replacements = 0
        self._submit_errors: List[Exception] = []
        self._replace_errors: List[Exception] = []
        self._chain_error: Optional[Exception] = None

        # Recorded calls
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.submitted: List[OrderRequest] = []
        self.cancelled: List[str] = []
        self.replaced: List[Tuple[str, OrderRequest]] = []

    @property
    def broker_id(self) -> str:
        return "mock"

    @property
    def config(self) -> MockConfig:
        return self._config

    # --------------------------------------------------------
    # SCRIPTING
    # --------------------------------------------------------

    def fail_next_submit(self, error: Exception, times: int = 1) -> None:
        """Queue errors for the next submit_order calls."""
        self._submit_errors.extend([error] * times)

    def fail_next_replace(self, error: Exception, times: int = 1) -> None:
        self._replace_errors.extend([error] * times)

    def fail_chain(self, error: Exception) -> None:
        self._chain_error = error

    def script_statuses(
        self,
        order_id: str,
        statuses: List[OrderStatus],
        fill_price: Optional[float] = None,
    ) -> None:
        """
        Script the statuses get_order returns, one per poll.

        The last scripted status repeats once the script runs out.
        """
        order = self._require(order_id)
        order.scripted = [(s, fill_price if s == OrderStatus.FILLED else None) for s in statuses]

    def set_status(
        self,
        order_id: str,
        status: OrderStatus,
        fill_price: Optional[float] = None,
    ) -> None:
        order = self._require(order_id)
        order.status = status
        order.scripted = []
        if fill_price is not None:
            order.fill_price = fill_price

    def get_mock_order(self, order_id: str) -> Optional[MockOrder]:
        return self._orders.get(order_id)

    def calls_named(self, name: str) -> List[Dict[str, Any]]:
        return [args for call, args in self.calls if call == name]

    # --------------------------------------------------------
    # ORDER OPERATIONS
    # --------------------------------------------------------

    async def submit_order(self, request: OrderRequest) -> OrderAck:
        await self._simulate_latency()
        self.calls.append(("submit_order", {"request": request}))

        if self._submit_errors:
            raise self._submit_errors.pop(0)

        order = self._new_order(request, self._config.ack_status)
        self.submitted.append(request)
        logger.debug(f"Mock order {order.order_id} submitted ({request.order_type.value} @ {request.price})")
        return OrderAck(order_id=order.order_id, status=order.status, raw={"id": order.order_id})

    async def cancel_order(self, account_id: str, order_id: str) -> None:
        await self._simulate_latency()
        self.calls.append(("cancel_order", {"account_id": account_id, "order_id": order_id}))

        if self._config.cancel_fails:
            raise BrokerError(f"Cancel failed for {order_id}", code="SERVICE_UNAVAILABLE", is_retryable=True)

        order = self._orders.get(order_id)
        if order is None:
            raise BrokerError(f"Order not found: {order_id}", code="ORDER_NOT_FOUND")
        order.status = OrderStatus.CANCELLED
        order.scripted = []
        self.cancelled.append(order_id)

    async def replace_order(
        self,
        account_id: str,
        order_id: str,
        request: OrderRequest,
    ) -> OrderAck:
        await self._simulate_latency()
        self.calls.append(("replace_order", {"account_id": account_id, "order_id": order_id, "request": request}))

        if self._replace_errors:
            raise self._replace_errors.pop(0)

        old = self._orders.get(order_id)
        if old is None:
            raise BrokerError(f"Order not found: {order_id}", code="ORDER_NOT_FOUND")
        old.status = OrderStatus.CANCELLED
        old.scripted = []

        self._replacements += 1
        status = self._config.ack_status
        if self._config.fill_on_replace is not None and self._replacements >= self._config.fill_on_replace:
            status = OrderStatus.FILLED

        order = self._new_order(request, status)
        if status == OrderStatus.FILLED:
            order.fill_price = self._config.fill_price if self._config.fill_price is not None else request.price
        self.replaced.append((order_id, request))
        return OrderAck(order_id=order.order_id, status=status, raw={"id": order.order_id, "replaces": order_id})

    async def get_order(self, account_id: str, order_id: str) -> BrokerOrder:
        await self._simulate_latency()
        self.calls.append(("get_order", {"account_id": account_id, "order_id": order_id}))

        order = self._orders.get(order_id)
        if order is None:
            raise BrokerError(f"Order not found: {order_id}", code="ORDER_NOT_FOUND")

        order.polls += 1
        if order.scripted:
            status, price = order.scripted.pop(0) if len(order.scripted) > 1 else order.scripted[0]
            order.status = status
            if price is not None:
                order.fill_price = price
        elif (
            self._config.fill_after_polls is not None
            and order.status.is_live()
            and order.polls >= self._config.fill_after_polls
        ):
            order.status = OrderStatus.FILLED

        fill_price = None
        if order.status == OrderStatus.FILLED:
            if order.fill_price is None:
                order.fill_price = (
                    self._config.fill_price
                    if self._config.fill_price is not None
                    else order.request.price
                )
            fill_price = order.fill_price

        return BrokerOrder(
            order_id=order.order_id,
            status=order.status,
            fill_price=fill_price,
            raw={"id": order.order_id, "status": order.status.value},
        )

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    async def get_option_chain(self, symbol: str, expiration: str) -> Any:
        await self._simulate_latency()
        self.calls.append(("get_option_chain", {"symbol": symbol, "expiration": expiration}))

        if self._chain_error is not None:
            raise self._chain_error
        return self._config.chains.get(f"{symbol}:{expiration}", [])

    async def get_quote(self, symbol: str) -> Optional[Dict[str, Any]]:
        return self._config.quotes.get(symbol)

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    def _new_order(self, request: OrderRequest, status: OrderStatus) -> MockOrder:
        order = MockOrder(order_id=f"MOCK-{next(self._ids)}", request=request, status=status)
        self._orders[order.order_id] = order
        return order

    def _require(self, order_id: str) -> MockOrder:
        order = self._orders.get(order_id)
        if order is None:
            raise KeyError(f"Unknown mock order {order_id}")
        return order

    async def _simulate_latency(self) -> None:
        if self._config.latency_ms > 0:
            await asyncio.sleep(self._config.latency_ms / 1000)
