"""
Execution Service Tests.

============================================================
Covers idempotent submission, timeout and broker failure
mapping, cancel/replace semantics and status normalization.
============================================================
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import BrokerError, ChainFetchFailure, OrderRejection
from execution_engine.adapters.mock import MockBrokerAdapter, MockConfig
from execution_engine.config import ExecutionEngineConfig
from execution_engine.execution_service import ExecutionService
from execution_engine.order_registry import ClientOrderStatus
from execution_engine.types import BrokerOrder, OrderRequest, OrderStatus


@pytest.fixture
def request_factory(entry_legs):
    def build(price=1.00, client_order_id=None):
        return OrderRequest(account_id="ACC-1", legs=entry_legs, price=price, client_order_id=client_order_id)
    return build


def slow_config():
    config = ExecutionEngineConfig.for_testing()
    config.timeout.order_submission_timeout_seconds = 0.01
    config.timeout.order_cancel_timeout_seconds = 0.01
    return config


# ============================================================
# SUBMIT
# ============================================================

class TestSubmitOrder:
    """Tests for submit_order()."""

    @pytest.mark.asyncio
    async def test_assigns_client_order_id(self, service, request_factory):
        request = request_factory()

        ack = await service.submit_order(request)

        assert request.client_order_id.startswith("OTC_")
        record = service.registry.get_client_order(request.client_order_id)
        assert record.status == ClientOrderStatus.CONFIRMED
        assert record.broker_order_id == ack.order_id

    @pytest.mark.asyncio
    async def test_duplicate_submit_returns_cached_ack(self, broker, service, request_factory):
        request = request_factory()
        first = await service.submit_order(request)

        second = await service.submit_order(request)

        assert second is first
        assert len(broker.calls_named("submit_order")) == 1

    @pytest.mark.asyncio
    async def test_idempotency_disabled(self, broker, request_factory):
        config = ExecutionEngineConfig.for_testing()
        config.idempotency.enabled = False
        service = ExecutionService(broker, config)
        request = request_factory()

        await service.submit_order(request)
        await service.submit_order(request)

        assert request.client_order_id is None
        assert len(broker.submitted) == 2

    @pytest.mark.asyncio
    async def test_broker_error_becomes_rejection(self, broker, service, request_factory):
        broker.fail_next_submit(BrokerError("insufficient buying power", code="INSUFFICIENT_BUYING_POWER"))
        request = request_factory()

        with pytest.raises(OrderRejection) as exc_info:
            await service.submit_order(request)

        assert exc_info.value.code == "INSUFFICIENT_BUYING_POWER"
        assert exc_info.value.reason == "insufficient buying power"
        assert isinstance(exc_info.value.cause, BrokerError)
        record = service.registry.get_client_order(request.client_order_id)
        assert record.status == ClientOrderStatus.FAILED

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_rejection(self, broker, service, request_factory):
        broker.fail_next_submit(ConnectionResetError("connection reset by peer"))
        request = request_factory()

        with pytest.raises(OrderRejection) as exc_info:
            await service.submit_order(request)

        assert exc_info.value.code == "UNKNOWN_ERROR"
        assert exc_info.value.reason == "connection reset by peer"
        assert isinstance(exc_info.value.cause, ConnectionResetError)
        record = service.registry.get_client_order(request.client_order_id)
        assert record.status == ClientOrderStatus.FAILED

    @pytest.mark.asyncio
    async def test_retry_after_failure_counts(self, broker, service, request_factory):
        broker.fail_next_submit(BrokerError("busy", code="RATE_LIMITED", is_retryable=True))
        request = request_factory()

        with pytest.raises(OrderRejection):
            await service.submit_order(request)
        await service.submit_order(request)

        record = service.registry.get_client_order(request.client_order_id)
        assert record.retry_count == 1
        assert record.status == ClientOrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_timeout(self, request_factory):
        broker = MockBrokerAdapter(MockConfig(latency_ms=200))
        service = ExecutionService(broker, slow_config())

        with pytest.raises(OrderRejection) as exc_info:
            await service.submit_order(request_factory())

        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_rejected_ack(self, config, request_factory):
        broker = MockBrokerAdapter(MockConfig(ack_status=OrderStatus.REJECTED))
        service = ExecutionService(broker, config)

        with pytest.raises(OrderRejection) as exc_info:
            await service.submit_order(request_factory())

        assert exc_info.value.code == "REJECTED"
        assert exc_info.value.order_id == "MOCK-1"


# ============================================================
# CANCEL / REPLACE
# ============================================================

class TestCancelAndReplace:
    """Tests for cancel_order() and replace_order()."""

    @pytest.mark.asyncio
    async def test_cancel_success(self, service, request_factory):
        ack = await service.submit_order(request_factory())

        result = await service.cancel_order("ACC-1", ack.order_id)

        assert result.success
        assert result.error is None

    @pytest.mark.asyncio
    async def test_cancel_never_raises(self, service):
        result = await service.cancel_order("ACC-1", "MOCK-404")

        assert not result.success
        assert "not found" in result.error.lower()

    @pytest.mark.asyncio
    async def test_cancel_timeout(self):
        broker = MockBrokerAdapter(MockConfig(latency_ms=200))
        service = ExecutionService(broker, slow_config())

        result = await service.cancel_order("ACC-1", "MOCK-1")

        assert result.error == "timeout"

    @pytest.mark.asyncio
    async def test_cancel_unexpected_error(self, config):
        adapter = MagicMock()
        adapter.cancel_order = AsyncMock(side_effect=ValueError("malformed response"))
        service = ExecutionService(adapter, config)

        result = await service.cancel_order("ACC-1", "X-1")

        assert not result.success
        assert result.error == "malformed response"

    @pytest.mark.asyncio
    async def test_replace_unexpected_error(self, broker, service, request_factory):
        ack = await service.submit_order(request_factory())
        broker.fail_next_replace(KeyError("price"))

        with pytest.raises(OrderRejection) as exc_info:
            await service.replace_order("ACC-1", ack.order_id, request_factory(0.95))

        assert exc_info.value.code == "UNKNOWN_ERROR"
        assert exc_info.value.order_id == ack.order_id

    @pytest.mark.asyncio
    async def test_replace(self, service, request_factory):
        ack = await service.submit_order(request_factory())

        new_ack = await service.replace_order("ACC-1", ack.order_id, request_factory(0.95))

        assert new_ack.order_id != ack.order_id
        assert new_ack.status == OrderStatus.WORKING

    @pytest.mark.asyncio
    async def test_replace_failure(self, broker, service, request_factory):
        ack = await service.submit_order(request_factory())
        broker.fail_next_replace(BrokerError("price out of range", code="INVALID_PRICE"))

        with pytest.raises(OrderRejection) as exc_info:
            await service.replace_order("ACC-1", ack.order_id, request_factory(0.95))

        assert exc_info.value.order_id == ack.order_id
        assert exc_info.value.code == "INVALID_PRICE"


# ============================================================
# QUERIES
# ============================================================

class TestQueries:
    """Tests for status, chain and quote lookups."""

    @pytest.mark.asyncio
    async def test_get_order_normalizes_status(self, config):
        adapter = MagicMock()
        adapter.get_order = AsyncMock(return_value=BrokerOrder(order_id="X-1", status="Filled", fill_price=1.05))
        service = ExecutionService(adapter, config)

        order = await service.get_order("ACC-1", "X-1")

        assert order.status == OrderStatus.FILLED
        assert order.fill_price == 1.05

    @pytest.mark.asyncio
    async def test_quote_failure_is_none(self, config):
        adapter = MagicMock()
        adapter.get_quote = AsyncMock(side_effect=BrokerError("quote service down"))
        service = ExecutionService(adapter, config)

        assert await service.get_quote("SPX") is None

    @pytest.mark.asyncio
    async def test_empty_chain_raises(self, service):
        with pytest.raises(ChainFetchFailure):
            await service.get_option_chain("SPX", "2025-10-31")
