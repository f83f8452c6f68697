"""
Error Taxonomy Tests.
"""

import asyncio

import pytest

from core.exceptions import BrokerError, OrderRejection
from execution_engine.adapters.base import map_order_status
from execution_engine.errors import (
    ErrorCategory,
    get_error_info,
    is_retryable,
    is_retryable_exception,
    map_http_status,
)
from execution_engine.types import OrderStatus


class TestErrorCodes:
    """Tests for error code lookup."""

    @pytest.mark.parametrize("code,retryable", [
        ("TIMEOUT", True),
        ("RATE_LIMITED", True),
        ("SERVICE_UNAVAILABLE", True),
        ("INSUFFICIENT_BUYING_POWER", False),
        ("INVALID_ORDER", False),
        ("MARKET_CLOSED", False),
        ("ORDER_NOT_FOUND", False),
    ])
    def test_retryable_flags(self, code, retryable):
        assert is_retryable(code) is retryable

    def test_unknown_code_is_internal_and_final(self):
        info = get_error_info("SOMETHING_NEW")

        assert info.category == ErrorCategory.INTERNAL
        assert not info.is_retryable
        assert get_error_info(None).code == "UNKNOWN_ERROR"

    @pytest.mark.parametrize("status,code", [
        (401, "SESSION_EXPIRED"),
        (429, "RATE_LIMITED"),
        (503, "SERVICE_UNAVAILABLE"),
        (504, "TIMEOUT"),
        (418, "UNKNOWN_ERROR"),
    ])
    def test_http_mapping(self, status, code):
        assert map_http_status(status) == code


class TestRetryableExceptions:
    """Tests for is_retryable_exception()."""

    def test_timeout_is_retryable(self):
        assert is_retryable_exception(asyncio.TimeoutError())

    def test_broker_error_flag(self):
        assert is_retryable_exception(BrokerError("busy", is_retryable=True))

    def test_broker_error_code(self):
        assert is_retryable_exception(BrokerError("busy", code="RATE_LIMITED"))
        assert not is_retryable_exception(BrokerError("no", code="INSUFFICIENT_BUYING_POWER"))

    def test_other_exceptions_are_final(self):
        assert not is_retryable_exception(ValueError("bad"))
        assert not is_retryable_exception(OrderRejection("rejected", code="TIMEOUT"))


class TestStatusMapping:
    """Tests for broker status normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("Received", OrderStatus.PENDING),
        ("Routed", OrderStatus.PENDING),
        ("Live", OrderStatus.WORKING),
        ("working", OrderStatus.WORKING),
        ("Filled", OrderStatus.FILLED),
        ("Canceled", OrderStatus.CANCELLED),
        ("Cancel_Requested", OrderStatus.CANCELLED),
        ("Expired", OrderStatus.CANCELLED),
        ("Rejected", OrderStatus.REJECTED),
        ("mystery", OrderStatus.PENDING),
        (None, OrderStatus.PENDING),
        (OrderStatus.FILLED, OrderStatus.FILLED),
    ])
    def test_mapping(self, raw, expected):
        assert map_order_status(raw) == expected
