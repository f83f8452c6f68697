"""
Bracket Pricing Tests.
"""

import math

import pytest

from core.exceptions import InvalidInput
from execution_engine.brackets import (
    build_exit_legs,
    build_stop_loss_request,
    build_take_profit_request,
    calculate_sl_price,
    calculate_tp_price,
)
from execution_engine.types import OrderAction, OrderLeg, OrderType, PriceEffect, TimeInForce


@pytest.fixture
def entry_legs():
    return [
        OrderLeg(symbol="SPX_2025-10-31_6855C", quantity=2, action=OrderAction.SELL_TO_OPEN),
        OrderLeg(symbol="SPX_2025-10-31_6860C", quantity=2, action=OrderAction.BUY_TO_OPEN),
    ]


class TestBracketPrices:
    """Tests for TP/SL price calculation."""

    @pytest.mark.parametrize("entry,pct,expected", [
        (1.00, 50, 1.50),
        (0.30, 50, 0.45),
        (2.00, 0, 2.00),
        (1.20, 100, 2.40),
    ])
    def test_take_profit(self, entry, pct, expected):
        assert calculate_tp_price(entry, pct) == pytest.approx(expected)

    @pytest.mark.parametrize("entry,pct,expected", [
        (1.00, 50, 0.50),
        (2.00, 25, 1.50),
        (1.00, 100, 0.01),
        (1.00, 150, 0.01),
    ])
    def test_stop_loss_floored_at_one_cent(self, entry, pct, expected):
        assert calculate_sl_price(entry, pct) == pytest.approx(expected)

    @pytest.mark.parametrize("entry,pct", [
        (0, 50),
        (-1.0, 50),
        (math.nan, 50),
        (math.inf, 50),
        (1.0, -5),
        (1.0, math.nan),
    ])
    def test_invalid_inputs(self, entry, pct):
        with pytest.raises(InvalidInput):
            calculate_tp_price(entry, pct)
        with pytest.raises(InvalidInput):
            calculate_sl_price(entry, pct)


class TestExitOrders:
    """Tests for exit leg reversal and bracket requests."""

    def test_exit_legs_reverse_opening_actions(self, entry_legs):
        exits = build_exit_legs(entry_legs)

        assert [leg.action for leg in exits] == [OrderAction.BUY_TO_CLOSE, OrderAction.SELL_TO_CLOSE]
        assert [leg.symbol for leg in exits] == [leg.symbol for leg in entry_legs]
        assert all(leg.quantity == 2 for leg in exits)

    def test_closing_actions_kept(self):
        legs = [OrderLeg(symbol="X", quantity=1, action=OrderAction.SELL_TO_CLOSE)]

        assert build_exit_legs(legs)[0].action == OrderAction.SELL_TO_CLOSE

    def test_take_profit_request(self, entry_legs):
        request = build_take_profit_request("ACC-1", entry_legs, 0.45, client_order_id="OTC_1")

        assert request.order_type == OrderType.LIMIT
        assert request.time_in_force == TimeInForce.GTC
        assert request.price == 0.45
        assert request.stop_trigger is None
        assert request.price_effect == PriceEffect.CREDIT
        assert request.client_order_id == "OTC_1"
        assert request.legs[0].action == OrderAction.BUY_TO_CLOSE

    def test_stop_loss_request(self, entry_legs):
        request = build_stop_loss_request("ACC-1", entry_legs, 0.15)

        assert request.order_type == OrderType.STOP
        assert request.time_in_force == TimeInForce.GTC
        assert request.stop_trigger == 0.15
        assert request.price is None

    def test_request_serialization(self, entry_legs):
        data = build_stop_loss_request("ACC-1", entry_legs, 0.15).to_dict()

        assert data["order_type"] == "Stop"
        assert data["legs"][1]["action"] == "Sell to Close"
        assert data["legs"][1]["instrument_type"] == "Equity Option"
