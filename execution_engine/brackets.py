"""
Execution Engine - Bracket Pricing.

Pure helpers for the take-profit / stop-loss pair attached to
a filled entry:

    tp = round(entry * (1 + tp_pct / 100), 2)
    sl = max(0.01, round(entry * (1 - sl_pct / 100), 2))

Exit legs reverse each opening leg; closing legs are kept.
"""

import math
from typing import List, Optional

from core.exceptions import InvalidInput

from .types import (
    OrderAction,
    OrderLeg,
    OrderRequest,
    OrderType,
    PriceEffect,
    TimeInForce,
)


MIN_STOP_PRICE = 0.01

_EXIT_ACTIONS = {
    OrderAction.BUY_TO_OPEN: OrderAction.SELL_TO_CLOSE,
    OrderAction.SELL_TO_OPEN: OrderAction.BUY_TO_CLOSE,
}


def _validate(entry_price: float, pct: float, field: str) -> None:
    if not isinstance(entry_price, (int, float)) or not math.isfinite(entry_price) or entry_price <= 0:
        raise InvalidInput("Entry price must be positive", field="entry_price", value=entry_price)
    if not isinstance(pct, (int, float)) or not math.isfinite(pct) or pct < 0:
        raise InvalidInput(f"{field} cannot be negative", field=field, value=pct)


def calculate_tp_price(entry_price: float, tp_pct: float) -> float:
    """Take-profit limit price."""
    _validate(entry_price, tp_pct, "tp_pct")
    return round(entry_price * (1 + tp_pct / 100), 2)


def calculate_sl_price(entry_price: float, sl_pct: float) -> float:
    """Stop-loss trigger price, floored at one cent."""
    _validate(entry_price, sl_pct, "sl_pct")
    return max(MIN_STOP_PRICE, round(entry_price * (1 - sl_pct / 100), 2))


def build_exit_legs(entry_legs: List[OrderLeg]) -> List[OrderLeg]:
    """Legs that flatten the entry (same symbols and quantities)."""
    return [
        OrderLeg(
            symbol=leg.symbol,
            quantity=leg.quantity,
            action=_EXIT_ACTIONS.get(leg.action, leg.action),
            instrument_type=leg.instrument_type,
        )
        for leg in entry_legs
    ]


def build_take_profit_request(
    account_id: str,
    entry_legs: List[OrderLeg],
    price: float,
    price_effect: PriceEffect = PriceEffect.CREDIT,
    client_order_id: Optional[str] = None,
) -> OrderRequest:
    return OrderRequest(
        account_id=account_id,
        legs=build_exit_legs(entry_legs),
        order_type=OrderType.LIMIT,
        time_in_force=TimeInForce.GTC,
        price=price,
        price_effect=price_effect,
        client_order_id=client_order_id,
    )


def build_stop_loss_request(
    account_id: str,
    entry_legs: List[OrderLeg],
    stop_trigger: float,
    price_effect: PriceEffect = PriceEffect.CREDIT,
    client_order_id: Optional[str] = None,
) -> OrderRequest:
    return OrderRequest(
        account_id=account_id,
        legs=build_exit_legs(entry_legs),
        order_type=OrderType.STOP,
        time_in_force=TimeInForce.GTC,
        stop_trigger=stop_trigger,
        price_effect=price_effect,
        client_order_id=client_order_id,
    )
