"""
Options - Chain Normalization.

============================================================
PURPOSE
============================================================
Turn broker option-chain payloads into OptionInstrument lists.

Brokers disagree on field names (dashed, snake_case, camelCase),
send strikes as strings, and nest contracts under expirations.
Unrecognized or missing fields map to safe defaults; rows that
cannot be priced (no strike, no right) are dropped, never raised.

============================================================
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional

from core.exceptions import ChainFetchFailure, InvalidInput

from .types import Greeks, OptionInstrument, OptionRight, format_streamer_symbol

if TYPE_CHECKING:
    from execution_engine.adapters.base import BrokerAdapter


logger = logging.getLogger(__name__)


# ============================================================
# FIELD HELPERS
# ============================================================

def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ============================================================
# NORMALIZATION
# ============================================================

def normalize_option(
    raw: Mapping[str, Any],
    symbol: str,
    expiration: Optional[str] = None,
) -> Optional[OptionInstrument]:
    """
    Normalize one broker contract row.

    Args:
        raw: Broker row
        symbol: Requested underlying (used when the row omits it)
        expiration: Expiration of the enclosing group, if nested

    Returns:
        OptionInstrument, or None when strike/right/expiration are unusable
    """
    strike = _to_float(_first(raw, "strike-price", "strike_price", "strikePrice", "strike"))
    if strike is None or strike <= 0:
        return None

    right_raw = _first(raw, "option-type", "option_type", "optionType", "right", "type")
    try:
        right = OptionRight.parse(right_raw)
    except InvalidInput:
        return None

    exp = _first(raw, "expiration-date", "expiration_date", "expiration", "exp") or expiration
    if not exp:
        return None
    exp = str(exp)

    underlying = str(
        _first(raw, "underlying-symbol", "underlying_symbol", "underlyingSymbol", "underlying")
        or symbol
    )

    greeks_raw = raw.get("greeks") if isinstance(raw.get("greeks"), Mapping) else raw
    greeks = Greeks(
        delta=_to_float(greeks_raw.get("delta")),
        gamma=_to_float(greeks_raw.get("gamma")),
        theta=_to_float(greeks_raw.get("theta")),
        vega=_to_float(greeks_raw.get("vega")),
    )

    bid = _to_float(_first(raw, "bid", "bid-price", "bid_price"))
    ask = _to_float(_first(raw, "ask", "ask-price", "ask_price"))
    mark = _to_float(raw.get("mark"))
    if mark is None and bid is not None and ask is not None:
        mark = (bid + ask) / 2

    streamer = _first(raw, "streamer-symbol", "streamer_symbol", "streamerSymbol")
    if not streamer:
        streamer = format_streamer_symbol(underlying, exp, strike, right)

    return OptionInstrument(
        symbol=underlying,
        strike=strike,
        right=right,
        expiration=exp,
        streamer_symbol=str(streamer),
        greeks=greeks,
        bid=bid,
        ask=ask,
        mark=mark,
    )


def _iter_rows(payload: Any) -> Iterable[Dict[str, Any]]:
    """Yield flat contract rows, expanding nested expiration/strike groups."""
    if isinstance(payload, Mapping):
        for key in ("data", "items", "expirations", "strikes"):
            if key in payload:
                yield from _iter_rows(payload[key])
                return
        yield dict(payload)
        return

    if not isinstance(payload, (list, tuple)):
        return

    for item in payload:
        if not isinstance(item, Mapping):
            continue
        if "strikes" in item:
            group_exp = _first(item, "expiration-date", "expiration_date", "expiration")
            for strike_row in item.get("strikes") or []:
                if not isinstance(strike_row, Mapping):
                    continue
                # nested rows carry one call and one put symbol per strike
                for right_key, code in (("call", "C"), ("put", "P")):
                    if right_key in strike_row:
                        yield {
                            "strike-price": _first(strike_row, "strike-price", "strike_price", "strike"),
                            "option-type": code,
                            "expiration-date": group_exp,
                            "streamer-symbol": strike_row.get(f"{right_key}-streamer-symbol"),
                        }
                if "call" not in strike_row and "put" not in strike_row:
                    yield {"expiration-date": group_exp, **strike_row}
        elif "expirations" in item:
            yield from _iter_rows(item["expirations"])
        else:
            yield dict(item)


def normalize_chain(
    payload: Any,
    symbol: str,
    expiration: Optional[str] = None,
) -> List[OptionInstrument]:
    """
    Normalize a full chain payload.

    Accepts a flat list of rows, a {"data"/"items": [...]} wrapper
    or nested expiration groups. When expiration is given, rows
    for other expirations are dropped.
    """
    contracts: List[OptionInstrument] = []
    for row in _iter_rows(payload):
        contract = normalize_option(row, symbol, expiration)
        if contract is None:
            continue
        if expiration and contract.expiration != expiration:
            continue
        contracts.append(contract)
    return contracts


async def fetch_option_chain(
    broker: "BrokerAdapter",
    symbol: str,
    expiration: str,
) -> List[OptionInstrument]:
    """
    Fetch and normalize a chain for one expiration.

    Raises:
        InvalidInput: Empty symbol or expiration
        ChainFetchFailure: Broker failure or no contracts returned
    """
    if not symbol or not isinstance(symbol, str):
        raise InvalidInput("Symbol must be a non-empty string", field="symbol", value=symbol)
    if not expiration or not isinstance(expiration, str):
        raise InvalidInput(
            "Expiration must be a valid ISO date string",
            field="expiration",
            value=expiration,
        )

    try:
        payload = await broker.get_option_chain(symbol, expiration)
    except Exception as e:
        logger.error(f"Failed to fetch option chain for {symbol} exp {expiration}: {e}")
        raise ChainFetchFailure(
            f"Failed to fetch option chain for {symbol} exp {expiration}: {e}",
            symbol=symbol,
            expiration=expiration,
            cause=e,
        )

    contracts = normalize_chain(payload, symbol, expiration)
    if not contracts:
        raise ChainFetchFailure(
            f"No contracts returned for {symbol} exp {expiration}",
            symbol=symbol,
            expiration=expiration,
        )

    logger.info(f"Option chain fetched for {symbol} exp {expiration}: {len(contracts)} contracts")
    return contracts
