"""
Options - Contract Selector.

============================================================
PURPOSE
============================================================
Delta-based strike selection and vertical spread assembly.

SELECTION RULES:
- Only contracts of the requested right are considered
- Contracts without a delta are skipped
- Closest |delta| to |target| wins
- Ties resolve to the first contract in chain order

============================================================
"""

import logging
import math
from numbers import Real
from typing import Any, Optional, Sequence

from core.exceptions import InvalidInput, StrikeNotFound

from .types import (
    Greeks,
    OptionInstrument,
    OptionRight,
    VerticalLegs,
    format_streamer_symbol,
)


logger = logging.getLogger(__name__)


def _validate_target_delta(target_delta: Any) -> float:
    if isinstance(target_delta, bool) or not isinstance(target_delta, Real):
        raise InvalidInput(
            "Target delta must be a valid number",
            field="target_delta",
            value=target_delta,
        )
    value = float(target_delta)
    if math.isnan(value) or math.isinf(value):
        raise InvalidInput(
            "Target delta must be a valid number",
            field="target_delta",
            value=target_delta,
        )
    return value


def pick_by_delta(
    chain: Sequence[OptionInstrument],
    target_delta: float,
    right: Any,
) -> Optional[OptionInstrument]:
    """
    Pick the contract whose absolute delta is closest to the target.

    Args:
        chain: Option chain snapshot
        target_delta: Desired delta (sign ignored)
        right: CALL/PUT (OptionRight or string)

    Returns:
        Closest contract, or None when the chain is empty, has no
        contract of this right, or none of them expose a delta

    Raises:
        InvalidInput: Non-numeric target delta or unknown right
    """
    if not chain:
        return None

    target = abs(_validate_target_delta(target_delta))
    wanted = OptionRight.parse(right)

    closest: Optional[OptionInstrument] = None
    min_diff = math.inf

    for contract in chain:
        if contract.right != wanted or contract.delta is None:
            continue
        diff = abs(abs(contract.delta) - target)
        # strict: the earlier contract keeps a tie
        if diff < min_diff:
            min_diff = diff
            closest = contract

    return closest


def _long_strike(short_leg: OptionInstrument, width: float) -> float:
    if short_leg.right == OptionRight.CALL:
        return short_leg.strike + width
    return short_leg.strike - width


def _validate_vertical_inputs(short_leg: Any, width: Any) -> None:
    if not isinstance(short_leg, OptionInstrument):
        raise InvalidInput(
            "Short leg must be a valid OptionInstrument",
            field="short_leg",
            value=short_leg,
        )
    if not short_leg.symbol or not short_leg.expiration or short_leg.strike <= 0:
        raise InvalidInput(
            "Short leg is missing symbol, expiration or strike",
            field="short_leg",
            value=short_leg,
        )
    if isinstance(width, bool) or not isinstance(width, Real) or math.isnan(width) or width <= 0:
        raise InvalidInput("Width must be a positive number", field="width", value=width)


def build_vertical(short_leg: OptionInstrument, width: float) -> VerticalLegs:
    """
    Build a vertical with a synthetic long leg.

    The long leg sits `width` further out of the money (above the
    short strike for calls, below for puts). It has no quote or
    Greeks; its streamer symbol is derived from its own fields.
    """
    _validate_vertical_inputs(short_leg, width)

    strike = _long_strike(short_leg, width)
    if strike <= 0:
        raise InvalidInput("Long strike would be non-positive", field="width", value=width)

    long_leg = OptionInstrument(
        symbol=short_leg.symbol,
        strike=strike,
        right=short_leg.right,
        expiration=short_leg.expiration,
        streamer_symbol=format_streamer_symbol(
            short_leg.symbol, short_leg.expiration, strike, short_leg.right
        ),
        greeks=Greeks(),
    )
    return VerticalLegs(short_leg=short_leg, long_leg=long_leg)


def build_vertical_from_chain(
    chain: Sequence[OptionInstrument],
    target_delta: float,
    width: float,
    right: Any,
) -> Optional[VerticalLegs]:
    """
    Build a vertical using only listed contracts.

    Returns None when no short leg matches the delta or the exact
    long strike/right/expiration is not in the chain. Unlisted
    strikes are never interpolated.
    """
    short_leg = pick_by_delta(chain, target_delta, right)
    if short_leg is None:
        return None

    _validate_vertical_inputs(short_leg, width)
    strike = _long_strike(short_leg, width)

    for contract in chain:
        if (
            contract.right == short_leg.right
            and contract.expiration == short_leg.expiration
            and math.isclose(contract.strike, strike, abs_tol=1e-9)
        ):
            return VerticalLegs(short_leg=short_leg, long_leg=contract)

    logger.info(
        f"No listed long leg at {strike} {short_leg.right.value} {short_leg.expiration} "
        f"for {short_leg.symbol}"
    )
    return None


def select_vertical(
    chain: Sequence[OptionInstrument],
    target_delta: float,
    width: float,
    right: Any,
) -> VerticalLegs:
    """
    Resolve a listed vertical or raise.

    Raises:
        StrikeNotFound: No short leg for the delta, or no long leg at the width
        InvalidInput: Bad delta, right or width
    """
    wanted = OptionRight.parse(right)
    short_leg = pick_by_delta(chain, target_delta, wanted)
    if short_leg is None:
        raise StrikeNotFound(
            f"No {wanted.value} contract with delta near {target_delta}",
            right=wanted.value,
            target_delta=target_delta,
        )

    legs = build_vertical_from_chain(chain, target_delta, width, wanted)
    if legs is None:
        strike = _long_strike(short_leg, width)
        raise StrikeNotFound(
            f"Long strike {strike} not listed for {short_leg.symbol} {short_leg.expiration}",
            strike=strike,
            right=wanted.value,
            target_delta=target_delta,
        )

    logger.info(
        f"Selected {wanted.value} vertical {legs.short_leg.strike}/{legs.long_leg.strike} "
        f"exp {legs.expiration} (short delta {legs.short_leg.delta})"
    )
    return legs
