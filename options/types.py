"""
Options - Types.

============================================================
PURPOSE
============================================================
Market-snapshot types for single option contracts and
two-leg vertical spreads.

OptionInstrument values are ephemeral: they describe one
leg's quote at fetch time and are refetched per use.

============================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from core.exceptions import InvalidInput


# ============================================================
# ENUMS
# ============================================================

class OptionRight(Enum):
    """Option right."""

    CALL = "CALL"
    PUT = "PUT"

    @property
    def code(self) -> str:
        """Single-letter code (C/P)."""
        return self.value[0]

    @classmethod
    def parse(cls, value: Any) -> "OptionRight":
        """
        Parse a right from common broker spellings.

        Accepts OptionRight, "CALL"/"PUT", "C"/"P" in any case.

        Raises:
            InvalidInput: For anything else
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip().upper()
            if text in ("CALL", "C"):
                return cls.CALL
            if text in ("PUT", "P"):
                return cls.PUT
        raise InvalidInput(
            'Right must be either "CALL" or "PUT"',
            field="right",
            value=value,
        )


# ============================================================
# INSTRUMENTS
# ============================================================

@dataclass(frozen=True)
class Greeks:
    """Option sensitivities; any value may be missing."""

    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None


@dataclass(frozen=True)
class OptionInstrument:
    """One option contract with its latest quote."""

    symbol: str
    """Underlying symbol."""

    strike: float
    """Strike price."""

    right: OptionRight
    """CALL or PUT."""

    expiration: str
    """Expiration date (YYYY-MM-DD)."""

    streamer_symbol: str
    """Identifier used by the quote stream."""

    greeks: Greeks = field(default_factory=Greeks)
    """Greeks at fetch time."""

    bid: Optional[float] = None
    ask: Optional[float] = None
    mark: Optional[float] = None

    @property
    def delta(self) -> Optional[float]:
        return self.greeks.delta

    @property
    def mid(self) -> Optional[float]:
        """Mid price when both sides are quoted, else the mark."""
        if self.bid is not None and self.ask is not None:
            return (self.bid + self.ask) / 2
        return self.mark

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "strike": self.strike,
            "right": self.right.value,
            "expiration": self.expiration,
            "streamer_symbol": self.streamer_symbol,
            "delta": self.greeks.delta,
            "bid": self.bid,
            "ask": self.ask,
            "mark": self.mark,
        }


def format_strike(strike: float) -> str:
    """Render a strike without a trailing .0 for whole numbers."""
    return str(int(strike)) if float(strike).is_integer() else str(strike)


def format_streamer_symbol(
    symbol: str,
    expiration: str,
    strike: float,
    right: OptionRight,
) -> str:
    """Structural streamer identifier: SYMBOL_YYYY-MM-DD_<strike><C|P>."""
    return f"{symbol}_{expiration}_{format_strike(strike)}{right.code}"


# ============================================================
# VERTICAL SPREAD
# ============================================================

@dataclass(frozen=True)
class VerticalLegs:
    """
    Short and long leg of a vertical spread.

    Both legs always share expiration and right; construction
    with mismatched legs raises InvalidInput.
    """

    short_leg: OptionInstrument
    long_leg: OptionInstrument

    def __post_init__(self):
        if self.short_leg.expiration != self.long_leg.expiration:
            raise InvalidInput(
                "Vertical legs must share expiration",
                field="expiration",
                value=f"{self.short_leg.expiration}/{self.long_leg.expiration}",
            )
        if self.short_leg.right != self.long_leg.right:
            raise InvalidInput(
                "Vertical legs must share right",
                field="right",
                value=f"{self.short_leg.right.value}/{self.long_leg.right.value}",
            )

    @property
    def width(self) -> float:
        return abs(self.long_leg.strike - self.short_leg.strike)

    @property
    def right(self) -> OptionRight:
        return self.short_leg.right

    @property
    def expiration(self) -> str:
        return self.short_leg.expiration

    @property
    def natural_credit(self) -> Optional[float]:
        """Short mid minus long mid, when both legs are quoted."""
        short_mid, long_mid = self.short_leg.mid, self.long_leg.mid
        if short_mid is None or long_mid is None:
            return None
        return round(short_mid - long_mid, 2)
