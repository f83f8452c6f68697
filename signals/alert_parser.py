"""
Signals - Alert Parser.

============================================================
PURPOSE
============================================================
Parse broker-style alert text (Discord webhooks, pasted alerts)
into structured trade parameters.

Format:
    "SELL -1 Vertical SPX 100 31 Oct 25 6855/6860 CALL @0.3 LMT"

- Underlying, strategy, strikes and price are required
- Direction defaults to CALL
- A missing expiry means 0DTE (expiry is None)

============================================================
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from decision_engine.types import Direction, SignalSource, TradeSignal


logger = logging.getLogger(__name__)


SUPPORTED_UNDERLYINGS = ("SPX", "QQQ", "SPY", "RUT", "NDX", "AAPL", "TSLA")

_UNDERLYING_RE = re.compile(r"\b(" + "|".join(SUPPORTED_UNDERLYINGS) + r")\b", re.IGNORECASE)
_VERTICAL_RE = re.compile(r"vertical", re.IGNORECASE)
_BUTTERFLY_RE = re.compile(r"butterfly|fly", re.IGNORECASE)
_IRON_CONDOR_RE = re.compile(r"sonar|iron.condor", re.IGNORECASE)
_DIRECTION_RE = re.compile(r"\b(CALL|PUT)S?\b", re.IGNORECASE)
_STRIKES_RE = re.compile(r"(\d+)/(\d+)(?:/(\d+))?")
_PRICE_RE = re.compile(r"@(\d+\.?\d*)")
_EXPIRY_RE = re.compile(
    r"(\d{1,2})\s+(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\s+(\d{2,4})",
    re.IGNORECASE,
)

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


# ============================================================
# PARSED ALERT
# ============================================================

@dataclass(frozen=True)
class ParsedAlert:
    """Structured content of one alert."""

    underlying: str
    strategy: str
    """Vertical, Butterfly or Iron Condor."""

    direction: str
    """CALL or PUT."""

    long_strike: float
    short_strike: float
    limit_price: float
    width: float
    """short_strike - long_strike."""

    wing_strike: Optional[float] = None
    expiry: Optional[str] = None
    """ISO date (YYYY-MM-DD); None for 0DTE."""

    raw_text: str = ""


# ============================================================
# PARSING
# ============================================================

def _parse_expiry(text: str) -> Optional[str]:
    """
    Extract "31 Oct 25" / "15 DEC 2024" as an ISO date.

    Raises:
        ValueError: Day does not exist in the month
    """
    match = _EXPIRY_RE.search(text)
    if not match:
        return None

    day = int(match.group(1))
    month = _MONTHS[match.group(2).lower()]
    year = int(match.group(3))
    if year < 100:
        year += 2000
    return date(year, month, day).isoformat()


def _strategy_of(text: str) -> Optional[str]:
    if _IRON_CONDOR_RE.search(text):
        return "Iron Condor"
    if _BUTTERFLY_RE.search(text):
        return "Butterfly"
    if _VERTICAL_RE.search(text):
        return "Vertical"
    return None


def parse_alert(text: str) -> Optional[ParsedAlert]:
    """
    Parse alert text.

    Returns:
        ParsedAlert, or None when underlying, strategy, strikes,
        price or a valid expiry date cannot be read
    """
    if not text or not isinstance(text, str):
        return None

    underlying_match = _UNDERLYING_RE.search(text)
    if not underlying_match:
        return None

    strategy = _strategy_of(text)
    if strategy is None:
        return None

    direction_match = _DIRECTION_RE.search(text)
    direction = direction_match.group(1).upper() if direction_match else "CALL"

    strikes_match = _STRIKES_RE.search(text)
    if not strikes_match:
        return None
    long_strike = float(strikes_match.group(1))
    short_strike = float(strikes_match.group(2))
    wing_strike = float(strikes_match.group(3)) if strikes_match.group(3) else None

    price_match = _PRICE_RE.search(text)
    if not price_match:
        return None

    try:
        expiry = _parse_expiry(text)
    except ValueError as e:
        logger.warning(f"Alert rejected, invalid expiry date: {e}")
        return None

    return ParsedAlert(
        underlying=underlying_match.group(1).upper(),
        strategy=strategy,
        direction=direction,
        long_strike=long_strike,
        short_strike=short_strike,
        wing_strike=wing_strike,
        limit_price=float(price_match.group(1)),
        width=short_strike - long_strike,
        expiry=expiry,
        raw_text=text,
    )


# ============================================================
# SIGNAL CONVERSION
# ============================================================

def alert_to_signal(
    parsed: ParsedAlert,
    source: SignalSource = SignalSource.DISCORD,
    quantity: int = 1,
) -> TradeSignal:
    """Build a TradeSignal carrying the alert's trade parameters."""
    strikes = [parsed.long_strike, parsed.short_strike]
    if parsed.wing_strike is not None:
        strikes.append(parsed.wing_strike)

    metadata = {
        "strikes": strikes,
        "price": parsed.limit_price,
        "quantity": quantity,
        "width": parsed.width,
    }
    if parsed.expiry:
        metadata["expiry"] = parsed.expiry

    return TradeSignal(
        signal_id=f"signal-{uuid.uuid4().hex[:12]}",
        source=source,
        underlying=parsed.underlying,
        strategy_type=parsed.strategy,
        direction=Direction(parsed.direction),
        timestamp=datetime.now(timezone.utc),
        raw_payload={"text": parsed.raw_text},
        metadata=metadata,
    )
