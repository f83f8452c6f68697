"""
Risk Management - Threshold Library.

============================================================
PURPOSE
============================================================
Pure, stateless validators for trade entry and exit limits.

Every validator RAISES a typed violation instead of returning
a boolean, so callers can surface the exact threshold breached:

- RiskRuleViolation: account risk, chase attempts, credit floor
- TimeWindowViolation: outside configured trading windows
- InvalidInput: malformed arguments

Predicates (should_exit_*) return booleans; they describe a
state, not a violation.

============================================================
"""

import logging
import math
from datetime import datetime, time
from typing import Dict, Iterable, Optional, Sequence, Tuple, Union

from core.clock import to_market_time
from core.exceptions import (
    InvalidInput,
    RiskRuleViolation,
    TimeWindowViolation,
)

from .config import (
    CREDIT_FLOOR_SLIPPAGE,
    DEFAULT_MAX_RISK_PCT,
    DEFAULT_SLIPPAGE_UNDERLYING,
    EXIT_TIME_ET,
    MAX_CHASE_ATTEMPTS,
    MAX_SHORT_DELTA,
    TRADING_WINDOWS,
)


logger = logging.getLogger(__name__)


TimeLike = Union[str, time, datetime]
Window = Tuple[str, str]


# ============================================================
# TIME HELPERS
# ============================================================

def to_minutes(value: TimeLike) -> int:
    """
    Convert a clock value to minutes after midnight.

    Accepts "HH:MM" or "HH:MM:SS" strings, time objects, and
    datetimes (converted to exchange-local time first).
    Seconds are truncated.
    """
    if isinstance(value, datetime):
        local = to_market_time(value)
        return local.hour * 60 + local.minute
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise InvalidInput(f"Unsupported time value: {value!r}", field="time", value=value)

    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise InvalidInput(f"Malformed time: {value!r}", field="time", value=value)
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        raise InvalidInput(f"Malformed time: {value!r}", field="time", value=value)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidInput(f"Time out of range: {value!r}", field="time", value=value)
    return hour * 60 + minute


def format_hhmm(value: TimeLike) -> str:
    minutes = to_minutes(value)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _to_cents(amount: float) -> int:
    return int(round(amount * 100))


# ============================================================
# ACCOUNT RISK
# ============================================================

def validate_account_risk(
    account_value: float,
    max_loss: float,
    max_risk_pct: float = DEFAULT_MAX_RISK_PCT,
) -> None:
    """
    Validate that a trade's max loss fits the per-trade risk budget.

    Args:
        account_value: Net liquidating value of the account
        max_loss: Maximum loss of the proposed trade
        max_risk_pct: Allowed loss as percent of account value

    Raises:
        InvalidInput: If account_value <= 0 or max_loss < 0
        RiskRuleViolation: If risk percent exceeds max_risk_pct
            (exactly at the threshold passes)
    """
    if account_value <= 0:
        raise InvalidInput("Account value must be positive", field="account_value", value=account_value)
    if max_loss < 0:
        raise InvalidInput("Max loss cannot be negative", field="max_loss", value=max_loss)

    risk_pct = round(max_loss / account_value * 100, 10)

    if risk_pct > max_risk_pct:
        logger.warning(
            f"Account risk violation: {risk_pct:.2f}% > {max_risk_pct}% "
            f"(max_loss={max_loss}, account_value={account_value})"
        )
        raise RiskRuleViolation(
            f"Trade risk {risk_pct:.2f}% exceeds max {max_risk_pct}% of account",
            rule="account_risk",
            value=risk_pct,
            threshold=max_risk_pct,
        )


def calculate_max_contracts(
    account_value: float,
    max_loss_per_contract: float,
    max_risk_pct: float = DEFAULT_MAX_RISK_PCT,
) -> int:
    """Largest contract count whose combined max loss fits the risk budget."""
    if max_loss_per_contract <= 0:
        raise InvalidInput(
            "Max loss per contract must be positive",
            field="max_loss_per_contract",
            value=max_loss_per_contract,
        )
    if account_value <= 0:
        return 0

    budget = account_value * max_risk_pct / 100
    return max(0, math.floor(round(budget / max_loss_per_contract, 9)))


# ============================================================
# TRADING WINDOWS
# ============================================================

def is_within_trading_window(
    current_time: TimeLike,
    windows: Iterable[Window] = TRADING_WINDOWS,
) -> bool:
    """Check if current_time falls inside any window (both ends inclusive)."""
    now = to_minutes(current_time)
    for start, end in windows:
        if to_minutes(start) <= now <= to_minutes(end):
            return True
    return False


def validate_time_window(
    current_time: TimeLike,
    windows: Sequence[Window] = TRADING_WINDOWS,
) -> None:
    """
    Validate that entries are allowed at current_time.

    Raises:
        TimeWindowViolation: If outside every window
    """
    if not is_within_trading_window(current_time, windows):
        window_names = ", ".join(f"{start}-{end}" for start, end in windows)
        hhmm = format_hhmm(current_time)
        logger.warning(f"Time window violation at {hhmm} (allowed: {window_names})")
        raise TimeWindowViolation(
            f"Trade outside allowed windows ({window_names})",
            current_time=hhmm,
            windows=windows,
        )


# ============================================================
# CHASE ATTEMPTS
# ============================================================

def validate_chase_attempts(
    attempts: int,
    max_attempts: int = MAX_CHASE_ATTEMPTS,
) -> None:
    """
    Validate that another chase attempt is allowed.

    `attempts` is the count of attempts already completed, so the
    ceiling is reached when attempts == max_attempts.
    """
    if attempts >= max_attempts:
        raise RiskRuleViolation(
            f"Max chase attempts reached ({attempts}/{max_attempts})",
            rule="chase_attempts",
            value=attempts,
            threshold=max_attempts,
        )


# ============================================================
# CREDIT FLOOR
# ============================================================

def get_slippage_allowance(
    underlying: str,
    table: Optional[Dict[str, float]] = None,
) -> float:
    """Allowed credit shortfall for an underlying; unknown symbols use the index allowance."""
    table = table or CREDIT_FLOOR_SLIPPAGE
    symbol = (underlying or "").upper()
    return table.get(symbol, table.get(DEFAULT_SLIPPAGE_UNDERLYING, 0.15))


def validate_credit_floor(
    credit: float,
    underlying: str,
    alert_credit: float,
    slippage_table: Optional[Dict[str, float]] = None,
) -> None:
    """
    Validate that a credit is close enough to the alerted credit.

    Compared in whole cents so 2.36 vs 2.50 on SPX (0.14 short,
    allowance 0.15) passes and 2.34 (0.16 short) fails.
    """
    allowance = get_slippage_allowance(underlying, slippage_table)
    floor_cents = _to_cents(alert_credit) - _to_cents(allowance)

    if _to_cents(credit) < floor_cents:
        floor = floor_cents / 100
        shortfall = (_to_cents(alert_credit) - _to_cents(credit)) / 100
        logger.warning(
            f"Credit floor violation on {underlying}: {credit} < {floor} "
            f"(alert {alert_credit}, allowance {allowance})"
        )
        raise RiskRuleViolation(
            f"Credit {credit:.2f} below floor {floor:.2f} "
            f"(slippage {shortfall:.2f} > {allowance:.2f})",
            rule="credit_floor",
            value=credit,
            threshold=floor,
        )


# ============================================================
# EXIT PREDICATES
# ============================================================

def should_exit_by_time(
    current_time: TimeLike,
    exit_time: TimeLike = EXIT_TIME_ET,
) -> bool:
    """True once current_time is at or after the exit cutoff."""
    return to_minutes(current_time) >= to_minutes(exit_time)


def should_exit_by_delta(
    short_delta: float,
    max_delta: float = MAX_SHORT_DELTA,
) -> bool:
    """True once the short leg's absolute delta reaches the breach threshold."""
    return abs(short_delta) >= max_delta


# ============================================================
# COMBINED PRE-FLIGHT
# ============================================================

def validate_order_submission(
    account_value: float,
    max_loss: float,
    credit: Optional[float] = None,
    underlying: Optional[str] = None,
    alert_credit: Optional[float] = None,
    current_time: Optional[TimeLike] = None,
    windows: Optional[Sequence[Window]] = None,
    chase_attempts: int = 0,
    max_chase_attempts: int = MAX_CHASE_ATTEMPTS,
    max_risk_pct: float = DEFAULT_MAX_RISK_PCT,
    slippage_table: Optional[Dict[str, float]] = None,
) -> None:
    """
    Run all entry checks, raising the first violation.

    Order: trading window (only when current_time is given),
    account risk, chase attempts (only when > 0), credit floor
    (only when both credit and alert_credit are given).
    """
    if current_time is not None:
        validate_time_window(current_time, windows if windows is not None else TRADING_WINDOWS)

    validate_account_risk(account_value, max_loss, max_risk_pct)

    if chase_attempts > 0:
        validate_chase_attempts(chase_attempts, max_chase_attempts)

    if credit is not None and alert_credit is not None:
        validate_credit_floor(
            credit,
            underlying or DEFAULT_SLIPPAGE_UNDERLYING,
            alert_credit,
            slippage_table,
        )

    logger.info(
        f"Order validation passed: risk={max_loss / account_value * 100:.2f}% "
        f"credit={credit} alert_credit={alert_credit}"
    )
