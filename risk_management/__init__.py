"""
Risk Management Package.

Entry and exit thresholds for the options trading core.

Modules:
- thresholds: pure validators (account risk, windows, chase, credit floor)
- config: threshold constants and configuration
- portfolio_tracker: per-underlying exposure book
"""

from .config import (
    CREDIT_FLOOR_SLIPPAGE,
    EXIT_TIME_ET,
    MAX_CHASE_ATTEMPTS,
    MAX_SHORT_DELTA,
    TRADING_WINDOWS,
    RiskThresholdConfig,
)
from .portfolio_tracker import PortfolioCheckResult, PortfolioSnapshot, PortfolioTracker
from .thresholds import (
    calculate_max_contracts,
    get_slippage_allowance,
    is_within_trading_window,
    should_exit_by_delta,
    should_exit_by_time,
    to_minutes,
    validate_account_risk,
    validate_chase_attempts,
    validate_credit_floor,
    validate_order_submission,
    validate_time_window,
)

__all__ = [
    "CREDIT_FLOOR_SLIPPAGE",
    "EXIT_TIME_ET",
    "MAX_CHASE_ATTEMPTS",
    "MAX_SHORT_DELTA",
    "TRADING_WINDOWS",
    "RiskThresholdConfig",
    "PortfolioCheckResult",
    "PortfolioSnapshot",
    "PortfolioTracker",
    "calculate_max_contracts",
    "get_slippage_allowance",
    "is_within_trading_window",
    "should_exit_by_delta",
    "should_exit_by_time",
    "to_minutes",
    "validate_account_risk",
    "validate_chase_attempts",
    "validate_credit_floor",
    "validate_order_submission",
    "validate_time_window",
]
