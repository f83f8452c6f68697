"""
Core Module Package.

Shared infrastructure that every other package depends on:
- clock: testable time abstraction with exchange-local helpers
- exceptions: structured exception taxonomy
"""

from .clock import MARKET_TZ, ClockProtocol, MockClock, SystemClock, to_market_time
from .exceptions import (
    BrokerError,
    ChainFetchFailure,
    DuplicateTrade,
    ErrorClassification,
    ExecutionError,
    InvalidInput,
    InvalidStateTransition,
    OrderRejection,
    RiskRuleViolation,
    Severity,
    StrikeNotFound,
    TimeWindowViolation,
    TradeNotFound,
    TradingException,
)

__all__ = [
    "MARKET_TZ",
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "to_market_time",
    "BrokerError",
    "ChainFetchFailure",
    "DuplicateTrade",
    "ErrorClassification",
    "ExecutionError",
    "InvalidInput",
    "InvalidStateTransition",
    "OrderRejection",
    "RiskRuleViolation",
    "Severity",
    "StrikeNotFound",
    "TimeWindowViolation",
    "TradeNotFound",
    "TradingException",
]
