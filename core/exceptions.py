"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the exception taxonomy for the options trading core.

- Every failure carries the offending value and the threshold
  or constraint it broke, so callers can render an actionable
  message without re-deriving it
- Validators and selectors raise these directly (fail fast)
- Engines that must never throw convert them into structured
  rejected results

============================================================
EXCEPTION HIERARCHY
============================================================
TradingException (base)
├── InvalidInput
├── RiskError
│   ├── RiskRuleViolation
│   └── TimeWindowViolation
├── MarketDataError
│   ├── ChainFetchFailure
│   └── StrikeNotFound
├── ExecutionError
│   ├── OrderRejection
│   └── BrokerError
└── StateError
    ├── InvalidStateTransition
    ├── TradeNotFound
    └── DuplicateTrade

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact a live trade."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Caller can correct the input and try again."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error for this operation."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class TradingException(Exception):
    """
    Base exception for all trading core errors.

    All exceptions carry:
    - severity: for alerting
    - context: structured detail (value, threshold, ids)
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if error is recoverable."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    @property
    def is_transient(self) -> bool:
        """Check if a retry may succeed."""
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# INPUT ERRORS
# ============================================================

class InvalidInput(TradingException):
    """Malformed arguments passed to a pure function."""

    default_severity = Severity.LOW

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]

        super().__init__(message, context=context, **kwargs)
        self.field = field
        self.value = value


# ============================================================
# RISK ERRORS
# ============================================================

class RiskError(TradingException):
    """Base class for risk-related errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class RiskRuleViolation(RiskError):
    """A risk threshold was breached (account risk, chase attempts, credit floor)."""

    def __init__(
        self,
        message: str,
        rule: str,
        value: Any,
        threshold: Any,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["rule"] = rule
        context["value"] = value
        context["threshold"] = threshold

        super().__init__(message, context=context, **kwargs)
        self.rule = rule
        self.value = value
        self.threshold = threshold


class TimeWindowViolation(RiskError):
    """Current time is outside every configured trading window."""

    def __init__(
        self,
        message: str,
        current_time: str,
        windows: Iterable[Tuple[str, str]],
        **kwargs,
    ):
        window_list: List[Tuple[str, str]] = [tuple(w) for w in windows]
        context = kwargs.pop("context", {})
        context["current_time"] = current_time
        context["windows"] = [f"{start}-{end}" for start, end in window_list]

        super().__init__(message, context=context, **kwargs)
        self.current_time = current_time
        self.windows = window_list


# ============================================================
# MARKET DATA ERRORS
# ============================================================

class MarketDataError(TradingException):
    """Base class for option chain / quote errors."""

    default_classification = ErrorClassification.TRANSIENT


class ChainFetchFailure(MarketDataError):
    """Option chain unavailable for symbol/expiration."""

    def __init__(
        self,
        message: str,
        symbol: str,
        expiration: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["symbol"] = symbol
        if expiration:
            context["expiration"] = expiration

        super().__init__(message, context=context, **kwargs)
        self.symbol = symbol
        self.expiration = expiration


class StrikeNotFound(MarketDataError):
    """No contract matches the requested delta or strike."""

    default_classification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        strike: Optional[float] = None,
        right: Optional[str] = None,
        target_delta: Optional[float] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if strike is not None:
            context["strike"] = strike
        if right:
            context["right"] = right
        if target_delta is not None:
            context["target_delta"] = target_delta

        super().__init__(message, context=context, **kwargs)
        self.strike = strike
        self.right = right
        self.target_delta = target_delta


# ============================================================
# EXECUTION ERRORS
# ============================================================

class ExecutionError(TradingException):
    """Base class for execution-related errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class OrderRejection(ExecutionError):
    """Broker refused or failed an order action."""

    def __init__(
        self,
        message: str,
        order_id: Optional[str] = None,
        reason: Optional[str] = None,
        code: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if order_id:
            context["order_id"] = order_id
        if reason:
            context["reason"] = reason
        if code:
            context["code"] = code

        super().__init__(message, context=context, **kwargs)
        self.order_id = order_id
        self.reason = reason or message
        self.code = code


class BrokerError(ExecutionError):
    """Raw failure reported by a broker adapter."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        is_retryable: bool = False,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if code:
            context["code"] = code
        kwargs.setdefault(
            "classification",
            ErrorClassification.TRANSIENT if is_retryable else ErrorClassification.NON_RECOVERABLE,
        )

        super().__init__(message, context=context, **kwargs)
        self.code = code
        self.is_retryable = is_retryable


# ============================================================
# STATE ERRORS
# ============================================================

class StateError(TradingException):
    """Base class for trade registry errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class InvalidStateTransition(StateError):
    """Transition not present in the trade transition table."""

    def __init__(
        self,
        trade_id: str,
        from_state: str,
        to_state: str,
        valid_targets: Iterable[str],
        **kwargs,
    ):
        targets = sorted(valid_targets)
        message = (
            f"Invalid transition from {from_state} to {to_state}. "
            f"Valid transitions: {', '.join(targets) if targets else 'none'}"
        )
        context = kwargs.pop("context", {})
        context.update({
            "trade_id": trade_id,
            "from_state": from_state,
            "to_state": to_state,
        })

        super().__init__(message, context=context, **kwargs)
        self.trade_id = trade_id
        self.from_state = from_state
        self.to_state = to_state
        self.valid_targets = targets


class TradeNotFound(StateError):
    """Trade id is not registered."""

    def __init__(self, trade_id: str, **kwargs):
        super().__init__(
            f"Trade not found: {trade_id}",
            context={"trade_id": trade_id},
            **kwargs,
        )
        self.trade_id = trade_id


class DuplicateTrade(StateError):
    """Trade id is already registered."""

    def __init__(self, trade_id: str, **kwargs):
        super().__init__(
            f"Trade {trade_id} already exists",
            context={"trade_id": trade_id},
            **kwargs,
        )
        self.trade_id = trade_id


# ============================================================
# EXCEPTION UTILITIES
# ============================================================

def classify_exception(exc: Exception) -> ErrorClassification:
    """Classify an exception for retry handling."""
    if isinstance(exc, TradingException):
        return exc.classification

    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ErrorClassification.TRANSIENT

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return ErrorClassification.RECOVERABLE

    return ErrorClassification.NON_RECOVERABLE


__all__ = [
    "Severity",
    "ErrorClassification",
    "TradingException",
    "InvalidInput",
    "RiskError",
    "RiskRuleViolation",
    "TimeWindowViolation",
    "MarketDataError",
    "ChainFetchFailure",
    "StrikeNotFound",
    "ExecutionError",
    "OrderRejection",
    "BrokerError",
    "StateError",
    "InvalidStateTransition",
    "TradeNotFound",
    "DuplicateTrade",
    "classify_exception",
]
