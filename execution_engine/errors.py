"""
Execution Engine - Error Taxonomy.

============================================================
PURPOSE
============================================================
Classification of broker failures for retry decisions.

ERROR CATEGORIES:
1. Validation Errors - Order rejected as malformed
2. Submission Errors - Order refused by the broker
3. Market Errors - Market closed, instrument not tradable
4. Network Errors - Communication failures
5. Timeout Errors - No answer in time
6. Internal Errors - System errors

RETRYABLE vs NON-RETRYABLE:
- Retryable: Transient errors that may succeed on retry
- Non-retryable: Permanent errors that will fail again

============================================================
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

from core.exceptions import BrokerError


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    VALIDATION = "VALIDATION"
    """Order failed broker-side validation."""

    SUBMISSION = "SUBMISSION"
    """Order submission refused."""

    MARKET = "MARKET"
    """Market or instrument state prevents trading."""

    NETWORK = "NETWORK"
    """Network/communication error."""

    TIMEOUT = "TIMEOUT"
    """Request timed out."""

    RATE_LIMIT = "RATE_LIMIT"
    """Rate limit exceeded."""

    AUTHENTICATION = "AUTHENTICATION"
    """Session expired or invalid."""

    INTERNAL = "INTERNAL"
    """Internal system error."""


class ErrorSeverity(Enum):
    """Error severity levels."""

    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    severity: ErrorSeverity
    """Error severity."""

    is_retryable: bool
    """Whether this error is retryable."""

    description: str
    """Human-readable description."""

    recommended_action: str
    """Recommended action to take."""


def _info(code, category, severity, retryable, description, action) -> ErrorCodeInfo:
    return ErrorCodeInfo(
        code=code,
        category=category,
        severity=severity,
        is_retryable=retryable,
        description=description,
        recommended_action=action,
    )


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== VALIDATION ERRORS ==========
    "INVALID_ORDER": _info(
        "INVALID_ORDER", ErrorCategory.VALIDATION, ErrorSeverity.ERROR, False,
        "Order structure rejected by broker",
        "Fix order legs or price",
    ),
    "INVALID_PRICE": _info(
        "INVALID_PRICE", ErrorCategory.VALIDATION, ErrorSeverity.ERROR, False,
        "Price not on a valid tick or out of range",
        "Round price to the instrument tick",
    ),
    "INVALID_SYMBOL": _info(
        "INVALID_SYMBOL", ErrorCategory.VALIDATION, ErrorSeverity.ERROR, False,
        "Unknown option symbol",
        "Refresh the option chain",
    ),

    # ========== SUBMISSION ERRORS ==========
    "INSUFFICIENT_BUYING_POWER": _info(
        "INSUFFICIENT_BUYING_POWER", ErrorCategory.SUBMISSION, ErrorSeverity.ERROR, False,
        "Not enough buying power for the order",
        "Reduce size or free buying power",
    ),
    "POSITION_NOT_FOUND": _info(
        "POSITION_NOT_FOUND", ErrorCategory.SUBMISSION, ErrorSeverity.ERROR, False,
        "Closing order has no matching position",
        "Reconcile positions with broker",
    ),
    "ORDER_NOT_FOUND": _info(
        "ORDER_NOT_FOUND", ErrorCategory.SUBMISSION, ErrorSeverity.WARNING, False,
        "Order does not exist at broker",
        "Check whether the order already filled or was cancelled",
    ),
    "DUPLICATE_ORDER": _info(
        "DUPLICATE_ORDER", ErrorCategory.SUBMISSION, ErrorSeverity.WARNING, False,
        "Client order ID already used",
        "Look up the existing order instead of resubmitting",
    ),

    # ========== MARKET ERRORS ==========
    "MARKET_CLOSED": _info(
        "MARKET_CLOSED", ErrorCategory.MARKET, ErrorSeverity.ERROR, False,
        "Market is closed",
        "Wait for market open",
    ),
    "HALTED": _info(
        "HALTED", ErrorCategory.MARKET, ErrorSeverity.ERROR, True,
        "Instrument temporarily halted",
        "Retry after the halt lifts",
    ),

    # ========== NETWORK ERRORS ==========
    "CONNECTION_FAILED": _info(
        "CONNECTION_FAILED", ErrorCategory.NETWORK, ErrorSeverity.WARNING, True,
        "Could not reach broker",
        "Retry with backoff",
    ),
    "SERVICE_UNAVAILABLE": _info(
        "SERVICE_UNAVAILABLE", ErrorCategory.NETWORK, ErrorSeverity.WARNING, True,
        "Broker returned 5xx",
        "Retry with backoff",
    ),

    # ========== TIMEOUT ERRORS ==========
    "TIMEOUT": _info(
        "TIMEOUT", ErrorCategory.TIMEOUT, ErrorSeverity.WARNING, True,
        "Broker did not answer in time",
        "Check order status, then retry",
    ),

    # ========== RATE LIMIT ERRORS ==========
    "RATE_LIMITED": _info(
        "RATE_LIMITED", ErrorCategory.RATE_LIMIT, ErrorSeverity.WARNING, True,
        "Too many requests",
        "Retry with backoff",
    ),

    # ========== AUTHENTICATION ERRORS ==========
    "SESSION_EXPIRED": _info(
        "SESSION_EXPIRED", ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL, False,
        "Broker session is no longer valid",
        "Re-authenticate before trading",
    ),

    # ========== INTERNAL ERRORS ==========
    "UNKNOWN_ERROR": _info(
        "UNKNOWN_ERROR", ErrorCategory.INTERNAL, ErrorSeverity.ERROR, False,
        "Unclassified broker error",
        "Investigate error",
    ),
}


# HTTP status to internal code (brokers without structured error codes)
HTTP_STATUS_MAPPING: Dict[int, str] = {
    400: "INVALID_ORDER",
    401: "SESSION_EXPIRED",
    404: "ORDER_NOT_FOUND",
    409: "DUPLICATE_ORDER",
    422: "INVALID_ORDER",
    429: "RATE_LIMITED",
    500: "SERVICE_UNAVAILABLE",
    502: "SERVICE_UNAVAILABLE",
    503: "SERVICE_UNAVAILABLE",
    504: "TIMEOUT",
}


def get_error_info(code: Optional[str]) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Returns:
        ErrorCodeInfo or default unknown error
    """
    return ERROR_CODES.get(code or "", ErrorCodeInfo(
        code=code or "UNKNOWN_ERROR",
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description=f"Unknown error: {code}",
        recommended_action="Investigate error",
    ))


def map_http_status(status: int) -> str:
    """Map an HTTP status to an internal error code."""
    return HTTP_STATUS_MAPPING.get(status, "UNKNOWN_ERROR")


def is_retryable(code: Optional[str]) -> bool:
    """Check if an error code is retryable."""
    return get_error_info(code).is_retryable


def is_retryable_exception(exc: BaseException) -> bool:
    """
    Whether a failed broker call may be retried.

    Timeouts are retryable; BrokerErrors are retryable when the
    adapter flagged them or their code is registered as retryable.
    Everything else is not.
    """
    if isinstance(exc, asyncio.TimeoutError):
        return True
    if isinstance(exc, BrokerError):
        return exc.is_retryable or is_retryable(exc.code)
    return False


# ============================================================
# RETRYABLE ERROR SETS
# ============================================================

RETRYABLE_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items() if info.is_retryable
}

CRITICAL_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items()
    if info.severity == ErrorSeverity.CRITICAL
}
