"""
Execution Engine - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the Execution Engine.

CRITICAL CONSTRAINTS:
- No blind retries (only retryable broker codes and timeouts)
- No infinite loops (chase steps and fill polls are bounded)
- Deterministic behavior

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .types import ChaseDirection


# ============================================================
# CHASE CONFIGURATION
# ============================================================

@dataclass
class ChaseConfig:
    """
    Price-improvement loop for an unfilled limit entry.

    direction and initial_price are per order; the rest are
    defaults shared by every chase.
    """

    enabled: bool = True
    """Whether entries are chased before fill monitoring."""

    step_size: float = 0.05
    """Price step per attempt."""

    step_interval_seconds: float = 1.0
    """Wait between attempts (none before the first)."""

    max_steps: int = 10
    """Maximum replacement attempts."""

    max_slippage: float = 0.50
    """Maximum distance from the initial price."""

    direction: ChaseDirection = ChaseDirection.UP
    """UP for buys, DOWN for sells."""

    initial_price: float = 0.0
    """Price of the original entry order."""

    strategy: Optional[str] = None
    """Named declarative strategy (requires a quote)."""


# ============================================================
# FILL MONITOR CONFIGURATION
# ============================================================

@dataclass
class FillMonitorConfig:
    """Entry fill polling."""

    poll_interval_seconds: float = 1.0
    """Delay between order status polls."""

    max_poll_attempts: int = 300
    """Polls before giving up with TIMEOUT."""


# ============================================================
# RETRY CONFIGURATION
# ============================================================

@dataclass
class RetryConfig:
    """
    Retry configuration for bracket child submission.

    SAFETY: Limited retries with exponential backoff.
    """

    max_retries: int = 3
    """Maximum number of retry attempts."""

    initial_delay_seconds: float = 1.0
    """Initial delay before first retry."""

    max_delay_seconds: float = 30.0
    """Maximum delay between retries."""

    backoff_multiplier: float = 2.0
    """Exponential backoff multiplier."""

    retry_on_timeout: bool = True
    """Whether to retry on timeout errors."""

    # SAFETY: Never retry on these
    never_retry_codes: List[str] = field(default_factory=lambda: [
        "INSUFFICIENT_BUYING_POWER",
        "INVALID_ORDER",
        "POSITION_NOT_FOUND",
        "MARKET_CLOSED",
    ])
    """Error codes that should never trigger retry."""

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry N (1-based): 1s, 2s, 4s, ... capped."""
        delay = self.initial_delay_seconds * (self.backoff_multiplier ** (retry_number - 1))
        return min(delay, self.max_delay_seconds)


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """
    Timeout configuration.
    """

    order_submission_timeout_seconds: float = 10.0
    """Timeout for order submission and replacement."""

    order_cancel_timeout_seconds: float = 10.0
    """Timeout for order cancellation."""

    query_timeout_seconds: float = 5.0
    """Timeout for order status and chain queries."""


# ============================================================
# IDEMPOTENCY CONFIGURATION
# ============================================================

@dataclass
class IdempotencyConfig:
    """
    Idempotency configuration.

    Prevents duplicate order submissions.
    """

    enabled: bool = True
    """Whether idempotency is enabled."""

    client_order_id_prefix: str = "OTC_"
    """Prefix for client order IDs."""

    retention_hours: float = 24.0
    """Age after which client order records are dropped."""


# ============================================================
# ALERTING CONFIGURATION
# ============================================================

@dataclass
class AlertingConfig:
    """
    Operator alerting for execution events.
    """

    telegram_enabled: bool = True
    """Whether Telegram alerts are enabled."""

    bot_token: str = field(default_factory=lambda: os.getenv("TELEGRAM_BOT_TOKEN", ""))
    chat_id: str = field(default_factory=lambda: os.getenv("TELEGRAM_CHAT_ID", ""))

    alert_on_rejection: bool = True
    """Alert on entry rejection."""

    alert_on_bracket_failure: bool = True
    """Alert on partial or missing bracket."""

    alert_on_fill_timeout: bool = True
    """Alert when fill polling gives up."""

    alert_on_cancel_failure: bool = True
    """Alert when a cancel fails during close."""

    min_alert_interval_seconds: float = 60.0
    """Minimum interval between similar alerts."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class ExecutionEngineConfig:
    """
    Master configuration for Execution Engine.
    """

    chase: ChaseConfig = field(default_factory=ChaseConfig)
    fill_monitor: FillMonitorConfig = field(default_factory=FillMonitorConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    idempotency: IdempotencyConfig = field(default_factory=IdempotencyConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)

    # Global settings
    cancel_on_chase_abort: bool = True
    """Cancel the working entry when a chase aborts."""

    @classmethod
    def for_testing(cls) -> "ExecutionEngineConfig":
        """Get configuration for testing (no real waiting)."""
        return cls(
            chase=ChaseConfig(step_interval_seconds=0.0, max_steps=3),
            fill_monitor=FillMonitorConfig(poll_interval_seconds=0.0, max_poll_attempts=5),
            retry=RetryConfig(initial_delay_seconds=0.0, max_delay_seconds=0.0),
            timeout=TimeoutConfig(
                order_submission_timeout_seconds=1.0,
                order_cancel_timeout_seconds=1.0,
                query_timeout_seconds=1.0,
            ),
            alerting=AlertingConfig(telegram_enabled=False, bot_token="", chat_id=""),
        )

    @classmethod
    def for_production(cls) -> "ExecutionEngineConfig":
        """Get configuration for production."""
        return cls(
            retry=RetryConfig(max_retries=3),
            cancel_on_chase_abort=True,
        )
