"""
Execution Engine - Alerting.

============================================================
PURPOSE
============================================================
Sends operator alerts for execution events via Telegram.

ALERT TYPES:
- Entry rejections
- Bracket submission failures (partial or missing bracket)
- Fill-poll timeouts
- Failed cancels while closing a position
- System errors

SAFETY REQUIREMENTS:
- Every abnormal event is at least logged
- Sending never raises into the trading path
- Rate limiting to prevent spam

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp

from .config import AlertingConfig


logger = logging.getLogger(__name__)


TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


# ============================================================
# ALERT TYPES
# ============================================================

class AlertSeverity(Enum):
    """Alert severity levels."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return {
            AlertSeverity.INFO: 0,
            AlertSeverity.WARNING: 1,
            AlertSeverity.ERROR: 2,
            AlertSeverity.CRITICAL: 3,
        }[self]


class AlertType(Enum):
    """Types of alerts."""

    ENTRY_REJECTED = "ENTRY_REJECTED"
    """Entry order refused by the broker."""

    BRACKET_FAILED = "BRACKET_FAILED"
    """Take-profit and/or stop-loss could not be placed."""

    FILL_TIMEOUT = "FILL_TIMEOUT"
    """Entry did not fill within the polling budget."""

    CANCEL_FAILED = "CANCEL_FAILED"
    """A bracket child could not be cancelled."""

    SYSTEM_ERROR = "SYSTEM_ERROR"
    """Internal system error."""


@dataclass
class Alert:
    """An alert to be sent."""

    alert_type: AlertType
    severity: AlertSeverity
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    trade_id: Optional[str] = None
    order_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================
# TELEGRAM ALERTER
# ============================================================

class TelegramAlerter:
    """
    Sends alerts via Telegram.

    Features:
    - Rate limiting per alert type and trade
    - Severity filtering
    - History of the last alerts, sent or not

    Without credentials (or with telegram disabled) alerts are
    only logged.
    """

    def __init__(
        self,
        config: Optional[AlertingConfig] = None,
        min_severity: AlertSeverity = AlertSeverity.WARNING,
        max_history: int = 100,
    ):
        self._config = config or AlertingConfig()
        self._min_severity = min_severity
        self._last_sent: Dict[str, datetime] = {}
        self._session: Optional[aiohttp.ClientSession] = None
        self._history: List[Alert] = []
        self._max_history = max_history

    @property
    def is_configured(self) -> bool:
        return bool(self._config.telegram_enabled and self._config.bot_token and self._config.chat_id)

    async def send_alert(self, alert: Alert) -> bool:
        """
        Send an alert.

        Returns:
            Whether the alert reached Telegram
        """
        self._history.append(alert)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        log = logger.error if alert.severity.rank >= AlertSeverity.ERROR.rank else logger.warning
        log(f"ALERT [{alert.alert_type.value}] trade={alert.trade_id}: {alert.message}")

        if alert.severity.rank < self._min_severity.rank:
            return False
        if not self.is_configured:
            return False
        if not self._can_send(alert):
            logger.info(f"Alert rate limited: {alert.alert_type.value} trade={alert.trade_id}")
            return False

        return await self._send_telegram(alert)

    async def _send_telegram(self, alert: Alert) -> bool:
        try:
            if self._session is None:
                self._session = aiohttp.ClientSession()

            payload = {
                "chat_id": self._config.chat_id,
                "text": self._format_message(alert),
                "parse_mode": "HTML",
            }
            url = TELEGRAM_API_URL.format(token=self._config.bot_token)

            async with self._session.post(url, json=payload) as response:
                if response.status == 200:
                    self._last_sent[self._key(alert)] = datetime.now(timezone.utc)
                    logger.info(f"Alert sent: {alert.alert_type.value}")
                    return True
                body = await response.text()
                logger.error(f"Telegram API error {response.status}: {body}")
                return False

        except aiohttp.ClientError as e:
            logger.error(f"Failed to send Telegram alert: {e}")
            return False

    def _format_message(self, alert: Alert) -> str:
        emoji = {
            AlertSeverity.INFO: "ℹ️",
            AlertSeverity.WARNING: "⚠️",
            AlertSeverity.ERROR: "❌",
            AlertSeverity.CRITICAL: "🚨",
        }[alert.severity]

        lines = [
            f"{emoji} <b>{alert.alert_type.value}</b>",
            f"<b>Severity:</b> {alert.severity.value}",
            f"<b>Time:</b> {alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC",
            "",
            alert.message,
        ]
        if alert.trade_id:
            lines.append(f"\n<b>Trade:</b> <code>{alert.trade_id}</code>")
        if alert.order_id:
            lines.append(f"<b>Order:</b> <code>{alert.order_id}</code>")
        if alert.details:
            lines.append("\n<b>Details:</b>")
            for key, value in alert.details.items():
                lines.append(f"  • {key}: {value}")
        return "\n".join(lines)

    def _key(self, alert: Alert) -> str:
        return f"{alert.alert_type.value}:{alert.trade_id or ''}"

    def _can_send(self, alert: Alert) -> bool:
        last = self._last_sent.get(self._key(alert))
        if last is None:
            return True
        interval = timedelta(seconds=self._config.min_alert_interval_seconds)
        return datetime.now(timezone.utc) - last >= interval

    def get_history(self, limit: int = 10) -> List[Alert]:
        return self._history[-limit:]

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None


# ============================================================
# ALERT HELPER FUNCTIONS
# ============================================================

def create_entry_rejected_alert(trade_id: str, reason: str, code: Optional[str] = None) -> Alert:
    return Alert(
        alert_type=AlertType.ENTRY_REJECTED,
        severity=AlertSeverity.WARNING,
        message=f"Entry rejected: {reason}",
        trade_id=trade_id,
        details={"code": code or "UNKNOWN"},
    )


def create_bracket_failed_alert(
    trade_id: str,
    parent_order_id: str,
    missing: List[str],
    errors: Dict[str, str],
) -> Alert:
    both = len(missing) >= 2
    return Alert(
        alert_type=AlertType.BRACKET_FAILED,
        severity=AlertSeverity.CRITICAL if both else AlertSeverity.ERROR,
        message=(
            "Position is UNPROTECTED: no bracket orders placed"
            if both
            else f"Bracket incomplete, missing: {', '.join(missing)}"
        ),
        trade_id=trade_id,
        order_id=parent_order_id,
        details=errors,
    )


def create_fill_timeout_alert(trade_id: str, order_id: str, polls: int) -> Alert:
    return Alert(
        alert_type=AlertType.FILL_TIMEOUT,
        severity=AlertSeverity.WARNING,
        message=f"Entry not filled after {polls} polls",
        trade_id=trade_id,
        order_id=order_id,
    )


def create_cancel_failed_alert(trade_id: str, order_id: str, error: str) -> Alert:
    return Alert(
        alert_type=AlertType.CANCEL_FAILED,
        severity=AlertSeverity.ERROR,
        message=f"Failed to cancel bracket order: {error}",
        trade_id=trade_id,
        order_id=order_id,
    )
