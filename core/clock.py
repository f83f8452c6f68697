"""
Core Module - Market Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock for every time-dependent rule.

- Trading windows and exit cutoffs are defined in exchange
  local time (US/Eastern); the clock hands out both UTC and
  Eastern views of "now"
- Mockable for deterministic tests

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo
import threading


MARKET_TZ = ZoneInfo("America/New_York")


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the system clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    def now_market(self) -> datetime:
        """Get current time in the exchange timezone."""
        return self.now().astimezone(MARKET_TZ)

    def market_hhmm(self) -> str:
        """Current exchange-local time as HH:MM."""
        return self.now_market().strftime("%H:%M")


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Naive datetimes passed in are interpreted as exchange-local
    time, which is how test scenarios are usually written
    ("10:30 ET").
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = self._normalize(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    @staticmethod
    def _normalize(value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=MARKET_TZ)
        return value.astimezone(timezone.utc)

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            self._time = self._normalize(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """Advance time by the specified amount."""
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


def to_market_time(value: datetime) -> datetime:
    """Convert an aware datetime to exchange-local time; naive values are assumed local already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=MARKET_TZ)
    return value.astimezone(MARKET_TZ)


__all__ = [
    "MARKET_TZ",
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "to_market_time",
]
