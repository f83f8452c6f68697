"""
Risk Management - Configuration.

============================================================
PURPOSE
============================================================
Threshold constants consumed by the risk threshold library,
the decision engine and the order supervisor.

Values are exchange-local (US/Eastern) for all clock times.

============================================================
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

import yaml


# ============================================================
# DEFAULTS
# ============================================================

TRADING_WINDOWS: List[Tuple[str, str]] = [
    ("10:15", "10:45"),
    ("13:15", "13:45"),
]

EXIT_TIME_ET = "12:00"

MAX_SHORT_DELTA = 0.65

MAX_CHASE_ATTEMPTS = 2

DEFAULT_MAX_RISK_PCT = 1.0

# Wide-index underlyings trade in 0.05 ticks, equities/ETFs in pennies
CREDIT_FLOOR_SLIPPAGE: Dict[str, float] = {
    "SPX": 0.15,
    "NDX": 0.15,
    "RUT": 0.15,
    "QQQ": 0.03,
    "SPY": 0.03,
    "AAPL": 0.03,
    "TSLA": 0.03,
}

DEFAULT_SLIPPAGE_UNDERLYING = "SPX"


# ============================================================
# THRESHOLD CONFIGURATION
# ============================================================

@dataclass
class RiskThresholdConfig:
    """
    Risk thresholds for entries and exits.

    SAFETY: Defaults are the conservative production values.
    """

    trading_windows: List[Tuple[str, str]] = field(
        default_factory=lambda: list(TRADING_WINDOWS)
    )
    """Entry windows (HH:MM, inclusive both ends)."""

    enforce_trading_windows: bool = True
    """Whether entries outside a window are rejected."""

    exit_time: str = EXIT_TIME_ET
    """Time-based exit cutoff (HH:MM)."""

    max_short_delta: float = MAX_SHORT_DELTA
    """Absolute short-leg delta that forces an exit."""

    max_chase_attempts: int = MAX_CHASE_ATTEMPTS
    """Completed chase attempts allowed per order."""

    max_risk_pct: float = DEFAULT_MAX_RISK_PCT
    """Maximum loss per trade as a percentage of account value."""

    credit_floor_slippage: Dict[str, float] = field(
        default_factory=lambda: dict(CREDIT_FLOOR_SLIPPAGE)
    )
    """Allowed credit shortfall versus alert price, per underlying."""

    @classmethod
    def for_testing(cls) -> "RiskThresholdConfig":
        """Relaxed configuration for tests (no window enforcement)."""
        return cls(enforce_trading_windows=False)

    @classmethod
    def for_production(cls) -> "RiskThresholdConfig":
        """Get configuration for production."""
        return cls()

    @classmethod
    def from_yaml(cls, path: Path) -> "RiskThresholdConfig":
        """Load configuration from a YAML file; missing keys keep their defaults."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        if "trading_windows" in data:
            config.trading_windows = [
                (str(w["start"]), str(w["end"])) for w in data["trading_windows"]
            ]
        if "enforce_trading_windows" in data:
            config.enforce_trading_windows = bool(data["enforce_trading_windows"])
        if "exit_time" in data:
            config.exit_time = str(data["exit_time"])
        if "max_short_delta" in data:
            config.max_short_delta = float(data["max_short_delta"])
        if "max_chase_attempts" in data:
            config.max_chase_attempts = int(data["max_chase_attempts"])
        if "max_risk_pct" in data:
            config.max_risk_pct = float(data["max_risk_pct"])
        if "credit_floor_slippage" in data:
            config.credit_floor_slippage.update(
                {k.upper(): float(v) for k, v in data["credit_floor_slippage"].items()}
            )

        return config
