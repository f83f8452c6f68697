"""
Signals Package.

Turns alert text into TradeSignal objects for the decision engine.
"""

from .alert_parser import (
    SUPPORTED_UNDERLYINGS,
    ParsedAlert,
    alert_to_signal,
    parse_alert,
)


__all__ = [
    "SUPPORTED_UNDERLYINGS",
    "ParsedAlert",
    "alert_to_signal",
    "parse_alert",
]
