"""
Options Package.

Contract selection for vertical spreads:
- types: OptionInstrument, VerticalLegs, OptionRight
- selector: delta-based short leg pick and long leg resolution
- chain: broker chain normalization and fetch
"""

from .chain import fetch_option_chain, normalize_chain, normalize_option
from .selector import build_vertical, build_vertical_from_chain, pick_by_delta, select_vertical
from .types import (
    Greeks,
    OptionInstrument,
    OptionRight,
    VerticalLegs,
    format_streamer_symbol,
    format_strike,
)

__all__ = [
    "fetch_option_chain",
    "normalize_chain",
    "normalize_option",
    "build_vertical",
    "build_vertical_from_chain",
    "pick_by_delta",
    "select_vertical",
    "Greeks",
    "OptionInstrument",
    "OptionRight",
    "VerticalLegs",
    "format_streamer_symbol",
    "format_strike",
]
