"""
Shared fixtures for the options trading core tests.
"""

from datetime import datetime
from typing import Optional

import pytest

from core.clock import MockClock
from options.types import Greeks, OptionInstrument, OptionRight, format_streamer_symbol


EXPIRATION = "2025-10-31"

CALL_ROWS = [
    # strike, delta, bid, ask
    (6840, 0.55, 6.80, 7.20),
    (6845, 0.45, 4.60, 4.90),
    (6850, 0.38, 3.10, 3.40),
    (6855, 0.31, 2.10, 2.30),
    (6860, 0.25, 1.50, 1.70),
    (6865, 0.20, 1.00, 1.20),
    (6870, 0.15, 0.70, 0.80),
]

PUT_ROWS = [
    (6800, -0.10, 0.40, 0.50),
    (6805, -0.14, 0.60, 0.70),
    (6810, -0.19, 0.90, 1.00),
    (6815, -0.24, 1.30, 1.40),
    (6820, -0.30, 1.80, 2.00),
    (6825, -0.36, 2.50, 2.70),
]


def make_option(
    strike: float,
    right: OptionRight,
    delta: Optional[float],
    bid: Optional[float] = None,
    ask: Optional[float] = None,
    symbol: str = "SPX",
    expiration: str = EXPIRATION,
) -> OptionInstrument:
    return OptionInstrument(
        symbol=symbol,
        strike=float(strike),
        right=right,
        expiration=expiration,
        streamer_symbol=format_streamer_symbol(symbol, expiration, strike, right),
        greeks=Greeks(delta=delta),
        bid=bid,
        ask=ask,
    )


@pytest.fixture
def spx_chain():
    """SPX chain with listed calls 6840-6870 and puts 6800-6825."""
    calls = [make_option(s, OptionRight.CALL, d, b, a) for s, d, b, a in CALL_ROWS]
    puts = [make_option(s, OptionRight.PUT, d, b, a) for s, d, b, a in PUT_ROWS]
    return calls + puts


@pytest.fixture
def market_clock():
    """Clock parked inside the morning entry window (10:30 ET)."""
    return MockClock(datetime(2025, 10, 31, 10, 30))


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    from database.engine import create_all_tables, create_database_engine, get_session_factory

    engine = create_database_engine("sqlite://")
    create_all_tables(engine)
    yield get_session_factory(engine)
    engine.dispose()
