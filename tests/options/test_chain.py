"""
Option Chain Normalization Tests.
"""

import pytest

from core.exceptions import BrokerError, ChainFetchFailure, InvalidInput
from execution_engine.adapters.mock import MockBrokerAdapter, MockConfig
from options.chain import fetch_option_chain, normalize_chain, normalize_option
from options.types import OptionRight


FLAT_ROWS = [
    {
        "strike-price": "6855.0",
        "option-type": "C",
        "expiration-date": "2025-10-31",
        "streamer-symbol": ".SPXW251031C6855",
        "greeks": {"delta": "0.31"},
        "bid": 2.10,
        "ask": 2.30,
    },
    {
        "strike_price": 6820,
        "option_type": "PUT",
        "expiration_date": "2025-10-31",
        "delta": -0.30,
        "mark": 1.90,
    },
    {"strike-price": "n/a", "option-type": "C", "expiration-date": "2025-10-31"},
    {"strike-price": 6900, "option-type": "X", "expiration-date": "2025-10-31"},
]

NESTED = {
    "data": {
        "items": [
            {
                "expirations": [
                    {
                        "expiration-date": "2025-10-31",
                        "strikes": [
                            {
                                "strike-price": "6860",
                                "call": "SPXW 251031C06860000",
                                "call-streamer-symbol": ".SPXW251031C6860",
                                "put": "SPXW 251031P06860000",
                                "put-streamer-symbol": ".SPXW251031P6860",
                            },
                        ],
                    },
                    {
                        "expiration-date": "2025-11-07",
                        "strikes": [{"strike-price": "6860", "call": "x"}],
                    },
                ]
            }
        ]
    }
}


class TestNormalization:
    """Tests for chain normalization."""

    def test_normalize_option_reads_broker_fields(self):
        contract = normalize_option(FLAT_ROWS[0], "SPX")

        assert contract.strike == 6855.0
        assert contract.right == OptionRight.CALL
        assert contract.delta == 0.31
        assert contract.streamer_symbol == ".SPXW251031C6855"
        assert contract.mid == pytest.approx(2.20)

    def test_missing_streamer_symbol_is_derived(self):
        contract = normalize_option(FLAT_ROWS[1], "SPX")

        assert contract.streamer_symbol == "SPX_2025-10-31_6820P"
        assert contract.delta == -0.30
        assert contract.mid == 1.90

    def test_unusable_rows_are_dropped(self):
        contracts = normalize_chain(FLAT_ROWS, "SPX")

        assert [c.strike for c in contracts] == [6855.0, 6820.0]

    def test_nested_payload_filtered_by_expiration(self):
        contracts = normalize_chain(NESTED, "SPX", "2025-10-31")

        assert len(contracts) == 2
        assert {c.right for c in contracts} == {OptionRight.CALL, OptionRight.PUT}
        assert {c.streamer_symbol for c in contracts} == {".SPXW251031C6860", ".SPXW251031P6860"}


class TestFetchOptionChain:
    """Tests for fetch_option_chain against the mock broker."""

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        broker = MockBrokerAdapter(MockConfig(chains={"SPX:2025-10-31": FLAT_ROWS}))

        contracts = await fetch_option_chain(broker, "SPX", "2025-10-31")

        assert len(contracts) == 2
        assert broker.calls_named("get_option_chain")[0]["symbol"] == "SPX"

    @pytest.mark.asyncio
    async def test_broker_failure_wrapped(self):
        broker = MockBrokerAdapter()
        broker.fail_chain(BrokerError("down", code="SERVICE_UNAVAILABLE", is_retryable=True))

        with pytest.raises(ChainFetchFailure) as exc_info:
            await fetch_option_chain(broker, "SPX", "2025-10-31")

        assert exc_info.value.symbol == "SPX"
        assert isinstance(exc_info.value.cause, BrokerError)

    @pytest.mark.asyncio
    async def test_empty_chain_fails(self):
        broker = MockBrokerAdapter()

        with pytest.raises(ChainFetchFailure, match="No contracts"):
            await fetch_option_chain(broker, "SPX", "2025-10-31")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol,expiration", [("", "2025-10-31"), ("SPX", ""), ("SPX", None)])
    async def test_invalid_arguments(self, symbol, expiration):
        with pytest.raises(InvalidInput):
            await fetch_option_chain(MockBrokerAdapter(), symbol, expiration)
