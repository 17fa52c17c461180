"""Shared pytest fixtures for coinlens."""

import pytest

from coinlens.core.models import ROI, CryptoCurrency


def market_json(**overrides) -> dict:
    """One `/coins/markets` entry as the API returns it."""
    data = {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "image": "https://assets.coingecko.com/coins/images/1/large/bitcoin.png",
        "current_price": 67123.45,
        "market_cap": 1321000000000,
        "market_cap_rank": 1,
        "fully_diluted_valuation": 1409000000000,
        "total_volume": 28500000000,
        "high_24h": 68000.0,
        "low_24h": 66000.0,
        "price_change_24h": 812.3,
        "price_change_percentage_24h": 1.22,
        "market_cap_change_24h": 15900000000,
        "market_cap_change_percentage_24h": 1.21,
        "circulating_supply": 19700000.0,
        "total_supply": 21000000.0,
        "max_supply": 21000000.0,
        "ath": 73738.0,
        "ath_change_percentage": -8.97,
        "ath_date": "2024-03-14T07:10:36.635Z",
        "atl": 67.81,
        "atl_change_percentage": 98900.1,
        "atl_date": "2013-07-06T00:00:00.000Z",
        "roi": None,
        "last_updated": "2024-05-20T10:15:00.000Z",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_record():
    """Factory for CryptoCurrency with overridable defaults."""

    def _make(**overrides) -> CryptoCurrency:
        return CryptoCurrency.model_validate(market_json(**overrides))

    return _make


@pytest.fixture
def bitcoin(make_record) -> CryptoCurrency:
    return make_record()


@pytest.fixture
def ethereum(make_record) -> CryptoCurrency:
    return make_record(
        id="ethereum",
        symbol="eth",
        name="Ethereum",
        current_price=3105.2,
        market_cap=373000000000,
        market_cap_rank=2,
        fully_diluted_valuation=None,
        total_supply=120000000.0,
        max_supply=None,
        roi=ROI(times=62.1, currency="btc", percentage=6210.4).model_dump(),
    )


class FakeClock:
    """Manually advanced Unix clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def market_payload():
    """Factory for raw `/coins/markets` entries."""
    return market_json
