"""Tests for coinlens.remote.client (CoinGeckoClient)."""

from __future__ import annotations

import httpx
import pytest
import respx

from coinlens.core.config import ApiConfig
from coinlens.core.exceptions import DecodingError, InvalidURLError, NetworkError
from coinlens.remote.client import CoinGeckoClient, RemoteSourceProtocol, _flatten_coin_detail

BASE = "https://api.coingecko.com/api/v3"


# --- Fixtures ---


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(request_timeout=5, requests_per_minute=600)


@pytest.fixture
async def client(api_config: ApiConfig) -> CoinGeckoClient:
    async with CoinGeckoClient(api_config) as c:
        yield c


@pytest.fixture
def coin_detail_json() -> dict:
    """Trimmed `/coins/{id}` response with nested market data."""
    return {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "image": {
            "thumb": "https://example.com/thumb.png",
            "small": "https://example.com/small.png",
            "large": "https://example.com/large.png",
        },
        "market_cap_rank": 1,
        "market_data": {
            "current_price": {"usd": 67123.45, "eur": 61800.0},
            "market_cap": {"usd": 1321000000000, "eur": 1216000000000},
            "market_cap_rank": 1,
            "fully_diluted_valuation": {"usd": 1409000000000},
            "total_volume": {"usd": 28500000000},
            "high_24h": {"usd": 68000.0},
            "low_24h": {"usd": 66000.0},
            "price_change_24h": 812.3,
            "price_change_percentage_24h": 1.22,
            "market_cap_change_24h": 15900000000,
            "market_cap_change_percentage_24h": 1.21,
            "circulating_supply": 19700000.0,
            "total_supply": 21000000.0,
            "max_supply": None,
            "ath": {"usd": 73738.0},
            "ath_change_percentage": {"usd": -8.97},
            "ath_date": {"usd": "2024-03-14T07:10:36.635Z"},
            "atl": {"usd": 67.81},
            "atl_change_percentage": {"usd": 98900.1},
            "atl_date": {"usd": "2013-07-06T00:00:00.000Z"},
            "roi": None,
            "last_updated": "2024-05-20T10:15:00.000Z",
        },
    }


def test_satisfies_remote_protocol(api_config):
    assert isinstance(CoinGeckoClient(api_config), RemoteSourceProtocol)


# --- fetch_all ---


class TestFetchAll:
    @respx.mock
    async def test_decodes_listing(self, client, market_payload):
        respx.get(f"{BASE}/coins/markets").mock(
            return_value=httpx.Response(
                200,
                json=[
                    market_payload(),
                    market_payload(id="ethereum", symbol="eth", name="Ethereum", market_cap_rank=2),
                ],
            )
        )
        records = await client.fetch_all()
        assert [r.id for r in records] == ["bitcoin", "ethereum"]

    @respx.mock
    async def test_sends_fixed_query(self, client):
        route = respx.get(f"{BASE}/coins/markets").mock(
            return_value=httpx.Response(200, json=[])
        )
        await client.fetch_all()
        params = route.calls.last.request.url.params
        assert params["vs_currency"] == "usd"
        assert params["order"] == "market_cap_desc"
        assert params["per_page"] == "100"
        assert params["page"] == "1"
        assert params["sparkline"] == "false"

    @respx.mock
    async def test_schema_mismatch_raises_decoding_error(self, client):
        respx.get(f"{BASE}/coins/markets").mock(
            return_value=httpx.Response(200, json=[{"id": "bitcoin"}])
        )
        with pytest.raises(DecodingError) as exc_info:
            await client.fetch_all()
        assert exc_info.value.cause is not None

    @respx.mock
    async def test_object_instead_of_array_raises_decoding_error(self, client):
        respx.get(f"{BASE}/coins/markets").mock(
            return_value=httpx.Response(200, json={"error": "nope"})
        )
        with pytest.raises(DecodingError):
            await client.fetch_all()

    @respx.mock
    async def test_non_json_body_raises_decoding_error(self, client):
        respx.get(f"{BASE}/coins/markets").mock(
            return_value=httpx.Response(200, text="<html>maintenance</html>")
        )
        with pytest.raises(DecodingError, match="not valid JSON"):
            await client.fetch_all()

    @respx.mock
    async def test_http_error_raises_network_error(self, client):
        respx.get(f"{BASE}/coins/markets").mock(return_value=httpx.Response(429))
        with pytest.raises(NetworkError, match="HTTP 429") as exc_info:
            await client.fetch_all()
        assert exc_info.value.context["status_code"] == 429

    @respx.mock
    async def test_transport_error_wraps_cause(self, client):
        respx.get(f"{BASE}/coins/markets").mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        with pytest.raises(NetworkError) as exc_info:
            await client.fetch_all()
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @respx.mock
    async def test_no_retry_on_failure(self, client):
        route = respx.get(f"{BASE}/coins/markets").mock(return_value=httpx.Response(503))
        with pytest.raises(NetworkError):
            await client.fetch_all()
        assert route.call_count == 1

    @respx.mock
    async def test_uses_configured_currency(self):
        route = respx.get("https://mirror.example.com/v3/coins/markets").mock(
            return_value=httpx.Response(200, json=[])
        )
        config = ApiConfig(base_url="https://mirror.example.com/v3", vs_currency="eur", per_page=10)
        async with CoinGeckoClient(config) as c:
            await c.fetch_all()
        params = route.calls.last.request.url.params
        assert params["vs_currency"] == "eur"
        assert params["per_page"] == "10"


# --- fetch_one ---


class TestFetchOne:
    @respx.mock
    async def test_flat_body(self, client, market_payload):
        route = respx.get(f"{BASE}/coins/bitcoin").mock(
            return_value=httpx.Response(200, json=market_payload())
        )
        record = await client.fetch_one("bitcoin")
        assert record.id == "bitcoin"
        params = route.calls.last.request.url.params
        assert params["localization"] == "false"
        assert params["tickers"] == "false"
        assert params["community_data"] == "false"
        assert params["developer_data"] == "false"

    @respx.mock
    async def test_nested_market_data_is_flattened(self, client, coin_detail_json):
        respx.get(f"{BASE}/coins/bitcoin").mock(
            return_value=httpx.Response(200, json=coin_detail_json)
        )
        record = await client.fetch_one("bitcoin")
        assert record.current_price == 67123.45
        assert record.image == "https://example.com/large.png"
        assert record.ath_date == "2024-03-14T07:10:36.635Z"
        assert record.max_supply is None
        assert record.fully_diluted_valuation == 1409000000000

    @pytest.mark.parametrize(
        "bad_id", ["", "   ", "a/b", "btc?x=1", "coin#frag", " bitcoin", "bitcoin\n"]
    )
    async def test_invalid_id_raises_before_request(self, client, bad_id):
        with respx.mock(assert_all_called=False) as router:
            route = router.get(url__startswith=BASE)
            with pytest.raises(InvalidURLError):
                await client.fetch_one(bad_id)
            assert route.call_count == 0

    @respx.mock
    async def test_not_found_raises_network_error(self, client):
        respx.get(f"{BASE}/coins/nope").mock(
            return_value=httpx.Response(404, json={"error": "coin not found"})
        )
        with pytest.raises(NetworkError, match="HTTP 404"):
            await client.fetch_one("nope")

    @respx.mock
    async def test_incomplete_body_raises_decoding_error(self, client):
        respx.get(f"{BASE}/coins/bitcoin").mock(
            return_value=httpx.Response(200, json={"id": "bitcoin", "market_data": {}})
        )
        with pytest.raises(DecodingError, match="bitcoin"):
            await client.fetch_one("bitcoin")


# --- search ---


class TestSearch:
    @respx.mock
    async def test_maps_hits_to_partial_records(self, client):
        route = respx.get(f"{BASE}/search").mock(
            return_value=httpx.Response(
                200,
                json={
                    "coins": [
                        {"id": "bitcoin", "name": "Bitcoin", "symbol": "BTC", "market_cap_rank": 1},
                        {"id": "bitcoin-cash", "name": "Bitcoin Cash", "symbol": "BCH", "market_cap_rank": None},
                    ],
                    "exchanges": [],
                },
            )
        )
        records = await client.search("bit")
        assert route.calls.last.request.url.params["query"] == "bit"
        assert [r.id for r in records] == ["bitcoin", "bitcoin-cash"]
        assert records[1].market_cap_rank == 0
        assert all(r.is_partial for r in records)
        assert all(r.current_price == 0 for r in records)

    @respx.mock
    async def test_missing_coins_key_raises_decoding_error(self, client):
        respx.get(f"{BASE}/search").mock(return_value=httpx.Response(200, json={}))
        with pytest.raises(DecodingError):
            await client.search("bit")


# --- helpers ---


class TestFlattenCoinDetail:
    def test_picks_requested_currency(self, coin_detail_json):
        flat = _flatten_coin_detail(coin_detail_json, "eur")
        assert flat["current_price"] == 61800.0
        assert "high_24h" not in flat

    def test_drops_null_values(self, coin_detail_json):
        flat = _flatten_coin_detail(coin_detail_json, "usd")
        assert "max_supply" not in flat
        assert "roi" not in flat
