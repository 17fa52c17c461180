"""Async HTTP client for the CoinGecko v3 market-data API."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter
from pydantic import TypeAdapter, ValidationError

from coinlens.core.config import ApiConfig
from coinlens.core.exceptions import DecodingError, InvalidURLError, NetworkError
from coinlens.core.models import CryptoCurrency, SearchResponse

logger = logging.getLogger(__name__)

# Endpoint paths, relative to ApiConfig.base_url
_MARKETS_PATH = "/coins/markets"
_COIN_PATH = "/coins/{id}"
_SEARCH_PATH = "/search"

# Characters that would change the meaning of the coin path segment
_FORBIDDEN_SEGMENT_CHARS = frozenset("/?#")

# Flags for the single-coin endpoint: market data only
_COIN_DETAIL_PARAMS: dict[str, str] = {
    "localization": "false",
    "tickers": "false",
    "market_data": "true",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "false",
}

_LISTING_ADAPTER = TypeAdapter(list[CryptoCurrency])


@runtime_checkable
class RemoteSourceProtocol(Protocol):
    """What the repository needs from a market-data source."""

    async def fetch_all(self) -> list[CryptoCurrency]: ...
    async def fetch_one(self, crypto_id: str) -> CryptoCurrency: ...
    async def search(self, query: str) -> list[CryptoCurrency]: ...


class CoinGeckoClient:
    """Async client for the three CoinGecko endpoints coinlens consumes.

    Every call issues exactly one GET. Nothing is retried: a failed call
    raises NetworkError, DecodingError or InvalidURLError to the caller.
    Requests are paced by a token bucket so bursts stay inside the public
    API's per-minute budget.

    Use via `async with CoinGeckoClient(...) as client:`.
    """

    def __init__(self, config: ApiConfig) -> None:
        self._config = config
        self._limiter = AsyncLimiter(
            max_rate=config.requests_per_minute, time_period=60.0
        )
        self._client = httpx.AsyncClient(
            headers={"User-Agent": config.user_agent, "Accept": "application/json"},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> CoinGeckoClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    # --- Endpoints ---

    async def fetch_all(self) -> list[CryptoCurrency]:
        """Fetch the first listing page, ordered by market cap.

        Returns:
            Up to `per_page` records in API order.

        Raises:
            InvalidURLError: The listing URL could not be built.
            NetworkError: Transport failure or non-2xx status.
            DecodingError: The body is not a JSON array of market records.
        """
        params = {
            "vs_currency": self._config.vs_currency,
            "order": self._config.order,
            "per_page": str(self._config.per_page),
            "page": str(self._config.page),
            "sparkline": "false",
        }
        url = self._build_url(_MARKETS_PATH)
        raw = await self._get_json(url, params)
        try:
            records = _LISTING_ADAPTER.validate_python(raw)
        except ValidationError as e:
            raise DecodingError(
                f"Market listing did not match schema: {e.error_count()} errors",
                context={"url": url, "schema": "list[CryptoCurrency]"},
                cause=e,
            ) from e
        logger.debug("Fetched %d market records", len(records))
        return records

    async def fetch_one(self, crypto_id: str) -> CryptoCurrency:
        """Fetch a single coin by id.

        The live endpoint nests prices under `market_data` keyed by currency;
        such bodies are flattened into the listing schema first.

        Raises:
            InvalidURLError: `crypto_id` cannot form a path segment.
            NetworkError: Transport failure or non-2xx status.
            DecodingError: The body does not describe a coin.
        """
        url = self._build_url(_COIN_PATH, crypto_id=crypto_id)
        raw = await self._get_json(url, dict(_COIN_DETAIL_PARAMS))
        if isinstance(raw, dict) and isinstance(raw.get("market_data"), dict):
            raw = _flatten_coin_detail(raw, self._config.vs_currency)
        try:
            return CryptoCurrency.model_validate(raw)
        except ValidationError as e:
            raise DecodingError(
                f"Coin {crypto_id!r} did not match schema: {e.error_count()} errors",
                context={"url": url, "schema": "CryptoCurrency"},
                cause=e,
            ) from e

    async def search(self, query: str) -> list[CryptoCurrency]:
        """Free-text search. Hits come back as partial records.

        Partial records carry zeroed market numbers and empty dates; callers
        needing full data must `fetch_one` each hit.
        """
        url = self._build_url(_SEARCH_PATH)
        raw = await self._get_json(url, {"query": query})
        try:
            response = SearchResponse.model_validate(raw)
        except ValidationError as e:
            raise DecodingError(
                f"Search response did not match schema: {e.error_count()} errors",
                context={"url": url, "schema": "SearchResponse"},
                cause=e,
            ) from e
        return [coin.to_cryptocurrency() for coin in response.coins]

    # --- Request Plumbing ---

    def _build_url(self, path: str, crypto_id: str | None = None) -> str:
        """Join the base URL with an endpoint path, validating any id segment."""
        if crypto_id is not None:
            if (
                not crypto_id.strip()
                or crypto_id != crypto_id.strip()
                or any(c in _FORBIDDEN_SEGMENT_CHARS for c in crypto_id)
            ):
                raise InvalidURLError(
                    f"Invalid coin id for URL path: {crypto_id!r}",
                    context={"endpoint": path, "value": crypto_id},
                )
            path = path.format(id=crypto_id)
        return f"{self._config.base_url}{path}"

    async def _get_json(self, url: str, params: dict[str, str]) -> Any:
        """Issue one GET and parse the JSON body.

        Raises:
            InvalidURLError: httpx rejected the URL or its query.
            NetworkError: Transport error or non-2xx status.
            DecodingError: Body is not JSON.
        """
        try:
            request_url = httpx.URL(url, params=params)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise InvalidURLError(
                f"Could not build request URL: {url}",
                context={"endpoint": url},
            ) from e

        await self._limiter.acquire()
        logger.debug("GET %s", request_url)
        try:
            response = await self._client.get(request_url)
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Request to {url} failed: {e}",
                context={"url": url, "status_code": None},
                cause=e,
            ) from e

        if not response.is_success:
            raise NetworkError(
                f"HTTP {response.status_code} from {url}",
                context={"url": url, "status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise DecodingError(
                f"Response from {url} is not valid JSON",
                context={"url": url, "schema": "json"},
                cause=e,
            ) from e


def _flatten_coin_detail(raw: dict[str, Any], currency: str) -> dict[str, Any]:
    """Map a `/coins/{id}` body onto the flat listing schema.

    Per-currency values are picked for `currency`; missing keys stay missing
    so validation reports them.
    """
    market = raw["market_data"]

    def in_currency(key: str) -> Any:
        value = market.get(key)
        if isinstance(value, dict):
            return value.get(currency)
        return value

    image = raw.get("image")
    if isinstance(image, dict):
        image = image.get("large") or image.get("small") or image.get("thumb")

    flat: dict[str, Any] = {
        "id": raw.get("id"),
        "symbol": raw.get("symbol"),
        "name": raw.get("name"),
        "image": image,
        "current_price": in_currency("current_price"),
        "market_cap": in_currency("market_cap"),
        "market_cap_rank": market.get("market_cap_rank", raw.get("market_cap_rank")),
        "fully_diluted_valuation": in_currency("fully_diluted_valuation"),
        "total_volume": in_currency("total_volume"),
        "high_24h": in_currency("high_24h"),
        "low_24h": in_currency("low_24h"),
        "price_change_24h": market.get("price_change_24h"),
        "price_change_percentage_24h": market.get("price_change_percentage_24h"),
        "market_cap_change_24h": market.get("market_cap_change_24h"),
        "market_cap_change_percentage_24h": market.get(
            "market_cap_change_percentage_24h"
        ),
        "circulating_supply": market.get("circulating_supply"),
        "total_supply": market.get("total_supply"),
        "max_supply": market.get("max_supply"),
        "ath": in_currency("ath"),
        "ath_change_percentage": in_currency("ath_change_percentage"),
        "ath_date": in_currency("ath_date"),
        "atl": in_currency("atl"),
        "atl_change_percentage": in_currency("atl_change_percentage"),
        "atl_date": in_currency("atl_date"),
        "roi": market.get("roi"),
        "last_updated": market.get("last_updated") or raw.get("last_updated"),
    }
    return {k: v for k, v in flat.items() if v is not None}
