"""Integration test fixtures: real cache files and SQLite, mocked HTTP."""

from __future__ import annotations

from pathlib import Path

import pytest

from coinlens.core.config import ApiConfig, CacheConfig, CoinLensConfig, StorageConfig
from coinlens.core.models import CacheBackend
from coinlens.storage.store import SqliteCoinStore

API_BASE = "https://api.coingecko.com/api/v3"


@pytest.fixture
def integration_config(tmp_path: Path) -> CoinLensConfig:
    """File-backed cache and on-disk database under tmp_path."""
    return CoinLensConfig(
        api=ApiConfig(requests_per_minute=600),
        cache=CacheConfig(backend=CacheBackend.FILE, cache_dir=str(tmp_path / "cache")),
        storage=StorageConfig(sqlite_path=str(tmp_path / "coinlens.db")),
    )


@pytest.fixture
def integration_config_file(tmp_path: Path) -> str:
    """The same layout as integration_config, written as a YAML file for the CLI."""
    path = tmp_path / "coinlens.yml"
    path.write_text(
        "api:\n"
        "  requests_per_minute: 600\n"
        "cache:\n"
        "  backend: file\n"
        f"  cache_dir: {tmp_path / 'cache'}\n"
        "storage:\n"
        f"  sqlite_path: {tmp_path / 'coinlens.db'}\n"
    )
    return str(path)


@pytest.fixture
async def integration_store(integration_config: CoinLensConfig) -> SqliteCoinStore:
    """An initialized on-disk SqliteCoinStore."""
    store = SqliteCoinStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def markets_body(market_payload) -> list[dict]:
    """A three-coin `/coins/markets` response."""
    return [
        market_payload(),
        market_payload(
            id="ethereum",
            symbol="eth",
            name="Ethereum",
            current_price=3105.2,
            market_cap_rank=2,
            max_supply=None,
            fully_diluted_valuation=None,
        ),
        market_payload(
            id="tether",
            symbol="usdt",
            name="Tether",
            current_price=1.0,
            market_cap_rank=3,
            max_supply=None,
        ),
    ]
