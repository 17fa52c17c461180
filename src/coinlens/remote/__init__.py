"""Market-data API access."""

from coinlens.remote.client import CoinGeckoClient, RemoteSourceProtocol

__all__ = [
    "CoinGeckoClient",
    "RemoteSourceProtocol",
]
