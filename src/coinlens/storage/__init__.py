"""Durable SQLite store for records and price history."""

from coinlens.storage.store import CoinStoreProtocol, SqliteCoinStore, create_store

__all__ = [
    "CoinStoreProtocol",
    "SqliteCoinStore",
    "create_store",
]
