"""Ephemeral record cache: blob stores and the TTL snapshot cache."""

from coinlens.cache.kv import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from coinlens.cache.local import LocalCache, create_cache

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "LocalCache",
    "create_cache",
]
