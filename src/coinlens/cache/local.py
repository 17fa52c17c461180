"""TTL-bounded snapshot cache of the most recently seen records.

The whole list shares one expiration stamp. Expiry only hides data from
reads; writes always succeed and restart the clock.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable

from pydantic import TypeAdapter, ValidationError

from coinlens.cache.kv import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from coinlens.core.config import CacheConfig
from coinlens.core.models import CacheBackend, CryptoCurrency

logger = logging.getLogger(__name__)

RECORDS_KEY = "cached_crypto_currencies"
EXPIRATION_KEY = "crypto_cache_expiration"

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ITEMS = 100

_RECORDS_ADAPTER = TypeAdapter(list[CryptoCurrency])


class LocalCache:
    """Cache-aside snapshot of records over a KeyValueStore.

    Parameters
    ----------
    store : KeyValueStore
        Blob storage for the record list and the save stamp.
    ttl_seconds : float
        Reads return nothing once this long has passed since the last save.
    max_items : int
        `save_one` keeps at most this many records, newest first.
    clock : callable
        Returns the current Unix time in seconds. Injectable for tests.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_items: int = DEFAULT_MAX_ITEMS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._max_items = max_items
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def save_all(self, records: Iterable[CryptoCurrency]) -> None:
        """Replace the cached list wholesale and restart the TTL."""
        records = list(records)
        try:
            blob = _RECORDS_ADAPTER.dump_json(records)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize %d records for cache: %s", len(records), e)
            return
        with self._lock:
            self._store.set(RECORDS_KEY, blob)
            self._store.set(EXPIRATION_KEY, repr(self._clock()).encode())

    def save_one(self, record: CryptoCurrency) -> None:
        """Move `record` to the front, dropping any older copy and the overflow tail."""
        with self._lock:
            records = [r for r in self._load_records() if r.id != record.id]
            records.insert(0, record)
            self.save_all(records[: self._max_items])

    def get(self, crypto_id: str) -> CryptoCurrency | None:
        """Return the cached record for `crypto_id`, or None if absent or expired."""
        if self.is_expired():
            return None
        for record in self._load_records():
            if record.id == crypto_id:
                return record
        return None

    def search(self, query: str) -> list[CryptoCurrency]:
        """Case-insensitive substring match on name or symbol, newest first."""
        if self.is_expired():
            return []
        needle = query.lower()
        return [
            r
            for r in self._load_records()
            if needle in r.name.lower() or needle in r.symbol.lower()
        ]

    def clear(self) -> None:
        with self._lock:
            self._store.delete(RECORDS_KEY)
            self._store.delete(EXPIRATION_KEY)

    def snapshot(self) -> list[CryptoCurrency]:
        """Every cached record regardless of expiry, newest first."""
        return self._load_records()

    def saved_at(self) -> float | None:
        """Unix time of the last save, or None if never saved or unreadable."""
        try:
            raw = self._store.get(EXPIRATION_KEY)
        except OSError as e:
            logger.warning("Failed to read cache stamp, treating cache as expired: %s", e)
            return None
        if raw is None:
            return None
        try:
            return float(raw.decode())
        except (UnicodeDecodeError, ValueError):
            logger.warning("Unreadable cache stamp %r, treating cache as expired", raw)
            return None

    def is_expired(self) -> bool:
        saved = self.saved_at()
        if saved is None:
            return True
        return self._clock() - saved >= self._ttl

    # --- Internals ---

    def _load_records(self) -> list[CryptoCurrency]:
        try:
            blob = self._store.get(RECORDS_KEY)
        except OSError as e:
            logger.warning("Failed to read cache blob, treating cache as empty: %s", e)
            return []
        if blob is None:
            return []
        try:
            return _RECORDS_ADAPTER.validate_json(blob)
        except ValidationError as e:
            logger.warning("Discarding unreadable cache blob: %s", e)
            return []


def create_cache(
    config: CacheConfig, clock: Callable[[], float] = time.time
) -> LocalCache:
    """Build a LocalCache over the blob store selected by configuration."""
    if config.backend == CacheBackend.MEMORY:
        store: KeyValueStore = MemoryKeyValueStore()
    else:
        store = FileKeyValueStore(config.cache_dir)
    return LocalCache(
        store,
        ttl_seconds=config.ttl_seconds,
        max_items=config.max_items,
        clock=clock,
    )
