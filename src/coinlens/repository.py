"""Cache-aside repository: the single entry point for record reads.

    caller → CryptoRepository → LocalCache hit? → return
                                 miss → CoinGeckoClient → write-through → return

Bulk listing always goes to the network. Single-coin reads and searches
consult the cache first. Write-through to the cache (and the durable store,
when one is attached) never fails a read: errors are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from functools import partial
from typing import Any

from coinlens.cache.local import LocalCache
from coinlens.core.models import CryptoCurrency, PriceSample
from coinlens.remote.client import RemoteSourceProtocol
from coinlens.storage.store import CoinStoreProtocol

logger = logging.getLogger(__name__)


class CryptoRepository:
    """Composes a remote source with the local cache and optional durable store.

    Parameters
    ----------
    remote : RemoteSourceProtocol
        Source of truth. Its errors propagate unchanged.
    cache : LocalCache
        Consulted first by `fetch_one` and `search`.
    store : CoinStoreProtocol | None
        Durable store that also receives every fetched record.
    """

    def __init__(
        self,
        remote: RemoteSourceProtocol,
        cache: LocalCache,
        store: CoinStoreProtocol | None = None,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._store = store
        self._pending: set[asyncio.Task[Any]] = set()

    async def fetch_all(self) -> list[CryptoCurrency]:
        """Fresh listing from the network; cached in the background.

        A remote failure is raised as-is. The cache is not used as a
        fallback, even when it holds a recent listing.
        """
        records = await self._remote.fetch_all()
        self._schedule(self._save_all_to_cache(records), "cache write-through")
        if self._store is not None:
            self._schedule(self._store.upsert_all(records), "store write-through")
        return records

    async def fetch_one(self, crypto_id: str) -> CryptoCurrency:
        cached = self._cache.get(crypto_id)
        if cached is not None:
            logger.debug("Cache hit for %s", crypto_id)
            return cached

        record = await self._remote.fetch_one(crypto_id)
        try:
            self._cache.save_one(record)
        except OSError as e:
            logger.warning("Failed to cache %s: %s", crypto_id, e)
        if self._store is not None:
            self._schedule(self._store.upsert(record), "store write-through")
        return record

    async def search(self, query: str) -> list[CryptoCurrency]:
        """Cached matches if any, otherwise the remote's partial records (uncached)."""
        local = self._cache.search(query)
        if local:
            logger.debug("Cache answered search %r with %d hits", query, len(local))
            return local
        return await self._remote.search(query)

    async def price_history(
        self, crypto_id: str, hours_back: float = 24
    ) -> list[PriceSample]:
        if self._store is None:
            return []
        return await self._store.fetch_price_samples(crypto_id, hours_back)

    async def wait_for_pending_writes(self) -> None:
        """Block until every background write-through has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- Background Writes ---

    async def _save_all_to_cache(self, records: list[CryptoCurrency]) -> None:
        self._cache.save_all(records)

    def _schedule(self, coro: Coroutine[Any, Any, None], description: str) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(partial(self._on_write_done, description))

    def _on_write_done(self, description: str, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background %s failed: %s", description, exc)
