"""Durable store: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite
from pydantic import ValidationError

from coinlens.core.config import StorageConfig
from coinlens.core.exceptions import StorageError
from coinlens.core.models import REQUIRED_RECORD_FIELDS, CryptoCurrency, PriceSample

logger = logging.getLogger(__name__)

# Record columns in table order; roi is stored separately as JSON
_RECORD_COLUMNS: tuple[str, ...] = (
    "id",
    "symbol",
    "name",
    "image",
    "current_price",
    "market_cap",
    "market_cap_rank",
    "fully_diluted_valuation",
    "total_volume",
    "high_24h",
    "low_24h",
    "price_change_24h",
    "price_change_percentage_24h",
    "market_cap_change_24h",
    "market_cap_change_percentage_24h",
    "circulating_supply",
    "total_supply",
    "max_supply",
    "ath",
    "ath_change_percentage",
    "ath_date",
    "atl",
    "atl_change_percentage",
    "atl_date",
    "last_updated",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@runtime_checkable
class CoinStoreProtocol(Protocol):
    """Abstract durable store for records and their price history."""

    async def upsert(self, record: CryptoCurrency) -> None: ...
    async def upsert_all(self, records: Iterable[CryptoCurrency]) -> None: ...
    async def fetch_all(self) -> list[CryptoCurrency]: ...
    async def search(self, query: str) -> list[CryptoCurrency]: ...
    async def clear_all(self) -> None: ...
    async def append_price_sample(self, crypto_id: str, price: float) -> None: ...
    async def fetch_price_samples(
        self, crypto_id: str, hours_back: float = 24
    ) -> list[PriceSample]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteCoinStore:
    """SQLite implementation of the durable store.

    Reads and writes share one connection, so both go through one
    asyncio.Lock. A write transaction is never visible half-done: a read
    issued while a write is in flight waits for its commit or rollback.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS cryptocurrencies (
                    id TEXT PRIMARY KEY,
                    symbol TEXT,
                    name TEXT,
                    image TEXT,
                    current_price REAL NOT NULL DEFAULT 0,
                    market_cap REAL NOT NULL DEFAULT 0,
                    market_cap_rank INTEGER NOT NULL DEFAULT 0,
                    fully_diluted_valuation REAL,
                    total_volume REAL NOT NULL DEFAULT 0,
                    high_24h REAL NOT NULL DEFAULT 0,
                    low_24h REAL NOT NULL DEFAULT 0,
                    price_change_24h REAL NOT NULL DEFAULT 0,
                    price_change_percentage_24h REAL NOT NULL DEFAULT 0,
                    market_cap_change_24h REAL NOT NULL DEFAULT 0,
                    market_cap_change_percentage_24h REAL NOT NULL DEFAULT 0,
                    circulating_supply REAL NOT NULL DEFAULT 0,
                    total_supply REAL,
                    max_supply REAL,
                    ath REAL NOT NULL DEFAULT 0,
                    ath_change_percentage REAL NOT NULL DEFAULT 0,
                    ath_date TEXT,
                    atl REAL NOT NULL DEFAULT 0,
                    atl_change_percentage REAL NOT NULL DEFAULT 0,
                    atl_date TEXT,
                    roi_json TEXT,
                    last_updated TEXT,
                    timestamp TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS price_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    crypto_id TEXT NOT NULL,
                    price REAL NOT NULL,
                    timestamp TEXT NOT NULL
                )""",
                # Indexes
                "CREATE INDEX IF NOT EXISTS idx_crypto_rank ON cryptocurrencies(market_cap_rank)",
                "CREATE INDEX IF NOT EXISTS idx_price_history_coin_time ON price_history(crypto_id, timestamp)",
            ],
        ),
    }

    def __init__(
        self,
        config: StorageConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._path = config.sqlite_path
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except aiosqlite.Error:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Record Writes ---

    async def upsert(self, record: CryptoCurrency) -> None:
        """Insert or update one record and log its price, in one transaction."""
        await self.upsert_all([record])

    async def upsert_all(self, records: Iterable[CryptoCurrency]) -> None:
        """Upsert every record, one price sample each, in one transaction."""
        records = list(records)
        if not records:
            return
        async with self._lock:
            try:
                now = self._clock().isoformat()
                for record in records:
                    await self._write_record(record, now)
                    await self._insert_price_sample(record.id, record.current_price, now)
                await self._db.commit()
            except Exception as e:
                await self._rollback()
                raise StorageError(
                    f"Failed to upsert {len(records)} records: {e}",
                    context={"operation": "upsert", "table": "cryptocurrencies"},
                ) from e
        logger.info("Stored %d records", len(records))

    async def append_price_sample(self, crypto_id: str, price: float) -> None:
        async with self._lock:
            try:
                await self._insert_price_sample(
                    crypto_id, price, self._clock().isoformat()
                )
                await self._db.commit()
            except Exception as e:
                await self._rollback()
                raise StorageError(
                    f"Failed to append price sample: {e}",
                    context={"operation": "insert", "table": "price_history"},
                ) from e

    async def clear_all(self) -> None:
        """Delete every record and every price sample."""
        async with self._lock:
            try:
                await self._db.execute("DELETE FROM cryptocurrencies")
                await self._db.execute("DELETE FROM price_history")
                await self._db.commit()
            except Exception as e:
                await self._rollback()
                raise StorageError(
                    f"Failed to clear store: {e}",
                    context={"operation": "delete", "table": "cryptocurrencies"},
                ) from e

    # --- Record Reads ---

    async def fetch_all(self) -> list[CryptoCurrency]:
        """All complete records, lowest market-cap rank first."""
        return await self._query_records(
            "SELECT * FROM cryptocurrencies ORDER BY market_cap_rank ASC, id ASC", ()
        )

    async def search(self, query: str) -> list[CryptoCurrency]:
        """Case-insensitive substring match on name or symbol, by rank."""
        needle = query.lower()
        return await self._query_records(
            """SELECT * FROM cryptocurrencies
               WHERE instr(lower(name), ?) > 0 OR instr(lower(symbol), ?) > 0
               ORDER BY market_cap_rank ASC, id ASC""",
            (needle, needle),
        )

    async def count(self) -> int:
        try:
            async with self._lock, self._db.execute(
                "SELECT COUNT(*) FROM cryptocurrencies"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0]
        except aiosqlite.Error as e:
            logger.warning("Failed to count records: %s", e)
            return 0

    async def fetch_price_samples(
        self, crypto_id: str, hours_back: float = 24
    ) -> list[PriceSample]:
        """Samples for one coin from the last `hours_back` hours, oldest first."""
        since = (self._clock() - timedelta(hours=hours_back)).isoformat()
        try:
            async with self._lock, self._db.execute(
                """SELECT crypto_id, price, timestamp FROM price_history
                   WHERE crypto_id = ? AND timestamp >= ?
                   ORDER BY timestamp ASC, id ASC""",
                (crypto_id, since),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.warning("Failed to read price history for %s: %s", crypto_id, e)
            return []
        return [
            PriceSample(
                crypto_id=row["crypto_id"],
                price=row["price"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
            )
            for row in rows
        ]

    # --- Helpers ---

    async def _write_record(self, record: CryptoCurrency, saved_at: str) -> None:
        data = record.model_dump(mode="json")
        values = [data[col] for col in _RECORD_COLUMNS]
        roi_json = json.dumps(data["roi"]) if data["roi"] is not None else None
        columns = (*_RECORD_COLUMNS, "roi_json", "timestamp")
        updates = ", ".join(f"{col} = excluded.{col}" for col in columns[1:])
        await self._db.execute(
            f"""INSERT INTO cryptocurrencies ({", ".join(columns)})
                VALUES ({", ".join("?" for _ in columns)})
                ON CONFLICT(id) DO UPDATE SET {updates}""",
            (*values, roi_json, saved_at),
        )

    async def _insert_price_sample(
        self, crypto_id: str, price: float, timestamp: str
    ) -> None:
        await self._db.execute(
            "INSERT INTO price_history (crypto_id, price, timestamp) VALUES (?, ?, ?)",
            (crypto_id, price, timestamp),
        )

    async def _rollback(self) -> None:
        try:
            await self._db.rollback()
        except aiosqlite.Error as e:
            logger.warning("Rollback failed: %s", e)

    async def _query_records(
        self, query: str, params: tuple
    ) -> list[CryptoCurrency]:
        try:
            async with self._lock, self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.warning("Record query failed, returning no rows: %s", e)
            return []
        records = []
        for row in rows:
            record = self._row_to_record(row)
            if record is not None:
                records.append(record)
        return records

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> CryptoCurrency | None:
        """Map a row to a record, or None if it lacks required fields."""
        missing = [f for f in REQUIRED_RECORD_FIELDS if row[f] is None]
        if missing:
            logger.debug("Skipping row %r missing %s", row["id"], ", ".join(missing))
            return None
        data = {col: row[col] for col in _RECORD_COLUMNS}
        data["ath_date"] = data["ath_date"] or ""
        data["atl_date"] = data["atl_date"] or ""
        try:
            data["roi"] = json.loads(row["roi_json"]) if row["roi_json"] else None
            return CryptoCurrency.model_validate(data)
        except (ValidationError, ValueError) as e:
            logger.debug("Skipping unreadable row %r: %s", row["id"], e)
            return None


async def create_store(config: StorageConfig) -> SqliteCoinStore:
    """Create and initialize the durable store."""
    store = SqliteCoinStore(config)
    await store.initialize()
    return store
