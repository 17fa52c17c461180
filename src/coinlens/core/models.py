"""Pydantic models for market records, search hits and price samples."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

CryptoId = str

# Fields that must be present for a durable row to be turned back into a record
REQUIRED_RECORD_FIELDS: tuple[str, ...] = ("id", "symbol", "name", "image", "last_updated")

# --- Enumerations ---


class CacheBackend(StrEnum):
    """Where the ephemeral cache keeps its blobs."""

    MEMORY = "memory"
    FILE = "file"


# --- Market Models ---


class ROI(BaseModel):
    """Return on investment since the coin's ICO."""

    model_config = ConfigDict(frozen=True)

    times: float
    currency: str
    percentage: float


class CryptoCurrency(BaseModel):
    """Market snapshot of a single coin, keyed by the API's coin id.

    Field names match the API's snake_case keys, so the same model decodes
    the listing endpoint, the cache blob and the durable rows.
    """

    model_config = ConfigDict(frozen=True)

    id: CryptoId
    symbol: str
    name: str
    image: str
    current_price: float
    market_cap: float
    market_cap_rank: int = 0
    fully_diluted_valuation: float | None = None
    total_volume: float
    high_24h: float
    low_24h: float
    price_change_24h: float
    price_change_percentage_24h: float
    market_cap_change_24h: float
    market_cap_change_percentage_24h: float
    circulating_supply: float
    total_supply: float | None = None
    max_supply: float | None = None
    ath: float
    ath_change_percentage: float
    ath_date: str
    atl: float
    atl_change_percentage: float
    atl_date: str
    roi: ROI | None = None
    last_updated: str

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("id must not be empty")
        return v

    @field_validator("market_cap_rank", mode="before")
    @classmethod
    def unranked_is_zero(cls, v: object) -> object:
        """The API sends null for coins without a rank."""
        return 0 if v is None else v

    @field_validator("market_cap_rank")
    @classmethod
    def rank_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"market_cap_rank must be >= 0, got {v}")
        return v

    @property
    def is_partial(self) -> bool:
        """True for records built from a search hit rather than market data."""
        return self.last_updated == ""

    @property
    def formatted_current_price(self) -> str:
        return f"{self.current_price:.2f}"

    @property
    def formatted_market_cap(self) -> str:
        return format_large_number(self.market_cap)

    @property
    def formatted_volume(self) -> str:
        return format_large_number(self.total_volume)

    @property
    def price_change_color(self) -> str:
        return "green" if self.price_change_percentage_24h >= 0 else "red"


class SearchCoin(BaseModel):
    """One hit from the search endpoint: a much lighter schema than the listing."""

    model_config = ConfigDict(frozen=True)

    id: CryptoId
    name: str
    symbol: str
    market_cap_rank: int | None = None

    def to_cryptocurrency(self) -> CryptoCurrency:
        """Build a partial record. Market numbers are zero, dates empty."""
        return CryptoCurrency(
            id=self.id,
            symbol=self.symbol,
            name=self.name,
            image="",
            current_price=0,
            market_cap=0,
            market_cap_rank=self.market_cap_rank or 0,
            fully_diluted_valuation=None,
            total_volume=0,
            high_24h=0,
            low_24h=0,
            price_change_24h=0,
            price_change_percentage_24h=0,
            market_cap_change_24h=0,
            market_cap_change_percentage_24h=0,
            circulating_supply=0,
            total_supply=None,
            max_supply=None,
            ath=0,
            ath_change_percentage=0,
            ath_date="",
            atl=0,
            atl_change_percentage=0,
            atl_date="",
            roi=None,
            last_updated="",
        )


class SearchResponse(BaseModel):
    """Body of the search endpoint. Only the coin hits are used."""

    model_config = ConfigDict(frozen=True)

    coins: list[SearchCoin]


class PriceSample(BaseModel):
    """A single logged price observation from the durable store."""

    model_config = ConfigDict(frozen=True)

    crypto_id: CryptoId
    price: float
    timestamp: datetime


def format_large_number(number: float) -> str:
    """Compact a number with a K/M/B suffix and up to two fraction digits."""
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if number >= threshold:
            return _format_decimal(number / threshold) + suffix
    return _format_decimal(number)


def _format_decimal(value: float) -> str:
    text = f"{value:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
