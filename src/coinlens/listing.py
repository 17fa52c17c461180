"""Listing use case and the headless state model a list screen binds to."""

from __future__ import annotations

import logging
from typing import Protocol

from coinlens.core.exceptions import CoinLensError
from coinlens.core.models import CryptoCurrency

logger = logging.getLogger(__name__)


class _ListingRepository(Protocol):
    async def fetch_all(self) -> list[CryptoCurrency]: ...


class FetchCryptoCurrenciesUseCase:
    """Loads the market listing through the repository."""

    def __init__(self, repository: _ListingRepository) -> None:
        self._repository = repository

    async def execute(self) -> list[CryptoCurrency]:
        return await self._repository.fetch_all()


class CryptoListModel:
    """Loading/error/success state for the coin list.

    A failed load keeps whatever list was shown before and records the
    error message instead of clearing the screen.
    """

    def __init__(self, use_case: FetchCryptoCurrenciesUseCase) -> None:
        self._use_case = use_case
        self.cryptocurrencies: list[CryptoCurrency] = []
        self.is_loading = False
        self.error_message: str | None = None
        self.search_text = ""

    @property
    def filtered(self) -> list[CryptoCurrency]:
        if not self.search_text:
            return self.cryptocurrencies
        needle = self.search_text.lower()
        return [
            c
            for c in self.cryptocurrencies
            if needle in c.name.lower() or needle in c.symbol.lower()
        ]

    @property
    def has_error(self) -> bool:
        return self.error_message is not None

    async def load(self) -> None:
        self.is_loading = True
        self.error_message = None
        try:
            self.cryptocurrencies = await self._use_case.execute()
        except CoinLensError as e:
            logger.warning("Listing load failed: %s", e)
            self.error_message = str(e)
        finally:
            self.is_loading = False

    async def refresh(self) -> None:
        await self.load()

    def clear_error(self) -> None:
        self.error_message = None
