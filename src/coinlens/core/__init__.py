"""Foundation types, configuration and exceptions."""

from coinlens.core.config import (
    ApiConfig,
    CacheConfig,
    CoinLensConfig,
    StorageConfig,
    load_config,
)
from coinlens.core.exceptions import (
    CoinLensError,
    ConfigError,
    DecodingError,
    InvalidURLError,
    NetworkError,
    NoDataError,
    RemoteSourceError,
    StorageError,
)
from coinlens.core.models import (
    REQUIRED_RECORD_FIELDS,
    ROI,
    CacheBackend,
    CryptoCurrency,
    CryptoId,
    PriceSample,
    SearchCoin,
    SearchResponse,
    format_large_number,
)

__all__ = [
    # Type aliases
    "CryptoId",
    # Enums
    "CacheBackend",
    # Market models
    "ROI",
    "CryptoCurrency",
    "SearchCoin",
    "SearchResponse",
    "PriceSample",
    "REQUIRED_RECORD_FIELDS",
    "format_large_number",
    # Config
    "CoinLensConfig",
    "ApiConfig",
    "CacheConfig",
    "StorageConfig",
    "load_config",
    # Exceptions
    "CoinLensError",
    "ConfigError",
    "RemoteSourceError",
    "InvalidURLError",
    "NetworkError",
    "DecodingError",
    "NoDataError",
    "StorageError",
]
