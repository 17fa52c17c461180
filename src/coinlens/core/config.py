"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from coinlens.core.exceptions import ConfigError
from coinlens.core.models import CacheBackend


class ApiConfig(BaseModel):
    """Market-data API access configuration."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.coingecko.com/api/v3"
    vs_currency: str = "usd"
    order: str = "market_cap_desc"
    per_page: int = 100
    page: int = 1
    request_timeout: int = 30
    requests_per_minute: int = 30
    user_agent: str = "coinlens/0.1"

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("per_page")
    @classmethod
    def per_page_within_api_limit(cls, v: int) -> int:
        if v < 1 or v > 250:
            raise ValueError("per_page must be between 1 and 250")
        return v

    @field_validator("page", "requests_per_minute", "request_timeout")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be >= 1")
        return v


class CacheConfig(BaseModel):
    """Ephemeral cache configuration."""

    model_config = ConfigDict(frozen=True)

    backend: CacheBackend = CacheBackend.FILE
    cache_dir: str = "./data/cache"
    ttl_seconds: float = 300
    max_items: int = 100

    @field_validator("ttl_seconds")
    @classmethod
    def ttl_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ttl_seconds must be > 0")
        return v

    @field_validator("max_items")
    @classmethod
    def max_items_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_items must be >= 1")
        return v


class StorageConfig(BaseModel):
    """Durable store configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/coinlens.db"

    @model_validator(mode="after")
    def path_not_blank(self) -> StorageConfig:
        if not self.sqlite_path.strip():
            raise ValueError("sqlite_path must not be empty")
        return self


class CoinLensConfig(BaseModel):
    """Root configuration for coinlens."""

    model_config = ConfigDict(frozen=True)

    api: ApiConfig = ApiConfig()
    cache: CacheConfig = CacheConfig()
    storage: StorageConfig = StorageConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "COINLENS_",
) -> CoinLensConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (COINLENS_CACHE__TTL_SECONDS, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        COINLENS_API__PER_PAGE=50  ->  api.per_page = 50
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return CoinLensConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("COINLENS_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from COINLENS_CONFIG not found: {env_path}",
                context={"field": "COINLENS_CONFIG", "value": env_path},
            )
        return p

    default = Path("coinlens.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            existing = target.get(part)
            # Copy so the caller's YAML dict is never mutated
            nested = dict(existing) if isinstance(existing, dict) else {}
            target[part] = nested
            target = nested
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
