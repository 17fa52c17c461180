"""Custom exception hierarchy for coinlens."""

from typing import Any


class CoinLensError(Exception):
    """Base exception for all coinlens errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CoinLensError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value
    """


class RemoteSourceError(CoinLensError):
    """A call to the market-data API failed.

    Policy: surface to the caller unchanged. Nothing retries.
    """


class InvalidURLError(RemoteSourceError):
    """The endpoint or its query string could not be constructed.

    Context keys:
        endpoint (str): the endpoint template or base URL
        value (str): the offending path segment, if any
    """


class NetworkError(RemoteSourceError):
    """Transport-level failure or a non-2xx response.

    Context keys:
        url (str): the URL that was being fetched
        status_code (int | None): HTTP status, when a response arrived
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, context)
        self.cause = cause


class DecodingError(RemoteSourceError):
    """Response body did not match the expected schema.

    Context keys:
        url (str): the URL whose body failed to decode
        schema (str): name of the expected schema
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, context)
        self.cause = cause


class NoDataError(RemoteSourceError):
    """The API answered without a body. Reserved; current call paths never raise it."""


class StorageError(CoinLensError):
    """Durable store operation failed.

    Policy: writes and initialization raise. Reads log and return empty.

    Context keys:
        operation (str): "insert", "query", "migrate", etc.
        table (str): the table involved
    """
