"""Error taxonomy for outbound delivery, replay and log storage."""

from __future__ import annotations


class DeliveryError(Exception):
    """Base class for every error raised or returned by formrelay."""


class EncodingError(DeliveryError):
    """Body template is malformed or the content type is unknown. Never retried."""


class TransportError(DeliveryError):
    """Connection failure or timeout before an HTTP response was received.

    Attributes:
        is_timeout: True when the transport gave up waiting for the endpoint.
    """

    def __init__(self, message: str, is_timeout: bool = False) -> None:
        super().__init__(message)
        self.is_timeout = is_timeout


class HTTPStatusError(DeliveryError):
    """Endpoint answered with a non-2xx status code."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClientError(HTTPStatusError):
    """4xx response. Never retried."""


class ServerError(HTTPStatusError):
    """5xx response. Retried while the policy allows."""


class RateLimited(DeliveryError):
    """Too many manual replays in the trailing hour."""


class RetryLimitExceeded(DeliveryError):
    """The log entry has already been replayed the maximum number of times."""


class StorageError(DeliveryError):
    """Request log store is unavailable on a read path."""
