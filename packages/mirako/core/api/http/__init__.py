"""HTTPX wrapper used by the Mirako service client.

Exposes a small surface:
- AsyncApiClient: async client with structured errors and request logging
- HttpClientConfig: configuration
- BearerAuth: static bearer-token auth
- RetryPolicy: opt-in retries
- Exceptions: ApiError and subclasses, plus friendly_message()
"""

from mirako.core.api.http.auth import BearerAuth
from mirako.core.api.http.client import AsyncApiClient
from mirako.core.api.http.config import HttpClientConfig
from mirako.core.api.http.errors import (
    ApiError,
    AuthError,
    ClientError,
    NetworkError,
    NotFoundError,
    PaymentRequiredError,
    RateLimitError,
    ResponseDecodeError,
    ServerError,
    TimeoutError,
    UnexpectedStatusError,
    friendly_message,
)
from mirako.core.api.http.retry import RetryPolicy

__all__ = [
    "AsyncApiClient",
    "HttpClientConfig",
    "BearerAuth",
    "RetryPolicy",
    "ApiError",
    "NetworkError",
    "TimeoutError",
    "ResponseDecodeError",
    "RateLimitError",
    "AuthError",
    "PaymentRequiredError",
    "NotFoundError",
    "ClientError",
    "ServerError",
    "UnexpectedStatusError",
    "friendly_message",
]
