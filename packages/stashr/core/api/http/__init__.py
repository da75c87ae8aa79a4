"""HTTPX wrapper for cache service traffic.

Exposes a small surface:
- CacheHttpClient / JsonResponse: async client returning statuses instead of raising
- HttpClientConfig: configuration
- Exceptions: ApiError and subclasses
- RuntimeTokenAuth: bearer auth with the runner token
- retry / RetryPolicy: status-classified retrying
"""

from stashr.core.api.http.auth import RuntimeTokenAuth
from stashr.core.api.http.client import CacheHttpClient, JsonResponse
from stashr.core.api.http.config import HttpClientConfig
from stashr.core.api.http.errors import ApiError, DecodeError, NetworkError, TimeoutError
from stashr.core.api.http.retry import RetryPolicy, retry

__all__ = [
    "CacheHttpClient",
    "JsonResponse",
    "HttpClientConfig",
    "RuntimeTokenAuth",
    "ApiError",
    "NetworkError",
    "TimeoutError",
    "DecodeError",
    "RetryPolicy",
    "retry",
]
