"""Cache service backends.

Two implementations of ``CacheBackend``: the REST artifact cache service (v1)
and the signed-URL results service (v2). ``create_backend`` picks one from
the configured service version.
"""

from __future__ import annotations

import logging

from stashr.core.cache.backends.protocol import BackendBase, CacheBackend
from stashr.core.cache.backends.rest import RestCacheBackend
from stashr.core.cache.backends.rpc import CacheServiceRpcClient, RpcCacheBackend
from stashr.core.cache.errors import CacheError
from stashr.core.config.models import CacheServiceVersion, CacheSettings

logger = logging.getLogger(__name__)


def create_backend(settings: CacheSettings) -> CacheBackend:
    """Build the backend for ``settings.service_version``.

    Raises:
        CacheError: No runtime token is configured, or the signed-URL service was
            requested on a GHES installation
    """
    logger.debug(f"Cache service version: {settings.service_version.value}")
    if not settings.runtime_token:
        raise CacheError("Unable to get the ACTIONS_RUNTIME_TOKEN env variable")
    if settings.service_version == CacheServiceVersion.V2:
        if settings.is_ghes:
            raise CacheError("The signed-URL cache service is not currently supported on GHES.")
        return RpcCacheBackend(settings)
    return RestCacheBackend(settings)


__all__ = [
    "BackendBase",
    "CacheBackend",
    "CacheServiceRpcClient",
    "RestCacheBackend",
    "RpcCacheBackend",
    "create_backend",
]
