"""REST cache service backend (v1 protocol).

Entries are looked up with ``GET cache``, reserved with ``POST caches``,
uploaded as ranged ``PATCH caches/{id}`` requests and committed with a final
``PATCH caches/{id}`` carrying the archive size.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import quote

from stashr.core.api.http.auth import RuntimeTokenAuth
from stashr.core.api.http.client import CacheHttpClient
from stashr.core.api.http.config import HttpClientConfig
from stashr.core.api.http.retry import DEFAULT_RETRY_ATTEMPTS, retry
from stashr.core.cache.backends.contracts import (
    ArtifactCacheEntry,
    CommitCacheRequest,
    ReserveCacheRequest,
    ReserveCacheResponse,
)
from stashr.core.cache.backends.protocol import BackendBase
from stashr.core.cache.constants import V1_ACCEPT_HEADER, V1_API_PATH
from stashr.core.cache.errors import CacheError, CacheServiceError
from stashr.core.cache.fingerprint import compute_version
from stashr.core.cache.models import (
    ArchiveFile,
    CacheEntry,
    CacheKeys,
    CacheOptions,
    Conflict,
    Finalized,
    FinalizeFailed,
    FinalizeResult,
    Rejected,
    Reserved,
    ReserveResult,
    UploadTicket,
)
from stashr.core.cache.transfer.blob import AzureBlobTransport, BlobTransportFactory
from stashr.core.cache.transfer.download import download_segmented, download_stream
from stashr.core.cache.transfer.upload import upload_chunks
from stashr.core.cache.utils import is_azure_blob_url
from stashr.core.config.models import CacheSettings, DownloadOptions, UploadOptions
from stashr.core.logging.sanitize import mask_secret_urls

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY_S = 5.0


def cache_api_base_url(service_url: str) -> str:
    """Return the artifact cache API root for a service URL."""
    if not service_url:
        raise CacheError("Cache Service Url not found, unable to restore cache.")
    base = service_url if service_url.endswith("/") else service_url + "/"
    return f"{base}{V1_API_PATH}"


class RestCacheBackend(BackendBase):
    """Cache backend for the REST artifact cache service.

    Args:
        settings: Service URL and runtime token
        api_client: Authenticated client for the cache API (built from settings if None)
        download_client: Unauthenticated client for archive URLs (built if None)
        blob_transport_factory: Blob access for archives hosted in Azure storage
        max_attempts: Attempts per service request
        retry_delay_s: Pause between attempts

    Example:
        >>> async with RestCacheBackend(load_cache_settings()) as backend:
        ...     entry = await backend.lookup(keys, ["node_modules"], CacheOptions())
    """

    def __init__(
        self,
        settings: CacheSettings,
        *,
        api_client: CacheHttpClient | None = None,
        download_client: CacheHttpClient | None = None,
        blob_transport_factory: BlobTransportFactory = AzureBlobTransport,
        max_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
    ) -> None:
        self.settings = settings
        self._api = api_client or CacheHttpClient(
            HttpClientConfig(
                base_url=cache_api_base_url(settings.service_url),
                headers={"Accept": V1_ACCEPT_HEADER},
            ),
            auth=RuntimeTokenAuth(token=settings.runtime_token),
        )
        self._download = download_client or CacheHttpClient()
        self._blob_transport_factory = blob_transport_factory
        self.max_attempts = max_attempts
        self.retry_delay_s = retry_delay_s

    async def aclose(self) -> None:
        await self._api.aclose()
        await self._download.aclose()

    def _version(self, paths: Sequence[str], options: CacheOptions) -> str:
        # The REST service predates compression tokens for the default method
        return compute_version(
            paths,
            options.compression_method,
            options.enable_cross_os_archive,
            omit_default_compression=True,
        )

    async def lookup(
        self, keys: CacheKeys, paths: Sequence[str], options: CacheOptions
    ) -> CacheEntry | None:
        version = self._version(paths, options)
        resource = f"cache?keys={quote(','.join(keys.all_keys), safe='')}&version={version}"

        response = await retry(
            "getCacheEntry",
            lambda: self._api.get_json(resource),
            lambda r: r.status_code,
            max_attempts=self.max_attempts,
            delay_s=self.retry_delay_s,
        )

        if response.status_code == 204:
            logger.debug(f"No cache entry for keys {keys.all_keys} and version {version}")
            return None
        if not response.ok:
            raise CacheServiceError(
                f"Cache service responded with {response.status_code}",
                status_code=response.status_code,
            )

        result = ArtifactCacheEntry.model_validate(response.result or {})
        if not result.archive_location:
            # A hit without a location cannot be restored
            return None

        logger.debug(f"Cache Result: {mask_secret_urls(response.result)}")
        return CacheEntry(
            matched_key=result.cache_key or keys.primary,
            archive_location=result.archive_location,
            scope=result.scope,
            creation_time=result.creation_time,
        )

    async def reserve(
        self, key: str, paths: Sequence[str], options: CacheOptions
    ) -> ReserveResult:
        version = self._version(paths, options)
        body = ReserveCacheRequest(key=key, version=version).model_dump(
            by_alias=True, exclude_none=True
        )

        response = await retry(
            "reserveCache",
            lambda: self._api.post_json("caches", body),
            lambda r: r.status_code,
            max_attempts=self.max_attempts,
            delay_s=self.retry_delay_s,
        )

        cache_id = None
        if response.ok:
            cache_id = ReserveCacheResponse.model_validate(response.result or {}).cache_id
        if cache_id is not None and cache_id > 0:
            return Reserved(ticket=UploadTicket(key=key, version=version, cache_id=cache_id))

        if response.status_code == 400:
            return Rejected(
                reason=response.error_message
                or f"Cache reservation for key {key} was rejected, over the data cap limit."
            )
        return Conflict(
            reason=(
                f"Unable to reserve cache with key {key}, another job may be creating this "
                f"cache. More details: {response.error_message}"
            )
        )

    async def transfer_up(
        self, ticket: UploadTicket, archive: ArchiveFile, options: UploadOptions
    ) -> None:
        if ticket.cache_id is None:
            raise CacheError(f"Reservation for key {ticket.key} has no cache id")

        logger.debug("Upload cache")
        await upload_chunks(
            self._api,
            f"caches/{ticket.cache_id}",
            archive.path,
            chunk_size=options.upload_chunk_size,
            concurrency=options.upload_concurrency,
            max_attempts=self.max_attempts,
            retry_delay_s=self.retry_delay_s,
        )

    async def transfer_down(
        self, entry: CacheEntry, destination: Path, options: DownloadOptions
    ) -> None:
        url = entry.download_url

        async def stream() -> None:
            await download_stream(
                self._download,
                url,
                destination,
                options.socket_timeout_ms,
                max_attempts=self.max_attempts,
                retry_delay_s=self.retry_delay_s,
            )

        if options.use_azure_sdk and is_azure_blob_url(url):
            transport = self._blob_transport_factory(url)
            await download_segmented(transport, destination, options, stream)
        else:
            await stream()

    async def finalize(self, ticket: UploadTicket, size_bytes: int) -> FinalizeResult:
        if ticket.cache_id is None:
            raise CacheError(f"Reservation for key {ticket.key} has no cache id")

        logger.debug("Commiting cache")
        response = await retry(
            "commitCache",
            lambda: self._api.patch_json(
                f"caches/{ticket.cache_id}", CommitCacheRequest(size=size_bytes).model_dump()
            ),
            lambda r: r.status_code,
            max_attempts=self.max_attempts,
            delay_s=self.retry_delay_s,
        )
        if not response.ok:
            return FinalizeFailed(
                reason=f"Cache service responded with {response.status_code} during commit cache."
            )
        return Finalized(entry_id=ticket.cache_id)
