"""Signed-URL cache service backend (v2 protocol).

Metadata travels as JSON RPCs to the results service; archive bytes go
straight to blob storage through pre-signed URLs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from stashr.core.api.http.auth import RuntimeTokenAuth
from stashr.core.api.http.client import CacheHttpClient
from stashr.core.api.http.config import HttpClientConfig
from stashr.core.api.http.errors import DecodeError, NetworkError, TimeoutError
from stashr.core.api.http.retry import RetryPolicy, parse_retry_after_seconds
from stashr.core.cache.backends.contracts import (
    CreateCacheEntryRequest,
    CreateCacheEntryResponse,
    FinalizeCacheEntryUploadRequest,
    FinalizeCacheEntryUploadResponse,
    GetCacheEntryDownloadURLRequest,
    GetCacheEntryDownloadURLResponse,
)
from stashr.core.cache.backends.protocol import BackendBase
from stashr.core.cache.constants import RPC_SERVICE_PATH
from stashr.core.cache.errors import CacheError, RpcError
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
    Reserved,
    ReserveResult,
    UploadTicket,
)
from stashr.core.cache.transfer.blob import AzureBlobTransport, BlobTransportFactory
from stashr.core.cache.transfer.download import download_segmented, download_stream
from stashr.core.cache.transfer.upload import upload_to_blob
from stashr.core.config.models import CacheSettings, DownloadOptions, UploadOptions
from stashr.core.logging.sanitize import mask_secret_urls

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)

USAGE_ERROR_MESSAGE = (
    "Cache storage quota has been hit. Unable to upload any new cache entries. "
    "Usage is recalculated every 6-12 hours."
)


class CacheServiceRpcClient:
    """JSON RPC client for the results cache service.

    Retries 5xx/429/413 responses and transport failures with exponential
    backoff; other statuses fail immediately.

    Args:
        results_url: Results service base URL
        token: Runtime token for bearer auth
        retry_policy: Backoff settings (5 attempts, 3s base, x1.5 by default)
        http_client: Preconfigured client (built from results_url/token if None)
        sleep: Awaitable sleep (injectable for tests)
    """

    def __init__(
        self,
        results_url: str,
        token: str,
        *,
        retry_policy: RetryPolicy | None = None,
        http_client: CacheHttpClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not results_url and http_client is None:
            raise CacheError("Cache Service Url not found, unable to restore cache.")
        self.retry_policy = retry_policy or RetryPolicy()
        self._http = http_client or CacheHttpClient(
            HttpClientConfig(base_url=results_url),
            auth=RuntimeTokenAuth(token=token),
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(
        self, method: str, request: BaseModel, response_model: type[ResponseT]
    ) -> ResponseT:
        """Invoke ``method`` and validate its JSON response.

        Raises:
            RpcError: Non-retryable status, undecodable body, or attempts exhausted
        """
        path = f"{RPC_SERVICE_PATH}{method}"
        body = request.model_dump(mode="json")
        max_attempts = self.retry_policy.max_attempts
        logger.debug(f"Requesting {method}")

        for attempt in range(1, max_attempts + 1):
            status_code: int | None = None
            retry_after: float | None = None
            try:
                response = await self._http.post_json(path, body)
            except DecodeError as e:
                raise RpcError(method, f"Invalid response body: {e.message}") from e
            except (NetworkError, TimeoutError) as e:
                retryable = True
                error_message = e.message
            else:
                if response.ok:
                    logger.debug(f"{method} response: {mask_secret_urls(response.result)}")
                    return response_model.model_validate(response.result or {})

                status_code = response.status_code
                error_message = f"Failed request: ({status_code}) {response.error_message or ''}"
                if response.error_message and "insufficient usage" in response.error_message:
                    raise RpcError(method, USAGE_ERROR_MESSAGE, status_code=status_code)
                retryable = self.retry_policy.allows_status(status_code)
                retry_after = parse_retry_after_seconds(response.headers.get("retry-after"))

            if not retryable:
                raise RpcError(
                    method,
                    f"Received non-retryable error: {error_message.strip()}",
                    status_code=status_code,
                )
            if attempt == max_attempts:
                raise RpcError(
                    method,
                    f"Failed to make request after {max_attempts} attempts: "
                    f"{error_message.strip()}",
                    status_code=status_code,
                )

            delay = (
                retry_after
                if retry_after is not None
                else self.retry_policy.compute_delay(attempt)
            )
            logger.info(
                f"Attempt {attempt} of {max_attempts} failed with error: {error_message.strip()}. "
                f"Retrying request in {int(delay * 1000)} ms..."
            )
            await self._sleep(delay)

        raise RpcError(method, "Request failed")

    async def get_cache_entry_download_url(
        self, request: GetCacheEntryDownloadURLRequest
    ) -> GetCacheEntryDownloadURLResponse:
        return await self.call(
            "GetCacheEntryDownloadURL", request, GetCacheEntryDownloadURLResponse
        )

    async def create_cache_entry(
        self, request: CreateCacheEntryRequest
    ) -> CreateCacheEntryResponse:
        return await self.call("CreateCacheEntry", request, CreateCacheEntryResponse)

    async def finalize_cache_entry_upload(
        self, request: FinalizeCacheEntryUploadRequest
    ) -> FinalizeCacheEntryUploadResponse:
        return await self.call(
            "FinalizeCacheEntryUpload", request, FinalizeCacheEntryUploadResponse
        )


class RpcCacheBackend(BackendBase):
    """Cache backend for the signed-URL results service.

    Args:
        settings: Results service URL and runtime token
        rpc_client: RPC client (built from settings if None)
        download_client: Unauthenticated client for the streaming fallback (built if None)
        blob_transport_factory: Blob access for signed URLs
    """

    def __init__(
        self,
        settings: CacheSettings,
        *,
        rpc_client: CacheServiceRpcClient | None = None,
        download_client: CacheHttpClient | None = None,
        blob_transport_factory: BlobTransportFactory = AzureBlobTransport,
    ) -> None:
        self.settings = settings
        self._rpc = rpc_client or CacheServiceRpcClient(
            settings.results_url, settings.runtime_token
        )
        self._download = download_client or CacheHttpClient()
        self._blob_transport_factory = blob_transport_factory

    async def aclose(self) -> None:
        await self._rpc.aclose()
        await self._download.aclose()

    @staticmethod
    def _version(paths: Sequence[str], options: CacheOptions) -> str:
        return compute_version(paths, options.compression_method, options.enable_cross_os_archive)

    async def lookup(
        self, keys: CacheKeys, paths: Sequence[str], options: CacheOptions
    ) -> CacheEntry | None:
        version = self._version(paths, options)
        response = await self._rpc.get_cache_entry_download_url(
            GetCacheEntryDownloadURLRequest(
                key=keys.primary, restore_keys=list(keys.restore_keys), version=version
            )
        )
        if not response.ok:
            logger.debug(
                f"Cache not found for version {version} of keys: {', '.join(keys.all_keys)}"
            )
            return None

        matched_key = response.matched_key or keys.primary
        logger.info(f"Cache hit for: {matched_key}")
        return CacheEntry(matched_key=matched_key, signed_download_url=response.signed_download_url)

    async def reserve(
        self, key: str, paths: Sequence[str], options: CacheOptions
    ) -> ReserveResult:
        version = self._version(paths, options)
        response = await self._rpc.create_cache_entry(
            CreateCacheEntryRequest(key=key, version=version)
        )
        if not response.ok or not response.signed_upload_url:
            details = f" More details: {response.message}" if response.message else ""
            return Conflict(
                reason=(
                    f"Unable to reserve cache with key {key}, another job may be creating "
                    f"this cache.{details}"
                )
            )
        return Reserved(
            ticket=UploadTicket(
                key=key, version=version, signed_upload_url=response.signed_upload_url
            )
        )

    async def transfer_up(
        self, ticket: UploadTicket, archive: ArchiveFile, options: UploadOptions
    ) -> None:
        if not ticket.signed_upload_url:
            raise CacheError(f"Reservation for key {ticket.key} has no upload URL")
        logger.debug(f"Attempting to upload cache located at: {archive.path}")
        transport = self._blob_transport_factory(ticket.signed_upload_url)
        await upload_to_blob(transport, archive, options)

    async def transfer_down(
        self, entry: CacheEntry, destination: Path, options: DownloadOptions
    ) -> None:
        url = entry.download_url

        async def stream() -> None:
            await download_stream(self._download, url, destination, options.socket_timeout_ms)

        logger.debug(f"Starting download of archive to: {destination}")
        if options.use_azure_sdk:
            transport = self._blob_transport_factory(url)
            await download_segmented(transport, destination, options, stream)
        else:
            await stream()

    async def finalize(self, ticket: UploadTicket, size_bytes: int) -> FinalizeResult:
        response = await self._rpc.finalize_cache_entry_upload(
            FinalizeCacheEntryUploadRequest(
                key=ticket.key, version=ticket.version, size_bytes=str(size_bytes)
            )
        )
        logger.debug(f"FinalizeCacheEntryUploadResponse: {response.ok}")
        if not response.ok:
            return FinalizeFailed(
                reason=(
                    f"Unable to finalize cache with key {ticket.key}, another job may be "
                    "finalizing this cache."
                )
            )
        return Finalized(entry_id=response.entry_id)
