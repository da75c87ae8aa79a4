"""Blob storage access for signed-URL transfers.

``BlobTransport`` is the narrow surface the transfer engine needs from a blob
SDK. ``AzureBlobTransport`` implements it with ``azure-storage-blob``'s asyncio
client; the SDK handles block splitting, parallelism and its own retries.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Protocol

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]
from azure.core.exceptions import AzureError, HttpResponseError
from azure.storage.blob.aio import BlobClient

from stashr.core.cache.errors import BlobTransferError
from stashr.core.logging.sanitize import mask_signed_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class BlobTransport(Protocol):
    """Operations on a single blob addressed by a signed URL."""

    async def get_content_length(self) -> int | None:
        """Size of the blob in bytes, None if the service does not report it."""
        ...

    async def download_range(
        self,
        offset: int,
        length: int,
        *,
        concurrency: int,
        timeout_s: float,
        on_progress: ProgressCallback,
    ) -> bytes:
        """Fetch ``length`` bytes starting at ``offset``."""
        ...

    async def upload_file(
        self,
        path: Path,
        *,
        block_size: int,
        max_single_shot_size: int,
        concurrency: int,
        on_progress: ProgressCallback,
    ) -> None:
        """Upload ``path`` as the blob's full content, replacing it."""
        ...


BlobTransportFactory = Callable[[str], BlobTransport]


def _status_of(error: AzureError) -> int | None:
    if isinstance(error, HttpResponseError):
        return error.status_code
    return None


async def iter_file_chunks(path: Path, chunk_size: int) -> AsyncIterator[bytes]:
    """Yield the contents of ``path`` in pieces of at most ``chunk_size`` bytes."""
    async with aiofiles.open(path, "rb") as fh:
        while chunk := await fh.read(chunk_size):
            yield chunk


class AzureBlobTransport:
    """BlobTransport backed by ``azure.storage.blob.aio.BlobClient``.

    A client is opened per operation because block sizes and timeouts are
    client-level settings in the SDK.

    Args:
        url: Signed blob URL (SAS token in the query string)
    """

    def __init__(self, url: str) -> None:
        self.url = url

    def __repr__(self) -> str:
        return f"AzureBlobTransport(url={mask_signed_url(self.url)!r})"

    async def get_content_length(self) -> int | None:
        try:
            async with BlobClient.from_blob_url(self.url) as client:
                properties = await client.get_blob_properties()
        except AzureError as e:
            raise BlobTransferError(
                f"Failed to read blob properties: {e.message}", status_code=_status_of(e)
            ) from e
        size = properties.size
        return size if size is not None and size >= 0 else None

    async def download_range(
        self,
        offset: int,
        length: int,
        *,
        concurrency: int,
        timeout_s: float,
        on_progress: ProgressCallback,
    ) -> bytes:
        async def hook(current: int, total: int | None) -> None:
            on_progress(current)

        try:
            async with BlobClient.from_blob_url(self.url, read_timeout=timeout_s) as client:
                downloader = await client.download_blob(
                    offset=offset,
                    length=length,
                    max_concurrency=concurrency,
                    progress_hook=hook,
                )
                return await downloader.readall()
        except AzureError as e:
            raise BlobTransferError(
                f"Blob download failed: {e.message}", status_code=_status_of(e)
            ) from e

    async def upload_file(
        self,
        path: Path,
        *,
        block_size: int,
        max_single_shot_size: int,
        concurrency: int,
        on_progress: ProgressCallback,
    ) -> None:
        async def hook(current: int, total: int | None) -> None:
            on_progress(current)

        size = (await aiofiles.os.stat(path)).st_size
        try:
            async with BlobClient.from_blob_url(
                self.url,
                max_block_size=block_size,
                max_single_put_size=max_single_shot_size,
            ) as client:
                logger.debug(
                    f"BlobClient: {client.blob_name}:{client.account_name}:{client.container_name}"
                )
                await client.upload_blob(
                    iter_file_chunks(path, block_size),
                    length=size,
                    overwrite=True,
                    max_concurrency=concurrency,
                    progress_hook=hook,
                )
        except AzureError as e:
            raise BlobTransferError(
                f"Upload failed: {e.message}", status_code=_status_of(e)
            ) from e
