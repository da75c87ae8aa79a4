"""Archive download.

``download_stream`` pulls the archive as one HTTP stream with an idle-read
timeout. ``download_segmented`` fetches it through the blob SDK in bounded
segments written at their offsets, falling back to streaming when the blob
size is unknown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
import httpx

from stashr.core.api.http.client import CacheHttpClient
from stashr.core.api.http.retry import is_server_error_status, is_success_status, retry
from stashr.core.cache.constants import MAX_SEGMENT_SIZE, SOCKET_TIMEOUT_MS
from stashr.core.cache.errors import (
    CacheServiceError,
    DownloadTimeoutError,
    IncompleteDownloadError,
    TransferError,
)
from stashr.core.cache.transfer.blob import BlobTransport
from stashr.core.cache.transfer.progress import TransferProgress, reporting
from stashr.core.config.models import DownloadOptions

logger = logging.getLogger(__name__)


async def download_stream(
    client: CacheHttpClient,
    url: str,
    destination: Path,
    socket_timeout_ms: int = SOCKET_TIMEOUT_MS,
    *,
    max_attempts: int = 2,
    retry_delay_s: float = 0.0,
) -> None:
    """Stream ``url`` into ``destination``.

    The socket timeout bounds the gap between received bytes, not the total
    duration. When the response carries ``Content-Length`` the written size
    must match it.

    Raises:
        RetryExhaustedError: No usable response after retrying
        CacheServiceError: Non-2xx response that is not retried
        DownloadTimeoutError: No bytes arrived within ``socket_timeout_ms``
        IncompleteDownloadError: Written size differs from Content-Length
    """
    idle_s = socket_timeout_ms / 1000
    timeout = httpx.Timeout(idle_s, connect=max(idle_s, 10.0))

    async def attempt() -> httpx.Response:
        resp = await client.open_stream("GET", url, timeout=timeout)
        if is_server_error_status(resp.status_code):
            await resp.aclose()
        return resp

    response = await retry(
        "downloadCache",
        attempt,
        lambda r: r.status_code,
        max_attempts=max_attempts,
        delay_s=retry_delay_s,
    )

    try:
        if not is_success_status(response.status_code):
            raise CacheServiceError(
                f"Cache service responded with {response.status_code} during download",
                status_code=response.status_code,
            )

        written = 0
        async with aiofiles.open(destination, "wb") as fh:
            # Raw bytes so the count is comparable to Content-Length
            async for chunk in response.aiter_raw():
                await fh.write(chunk)
                written += len(chunk)
    except httpx.ReadTimeout as e:
        logger.debug(f"Aborting download, socket timed out after {socket_timeout_ms} ms")
        raise DownloadTimeoutError(
            f"Aborting download, socket timed out after {socket_timeout_ms} ms"
        ) from e
    except httpx.HTTPError as e:
        raise TransferError(f"Download failed: {e}") from e
    finally:
        await response.aclose()

    content_length = response.headers.get("content-length")
    if content_length:
        expected = int(content_length)
        if written != expected:
            raise IncompleteDownloadError(expected, written)
    else:
        logger.debug("Unable to validate download, no Content-Length header")


async def download_segmented(
    transport: BlobTransport,
    destination: Path,
    options: DownloadOptions | None,
    fallback: Callable[[], Awaitable[None]],
    *,
    max_segment_size: int = MAX_SEGMENT_SIZE,
) -> None:
    """Download a blob in sequential segments.

    Each segment is fetched with the blob client's own parallelism and must
    finish within ``segment_timeout_ms``; only one segment is held in memory
    at a time.

    Args:
        transport: Blob access for the archive URL
        destination: Local archive path
        options: Download tuning (defaults if None)
        fallback: Streaming download used when the blob size is unknown
        max_segment_size: Largest byte range requested at once

    Raises:
        DownloadTimeoutError: A segment exceeded its deadline
        BlobTransferError: The blob service failed a request
    """
    options = options or DownloadOptions()

    content_length = await transport.get_content_length()
    if content_length is None:
        logger.debug("Unable to determine content length, downloading file with http-client...")
        await fallback()
        return

    progress = TransferProgress(content_length)
    segment_timeout_s = options.segment_timeout_ms / 1000

    async with aiofiles.open(destination, "wb") as fh:
        with reporting(progress):
            while not progress.is_done():
                segment_start = progress.segment_offset + progress.segment_size
                segment_size = min(max_segment_size, content_length - segment_start)
                progress.next_segment(segment_size)

                try:
                    data = await asyncio.wait_for(
                        transport.download_range(
                            segment_start,
                            segment_size,
                            concurrency=options.download_concurrency,
                            timeout_s=options.timeout_ms / 1000,
                            on_progress=progress.on_progress,
                        ),
                        timeout=segment_timeout_s,
                    )
                except asyncio.TimeoutError as e:
                    raise DownloadTimeoutError(
                        "Aborting cache download as the download time exceeded the timeout."
                    ) from e

                await fh.seek(segment_start)
                await fh.write(data)
                # SDK progress hooks may lag; the segment is complete once written
                progress.on_progress(segment_size)
