"""Archive upload.

Two strategies: parallel ranged PATCH requests against the REST cache service
(``upload_chunks``) and a single blob SDK upload to a signed URL
(``upload_to_blob``).
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from stashr.core.api.http.client import CacheHttpClient
from stashr.core.api.http.retry import is_success_status, retry
from stashr.core.cache.errors import CacheServiceError
from stashr.core.cache.models import ArchiveFile
from stashr.core.cache.transfer.blob import BlobTransport
from stashr.core.cache.transfer.progress import ProgressReporter, TransferProgress, reporting
from stashr.core.config.models import MiB, UploadOptions

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 32 * MiB
DEFAULT_CONCURRENCY = 4


class ChunkCursor:
    """Hands out consecutive, non-overlapping byte ranges of a file.

    One cursor per upload call. ``claim`` is guarded by a lock so workers on
    other threads see the same sequence of ranges.

    Args:
        total_size: File size in bytes
        chunk_size: Maximum range length
    """

    def __init__(self, total_size: int, chunk_size: int) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.total_size = total_size
        self.chunk_size = chunk_size
        self._offset = 0
        self._lock = threading.Lock()

    def claim(self) -> tuple[int, int] | None:
        """Claim the next inclusive ``(start, end)`` range, or None when exhausted."""
        with self._lock:
            if self._offset >= self.total_size:
                return None
            start = self._offset
            end = min(start + self.chunk_size, self.total_size) - 1
            self._offset += self.chunk_size
            return start, end


def content_range(start: int, end: int) -> str:
    """Format an inclusive byte range of unknown total size (``bytes 0-199/*``)."""
    return f"bytes {start}-{end}/*"


async def read_range(path: Path, start: int, end: int) -> bytes:
    """Read the inclusive byte range ``start``..``end`` of ``path``."""
    async with aiofiles.open(path, "rb") as fh:
        await fh.seek(start)
        data: bytes = await fh.read(end - start + 1)
        return data


async def upload_chunk(
    client: CacheHttpClient,
    resource_url: str,
    archive_path: Path,
    start: int,
    end: int,
    *,
    max_attempts: int = 2,
    retry_delay_s: float = 0.0,
) -> None:
    """Upload one inclusive byte range of the archive.

    Raises:
        RetryExhaustedError: Transport failures or gateway errors on every attempt
        CacheServiceError: Any other non-2xx response
    """
    logger.debug(
        f"Uploading chunk of size {end - start + 1} bytes at offset {start} "
        f"with content range: {content_range(start, end)}"
    )
    data = await read_range(archive_path, start, end)
    headers = {
        "Content-Type": "application/octet-stream",
        "Content-Range": content_range(start, end),
    }

    response = await retry(
        f"uploadChunk (start: {start}, end: {end})",
        lambda: client.send_bytes("PATCH", resource_url, data, headers=headers),
        lambda r: r.status_code,
        max_attempts=max_attempts,
        delay_s=retry_delay_s,
    )
    if not is_success_status(response.status_code):
        raise CacheServiceError(
            f"Cache service responded with {response.status_code} during upload chunk.",
            status_code=response.status_code,
        )


async def upload_chunks(
    client: CacheHttpClient,
    resource_url: str,
    archive_path: Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    concurrency: int = DEFAULT_CONCURRENCY,
    *,
    max_attempts: int = 2,
    retry_delay_s: float = 0.0,
) -> None:
    """Upload ``archive_path`` as ranged PATCH requests from parallel workers.

    Workers pull ranges from a shared ``ChunkCursor`` until it is exhausted;
    the call returns once every worker is done. The first failure cancels the
    remaining workers and is re-raised.

    Args:
        client: Authenticated client for the cache service
        resource_url: Reservation resource (``caches/{id}``)
        archive_path: Archive to upload
        chunk_size: Maximum bytes per request
        concurrency: Number of parallel workers
        max_attempts: Attempts per chunk
        retry_delay_s: Pause between attempts of a chunk
    """
    file_size = (await aiofiles.os.stat(archive_path)).st_size
    cursor = ChunkCursor(file_size, chunk_size)
    logger.debug(f"Concurrency: {concurrency} and Chunk Size: {chunk_size}")

    async def worker() -> None:
        while (claimed := cursor.claim()) is not None:
            start, end = claimed
            await upload_chunk(
                client,
                resource_url,
                archive_path,
                start,
                end,
                max_attempts=max_attempts,
                retry_delay_s=retry_delay_s,
            )

    logger.debug("Awaiting all uploads")
    tasks = [asyncio.create_task(worker()) for _ in range(max(1, concurrency))]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def upload_to_blob(
    transport: BlobTransport,
    archive: ArchiveFile,
    options: UploadOptions | None = None,
    progress: ProgressReporter | None = None,
) -> None:
    """Upload the archive to a signed blob URL.

    Raises:
        BlobTransferError: The blob service rejected the upload
    """
    options = options or UploadOptions()
    progress = progress or TransferProgress(archive.size_bytes, verb="Sent")

    logger.debug(f"Uploading {archive.path} ({archive.size_bytes} B) to blob storage")
    with reporting(progress):
        await transport.upload_file(
            archive.path,
            block_size=options.blob_block_size,
            max_single_shot_size=options.blob_max_single_shot_size,
            concurrency=options.blob_upload_concurrency,
            on_progress=progress.on_progress,
        )
