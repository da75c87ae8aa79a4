"""Tests for chunked and blob uploads."""

from __future__ import annotations

import threading
from pathlib import Path

import httpx
import pytest

from stashr.core.api.http.client import CacheHttpClient
from stashr.core.api.http.config import HttpClientConfig
from stashr.core.cache.constants import CompressionMethod
from stashr.core.cache.errors import CacheServiceError, RetryExhaustedError
from stashr.core.cache.models import ArchiveFile
from stashr.core.cache.transfer.progress import NullProgress
from stashr.core.cache.transfer.upload import (
    ChunkCursor,
    content_range,
    read_range,
    upload_chunks,
    upload_to_blob,
)
from stashr.core.config.models import UploadOptions
from tests.fakes import FakeBlobTransport

API_URL = "https://cache.example.test/_apis/artifactcache/"


def client_for(handler) -> CacheHttpClient:
    return CacheHttpClient(
        HttpClientConfig(base_url=API_URL), transport=httpx.MockTransport(handler)
    )


def parse_range(header: str) -> tuple[int, int]:
    start, end = header.removeprefix("bytes ").removesuffix("/*").split("-")
    return int(start), int(end)


class TestChunkCursor:
    """Tests for ChunkCursor."""

    @pytest.mark.parametrize(
        ("total", "chunk"), [(0, 4), (1, 4), (4, 4), (10, 4), (4096, 1000), (7, 1)]
    )
    def test_claims_cover_file(self, total: int, chunk: int) -> None:
        """Test claimed ranges are contiguous, bounded and cover every byte."""
        cursor = ChunkCursor(total, chunk)
        ranges = []
        while (claimed := cursor.claim()) is not None:
            ranges.append(claimed)

        expected_start = 0
        for start, end in ranges:
            assert start == expected_start
            assert end - start + 1 <= chunk
            expected_start = end + 1
        assert expected_start == total

    def test_threads_never_share_a_range(self) -> None:
        """Test concurrent claimers receive disjoint ranges."""
        cursor = ChunkCursor(100_000, 7)
        claimed: list[tuple[int, int]] = []
        lock = threading.Lock()

        def worker() -> None:
            while (item := cursor.claim()) is not None:
                with lock:
                    claimed.append(item)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(end - start + 1 for start, end in claimed) == 100_000
        assert len({start for start, _ in claimed}) == len(claimed)

    def test_rejects_empty_chunks(self) -> None:
        with pytest.raises(ValueError):
            ChunkCursor(10, 0)


def test_content_range() -> None:
    """Test the header uses inclusive bounds and an unknown total."""
    assert content_range(0, 199) == "bytes 0-199/*"


class TestUploadChunks:
    """Tests for upload_chunks()."""

    @pytest.mark.parametrize("concurrency", [1, 3, 8])
    async def test_every_byte_sent_once(self, tmp_path: Path, concurrency: int) -> None:
        """Test the uploaded ranges reassemble into the original file."""
        data = bytes(range(256)) * 5
        archive = tmp_path / "cache.tgz"
        archive.write_bytes(data)
        received: dict[int, bytes] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            start, end = parse_range(request.headers["content-range"])
            assert start not in received
            assert len(request.content) == end - start + 1
            received[start] = request.content
            return httpx.Response(204)

        async with client_for(handler) as client:
            await upload_chunks(
                client, "caches/1", archive, chunk_size=100, concurrency=concurrency
            )

        assert b"".join(received[k] for k in sorted(received)) == data

    async def test_empty_archive_sends_nothing(self, tmp_path: Path) -> None:
        archive = tmp_path / "cache.tgz"
        archive.write_bytes(b"")

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with client_for(handler) as client:
            await upload_chunks(client, "caches/1", archive, chunk_size=4)

    async def test_gateway_error_retried(self, tmp_path: Path) -> None:
        """Test a chunk answered with 503 is sent again."""
        archive = tmp_path / "cache.tgz"
        archive.write_bytes(b"abcd")
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(503 if calls["n"] == 1 else 204)

        async with client_for(handler) as client:
            await upload_chunks(client, "caches/1", archive, chunk_size=4)

        assert calls["n"] == 2

    async def test_chunk_rejected(self, tmp_path: Path) -> None:
        """Test a 4xx chunk response fails the upload."""
        archive = tmp_path / "cache.tgz"
        archive.write_bytes(b"abcdefgh")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.headers["content-range"] == "bytes 4-7/*":
                return httpx.Response(400)
            return httpx.Response(204)

        async with client_for(handler) as client:
            with pytest.raises(CacheServiceError, match="400 during upload chunk") as exc_info:
                await upload_chunks(client, "caches/1", archive, chunk_size=4, concurrency=2)

        assert exc_info.value.status_code == 400

    async def test_persistent_gateway_errors(self, tmp_path: Path) -> None:
        """Test a chunk that never gets through exhausts its retries."""
        archive = tmp_path / "cache.tgz"
        archive.write_bytes(b"abcd")

        async with client_for(lambda r: httpx.Response(504)) as client:
            with pytest.raises(RetryExhaustedError, match="uploadChunk"):
                await upload_chunks(client, "caches/1", archive, chunk_size=4, max_attempts=2)


async def test_upload_to_blob_passes_options(tmp_path: Path) -> None:
    """Test the blob upload receives the block settings."""
    path = tmp_path / "cache.tzst"
    path.write_bytes(b"payload")
    blob = FakeBlobTransport()
    options = UploadOptions(
        blob_block_size=1024, blob_max_single_shot_size=2048, blob_upload_concurrency=3
    )

    await upload_to_blob(
        blob,
        ArchiveFile(path=path, compression_method=CompressionMethod.ZSTD, size_bytes=7),
        options,
        NullProgress(),
    )

    assert blob.uploads == [
        (b"payload", {"block_size": 1024, "max_single_shot_size": 2048, "concurrency": 3})
    ]


async def test_read_range_is_inclusive(tmp_path: Path) -> None:
    """Test a chunk read covers both ends of its inclusive range."""
    archive = tmp_path / "cache.tgz"
    archive.write_bytes(b"0123456789")

    assert await read_range(archive, 2, 5) == b"2345"
    assert await read_range(archive, 8, 9) == b"89"
