"""In-memory stand-ins for the backend, archiver, resolver and blob seams."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from stashr.core.cache.constants import CompressionMethod
from stashr.core.cache.models import (
    ArchiveFile,
    CacheEntry,
    CacheKeys,
    CacheOptions,
    Finalized,
    FinalizeResult,
    Reserved,
    ReserveResult,
    UploadTicket,
)
from stashr.core.cache.utils import get_cache_file_name
from stashr.core.config.models import DownloadOptions, UploadOptions


class FakeBackend:
    """Backend that records every call and replays canned answers.

    Args:
        entry: Returned by ``lookup`` (None for a miss)
        payload: Bytes written by ``transfer_down``
        reserve_result: Returned by ``reserve`` (a v1-style reservation by default)
        finalize_result: Returned by ``finalize`` (``Finalized(entry_id=7)`` by default)
        errors: Operation name -> exception to raise instead
    """

    def __init__(
        self,
        *,
        entry: CacheEntry | None = None,
        payload: bytes = b"",
        reserve_result: ReserveResult | None = None,
        finalize_result: FinalizeResult | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        self.entry = entry
        self.payload = payload
        self.reserve_result = reserve_result
        self.finalize_result = finalize_result or Finalized(entry_id=7)
        self.errors = errors or {}
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    def _maybe_fail(self, name: str) -> None:
        if name in self.errors:
            raise self.errors[name]

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def lookup(
        self, keys: CacheKeys, paths: Sequence[str], options: CacheOptions
    ) -> CacheEntry | None:
        self.calls.append(("lookup", (keys, list(paths), options)))
        self._maybe_fail("lookup")
        return self.entry

    async def reserve(
        self, key: str, paths: Sequence[str], options: CacheOptions
    ) -> ReserveResult:
        self.calls.append(("reserve", (key, list(paths), options)))
        self._maybe_fail("reserve")
        if self.reserve_result is not None:
            return self.reserve_result
        return Reserved(ticket=UploadTicket(key=key, version="v", cache_id=7))

    async def transfer_up(
        self, ticket: UploadTicket, archive: ArchiveFile, options: UploadOptions
    ) -> None:
        self.calls.append(("transfer_up", (ticket, archive, options)))
        self._maybe_fail("transfer_up")

    async def transfer_down(
        self, entry: CacheEntry, destination: Path, options: DownloadOptions
    ) -> None:
        self.calls.append(("transfer_down", (entry, destination, options)))
        self._maybe_fail("transfer_down")
        destination.write_bytes(self.payload)

    async def finalize(self, ticket: UploadTicket, size_bytes: int) -> FinalizeResult:
        self.calls.append(("finalize", (ticket, size_bytes)))
        self._maybe_fail("finalize")
        return self.finalize_result

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self) -> FakeBackend:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class FakeArchiver:
    """Archiver that writes ``payload`` as the archive and records extractions and listings."""

    def __init__(self, payload: bytes = b"archive") -> None:
        self.payload = payload
        self.created: list[tuple[list[str], CompressionMethod]] = []
        self.extracted: list[tuple[bytes, CompressionMethod]] = []
        self.listed: list[tuple[Path, CompressionMethod]] = []

    async def create_archive(
        self, folder: Path, paths: Sequence[str], method: CompressionMethod
    ) -> Path:
        archive_path = folder / get_cache_file_name(method)
        archive_path.write_bytes(self.payload)
        self.created.append((list(paths), method))
        return archive_path

    async def extract_archive(self, archive_path: Path, method: CompressionMethod) -> None:
        self.extracted.append((archive_path.read_bytes(), method))

    async def list_archive(self, archive_path: Path, method: CompressionMethod) -> list[str]:
        self.listed.append((archive_path, method))
        return ["node_modules/"]


class FakeResolver:
    def __init__(self, matches: list[str]) -> None:
        self.matches = matches

    async def resolve(self, patterns: Sequence[str]) -> list[str]:
        return list(self.matches)


class FakeBlobTransport:
    """BlobTransport over an in-memory blob.

    Args:
        content: Blob bytes (None for a blob whose size is not reported)
    """

    def __init__(self, content: bytes | None = None) -> None:
        self.content = content
        self.ranges: list[tuple[int, int]] = []
        self.uploads: list[tuple[bytes, dict[str, Any]]] = []

    async def get_content_length(self) -> int | None:
        return None if self.content is None else len(self.content)

    async def download_range(
        self, offset: int, length: int, *, concurrency: int, timeout_s: float, on_progress
    ) -> bytes:
        assert self.content is not None
        self.ranges.append((offset, length))
        data = self.content[offset : offset + length]
        on_progress(len(data))
        return data

    async def upload_file(
        self,
        path: Path,
        *,
        block_size: int,
        max_single_shot_size: int,
        concurrency: int,
        on_progress,
    ) -> None:
        data = path.read_bytes()
        self.uploads.append(
            (
                data,
                {
                    "block_size": block_size,
                    "max_single_shot_size": max_single_shot_size,
                    "concurrency": concurrency,
                },
            )
        )
        on_progress(len(data))
