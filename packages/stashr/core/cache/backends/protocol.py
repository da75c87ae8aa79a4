"""Backend interface consumed by the restore/save orchestrator."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, Self

from stashr.core.cache.models import (
    ArchiveFile,
    CacheEntry,
    CacheKeys,
    CacheOptions,
    FinalizeResult,
    ReserveResult,
    UploadTicket,
)
from stashr.core.config.models import DownloadOptions, UploadOptions


class CacheBackend(Protocol):
    """
    Protocol for remote cache services (async).

    Failure classes surfaced to callers:
    - miss: ``lookup`` returns None
    - conflict/rejection: tagged ``ReserveResult``/``FinalizeResult`` values
    - transport/server errors: ``TransferError`` subclasses, raised after retrying

    Backends own network clients and must be closed (``aclose`` or ``async with``).
    """

    async def lookup(
        self, keys: CacheKeys, paths: Sequence[str], options: CacheOptions
    ) -> CacheEntry | None:
        """
        Find the first entry matching the keys in order for this path set.

        Args:
            keys: Primary key and restore keys, checked first to last
            paths: Path patterns (fingerprint input)
            options: Compression and cross-OS settings (fingerprint input)

        Returns:
            Matched entry, or None on miss
        """
        ...

    async def reserve(
        self, key: str, paths: Sequence[str], options: CacheOptions
    ) -> ReserveResult:
        """Claim ``key`` for writing."""
        ...

    async def transfer_up(
        self, ticket: UploadTicket, archive: ArchiveFile, options: UploadOptions
    ) -> None:
        """Upload the archive for a reservation."""
        ...

    async def transfer_down(
        self, entry: CacheEntry, destination: Path, options: DownloadOptions
    ) -> None:
        """Download the entry's archive to ``destination``."""
        ...

    async def finalize(self, ticket: UploadTicket, size_bytes: int) -> FinalizeResult:
        """Commit an uploaded archive."""
        ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> Self: ...

    async def __aexit__(self, exc_type, exc, tb) -> None: ...


class BackendBase:
    """Async context manager plumbing shared by the concrete backends."""

    async def aclose(self) -> None:
        pass

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
