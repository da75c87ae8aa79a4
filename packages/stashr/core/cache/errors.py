"""Exception hierarchy for cache operations.

Only ``ValidationError`` escapes ``restore_cache``/``save_cache``; every other
``CacheError`` is contained there and reported as a single warning.
"""

from __future__ import annotations


class CacheError(Exception):
    """Base class for all cache errors."""


class ValidationError(CacheError):
    """Invalid caller input (paths, keys). Always propagated to the caller."""


class TransferError(CacheError):
    """Fatal transport failure talking to the cache service or blob storage.

    Attributes:
        status_code: Last HTTP status observed (None if no response arrived)
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryExhaustedError(TransferError):
    """A retried request never produced a non-server-error response."""


class CacheServiceError(TransferError):
    """The cache service answered with an unexpected status."""


class IncompleteDownloadError(TransferError):
    """Fewer bytes arrived than the server announced in Content-Length."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Incomplete download. Expected file size: {expected}, actual file size: {actual}"
        )
        self.expected = expected
        self.actual = actual


class DownloadTimeoutError(TransferError):
    """The archive download stalled or a segment exceeded its deadline."""


class BlobTransferError(TransferError):
    """Blob storage rejected an upload or download."""


class RpcError(TransferError):
    """A cache service RPC failed after its own retries.

    Attributes:
        method: RPC method name
    """

    def __init__(self, method: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{method} failed: {message}", status_code=status_code)
        self.method = method


class ArchiveTooLargeError(CacheError):
    """The created archive exceeds the size the service accepts."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(
            f"Cache size of ~{round(size_bytes / (1024 * 1024))} MB ({size_bytes} B) is over the "
            f"{limit_bytes // (1024 * 1024 * 1024)}GB limit, not saving cache."
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class PathResolutionError(CacheError):
    """No file system entries matched the requested path patterns."""


class ArchiveError(CacheError):
    """The archiver process failed."""
