"""Protocol constants shared by the backends and the orchestrator."""

from __future__ import annotations

from enum import Enum


class CompressionMethod(str, Enum):
    """Archive compression methods; the value is the fingerprint token."""

    GZIP = "gzip"
    # zstd without --long, compatible with older zstd builds
    ZSTD_WITHOUT_LONG = "zstd-without-long"
    ZSTD = "zstd"


class CacheFilename(str, Enum):
    GZIP = "cache.tgz"
    ZSTD = "cache.tzst"


VERSION_SALT = "1.0"

MAX_KEY_COUNT = 10
MAX_KEY_LENGTH = 512

# 10 GiB; the service rejects larger archives
CACHE_SIZE_LIMIT = 10 * 1024 * 1024 * 1024

# Largest range a single segmented-download request may cover
MAX_SEGMENT_SIZE = 2**31 - 1

SOCKET_TIMEOUT_MS = 5000

V1_API_PATH = "_apis/artifactcache/"
V1_ACCEPT_HEADER = "application/json;api-version=6.0-preview.1"

RPC_SERVICE_PATH = "twirp/github.actions.results.api.v1.CacheService/"

AZURE_BLOB_HOST_SUFFIX = ".blob.core.windows.net"
