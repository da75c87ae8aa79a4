"""Filesystem and environment helpers for cache operations."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import sys
import tempfile
import uuid
from pathlib import Path
from urllib.parse import urlsplit

import aiofiles.os  # type: ignore[import-untyped]

from stashr.core.cache.constants import AZURE_BLOB_HOST_SUFFIX, CacheFilename, CompressionMethod

logger = logging.getLogger(__name__)


def _default_temp_root() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("USERPROFILE") or "C:\\") / "actions" / "temp"
    return Path(tempfile.gettempdir()) / "stashr"


async def create_temp_directory(runner_temp: Path | None = None) -> Path:
    """Create a uniquely named scratch directory.

    Args:
        runner_temp: Scratch root (falls back to a per-platform default)

    Returns:
        Path of the created directory
    """
    root = runner_temp or _default_temp_root()
    dest = root / str(uuid.uuid4())
    await aiofiles.os.makedirs(dest, exist_ok=True)
    return dest


async def get_archive_file_size(path: Path) -> int:
    stat = await aiofiles.os.stat(path)
    return stat.st_size


async def unlink_file(path: Path) -> None:
    await aiofiles.os.unlink(path)


def get_cache_file_name(method: CompressionMethod) -> str:
    if method == CompressionMethod.GZIP:
        return CacheFilename.GZIP.value
    return CacheFilename.ZSTD.value


def is_azure_blob_url(url: str) -> bool:
    hostname = urlsplit(url).hostname or ""
    return hostname.lower().endswith(AZURE_BLOB_HOST_SUFFIX)


def _zstd_version() -> str:
    zstd = shutil.which("zstd")
    if zstd is None:
        return ""
    try:
        result = subprocess.run(
            [zstd, "--quiet", "--version"],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"zstd version check failed: {e}")
        return ""
    return (result.stdout + result.stderr).strip()


async def get_compression_method() -> CompressionMethod:
    """Pick zstd when it is installed, gzip otherwise."""
    version = await asyncio.get_running_loop().run_in_executor(None, _zstd_version)
    logger.debug(f"zstd version: {version or 'not found'}")
    if not version:
        return CompressionMethod.GZIP
    return CompressionMethod.ZSTD_WITHOUT_LONG
