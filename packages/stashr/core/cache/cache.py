"""Restore and save entry points.

Both calls validate their input up front and raise ``ValidationError`` for bad
paths or keys. Past validation the cache is best effort: every other failure
is logged as a single warning and reported through the return value
(``None`` for restore, ``-1`` for save), so a cache outage never fails the
calling job.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

from stashr.core.cache.archive import Archiver, TarArchiver
from stashr.core.cache.backends import CacheBackend, create_backend
from stashr.core.cache.constants import CACHE_SIZE_LIMIT, CompressionMethod
from stashr.core.cache.errors import ArchiveTooLargeError, PathResolutionError, ValidationError
from stashr.core.cache.models import (
    ArchiveFile,
    CacheKeys,
    CacheOptions,
    Conflict,
    FinalizeFailed,
    Rejected,
    check_key,
)
from stashr.core.cache.paths import GlobPathResolver, PathResolver
from stashr.core.cache.utils import (
    create_temp_directory,
    get_archive_file_size,
    get_cache_file_name,
    get_compression_method,
    unlink_file,
)
from stashr.core.config.loader import get_download_options, get_upload_options, load_cache_settings
from stashr.core.config.models import CacheSettings, DownloadOptions, UploadOptions
from stashr.core.logging.sanitize import sanitize_string

logger = logging.getLogger(__name__)

NOT_SAVED = -1


def check_paths(paths: Sequence[str]) -> None:
    """Raise ValidationError for an empty path list."""
    if not paths:
        raise ValidationError(
            "Path Validation Error: At least one directory or file path is required"
        )


@contextlib.asynccontextmanager
async def _backend_scope(
    settings: CacheSettings, backend: CacheBackend | None
) -> AsyncIterator[CacheBackend]:
    """Yield the caller's backend untouched, or a new one that is closed afterwards."""
    if backend is not None:
        yield backend
        return
    async with create_backend(settings) as created:
        yield created


async def _remove_archive(archive_path: Path | None) -> None:
    if archive_path is None:
        return
    try:
        await unlink_file(archive_path)
    except OSError as e:
        logger.debug(f"Failed to delete archive: {e}")


def _size_mb(size_bytes: int) -> int:
    return round(size_bytes / (1024 * 1024))


async def restore_cache(
    paths: Sequence[str],
    primary_key: str,
    restore_keys: Sequence[str] | None = None,
    options: DownloadOptions | None = None,
    enable_cross_os_archive: bool = False,
    *,
    settings: CacheSettings | None = None,
    backend: CacheBackend | None = None,
    archiver: Archiver | None = None,
    compression_method: CompressionMethod | None = None,
) -> str | None:
    """Restore a cache entry into the workspace.

    Keys are tried in order: the primary key, then each restore key.

    Args:
        paths: Path patterns the cache was saved with
        primary_key: Exact key to look up first
        restore_keys: Fallback keys/prefixes, highest priority first
        options: Download tuning (environment overrides still apply)
        enable_cross_os_archive: Allow archives saved on another OS (Windows only)
        settings: Service settings (loaded from the environment if None)
        backend: Backend to use instead of one built from settings (not closed here)
        archiver: Archive extractor (TarArchiver in the workspace if None)
        compression_method: Skip compression detection and use this method

    Returns:
        The matched key, or None when nothing was restored

    Raises:
        ValidationError: Empty paths, more than 10 keys, a key over 512 characters
            or a key containing a comma
    """
    check_paths(paths)
    keys = CacheKeys.build(primary_key, list(restore_keys or []))
    logger.debug(f"Resolved Keys: {json.dumps(keys.all_keys)}")

    settings = settings or load_cache_settings()
    download_options = get_download_options(options)
    archiver = archiver or TarArchiver(settings.workspace)

    archive_path: Path | None = None
    try:
        async with _backend_scope(settings, backend) as active:
            method = compression_method or await get_compression_method()
            cache_options = CacheOptions(
                compression_method=method, enable_cross_os_archive=enable_cross_os_archive
            )

            entry = await active.lookup(keys, list(paths), cache_options)
            if entry is None:
                logger.info(f"Cache not found for input keys: {', '.join(keys.all_keys)}")
                return None

            if download_options.lookup_only:
                logger.info("Lookup only - skipping download")
                return entry.matched_key

            archive_path = (
                await create_temp_directory(settings.runner_temp)
            ) / get_cache_file_name(method)
            logger.debug(f"Archive Path: {archive_path}")

            await active.transfer_down(entry, archive_path, download_options)

            archive_size = await get_archive_file_size(archive_path)
            if logger.isEnabledFor(logging.DEBUG):
                await archiver.list_archive(archive_path, method)

            logger.info(f"Cache Size: ~{_size_mb(archive_size)} MB ({archive_size} B)")

            await archiver.extract_archive(archive_path, method)
            logger.info("Cache restored successfully")
            return entry.matched_key
    except ValidationError:
        raise
    except Exception as e:
        # Caching is optional: report and carry on
        logger.warning(f"Failed to restore: {sanitize_string(str(e))}")
        return None
    finally:
        await _remove_archive(archive_path)


async def save_cache(
    paths: Sequence[str],
    key: str,
    options: UploadOptions | None = None,
    enable_cross_os_archive: bool = False,
    *,
    settings: CacheSettings | None = None,
    backend: CacheBackend | None = None,
    archiver: Archiver | None = None,
    resolver: PathResolver | None = None,
    compression_method: CompressionMethod | None = None,
) -> int:
    """Archive the paths and store them under ``key``.

    The key is reserved before any archive is built, so a concurrent writer
    costs nothing but one request.

    Args:
        paths: Path patterns to archive
        key: Key to save under
        options: Upload tuning (environment overrides still apply)
        enable_cross_os_archive: Allow restoring on another OS (Windows only)
        settings: Service settings (loaded from the environment if None)
        backend: Backend to use instead of one built from settings (not closed here)
        archiver: Archive creator (TarArchiver in the workspace if None)
        resolver: Pattern resolver (GlobPathResolver in the workspace if None)
        compression_method: Skip compression detection and use this method

    Returns:
        The saved entry id, or -1 when nothing was saved

    Raises:
        ValidationError: Empty paths, a key over 512 characters or a key containing a comma
    """
    check_paths(paths)
    check_key(key)

    settings = settings or load_cache_settings()
    upload_options = get_upload_options(options)
    archiver = archiver or TarArchiver(settings.workspace)
    resolver = resolver or GlobPathResolver(settings.workspace)

    archive_path: Path | None = None
    try:
        async with _backend_scope(settings, backend) as active:
            method = compression_method or await get_compression_method()
            cache_options = CacheOptions(
                compression_method=method, enable_cross_os_archive=enable_cross_os_archive
            )

            logger.debug("Reserving Cache")
            reservation = await active.reserve(key, list(paths), cache_options)
            if isinstance(reservation, Conflict):
                logger.info(f"Failed to save: {reservation.reason}")
                return NOT_SAVED
            if isinstance(reservation, Rejected):
                logger.warning(f"Failed to save: {reservation.reason}")
                return NOT_SAVED
            ticket = reservation.ticket

            cache_paths = await resolver.resolve(paths)
            logger.debug(f"Cache Paths: {json.dumps(cache_paths)}")
            if not cache_paths:
                raise PathResolutionError(
                    "Path Validation Error: Path(s) specified in the action for caching "
                    "do(es) not exist, hence no cache is being saved."
                )

            archive_folder = await create_temp_directory(settings.runner_temp)
            archive_path = archive_folder / get_cache_file_name(method)
            logger.debug(f"Archive Path: {archive_path}")
            archive_path = await archiver.create_archive(archive_folder, cache_paths, method)
            if logger.isEnabledFor(logging.DEBUG):
                await archiver.list_archive(archive_path, method)

            archive_size = await get_archive_file_size(archive_path)
            logger.debug(f"File Size: {archive_size}")

            # GHES enforces its own limit when reserving
            if archive_size > CACHE_SIZE_LIMIT and not settings.is_ghes:
                raise ArchiveTooLargeError(archive_size, CACHE_SIZE_LIMIT)

            archive = ArchiveFile(
                path=archive_path, compression_method=method, size_bytes=archive_size
            )
            logger.debug(f"Saving Cache for key {key}")
            await active.transfer_up(ticket, archive, upload_options)

            result = await active.finalize(ticket, archive_size)
            if isinstance(result, FinalizeFailed):
                logger.warning(f"Failed to save: {result.reason}")
                return NOT_SAVED

            logger.info("Cache saved successfully")
            return result.entry_id
    except ValidationError:
        raise
    except Exception as e:
        # Caching is optional: report and carry on
        logger.warning(f"Failed to save: {sanitize_string(str(e))}")
        return NOT_SAVED
    finally:
        await _remove_archive(archive_path)
