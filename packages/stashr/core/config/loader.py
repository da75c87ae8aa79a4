"""Environment-driven configuration loading."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from stashr.core.config.models import (
    CacheServiceVersion,
    CacheSettings,
    DownloadOptions,
    MiB,
    UploadOptions,
)

logger = logging.getLogger(__name__)

MAX_UPLOAD_CONCURRENCY = 32
MAX_UPLOAD_CHUNK_SIZE = 128 * MiB


def _env(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def _parse_env_number(environ: Mapping[str, str], key: str) -> float | None:
    """Parse a non-negative number from the environment, None when unset or invalid."""
    raw = environ.get(key)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.debug(f"Ignoring non-numeric {key}={raw!r}")
        return None
    if value < 0:
        return None
    return value


def load_cache_settings(environ: Mapping[str, str] | None = None) -> CacheSettings:
    """Build CacheSettings from runner environment variables.

    Args:
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Loaded settings

    Example:
        >>> settings = load_cache_settings({"ACTIONS_CACHE_URL": "https://cache.example.com/"})
        >>> settings.service_version
        <CacheServiceVersion.V1: 'v1'>
    """
    env = _env(environ)
    runner_temp = env.get("RUNNER_TEMP")
    workspace = env.get("GITHUB_WORKSPACE")
    use_v2 = bool(env.get("ACTIONS_CACHE_SERVICE_V2"))
    version = CacheServiceVersion.V2 if use_v2 else CacheServiceVersion.V1
    return CacheSettings(
        service_version=version,
        cache_url=env.get("ACTIONS_CACHE_URL", ""),
        results_url=env.get("ACTIONS_RESULTS_URL", ""),
        runtime_token=env.get("ACTIONS_RUNTIME_TOKEN", ""),
        server_url=env.get("GITHUB_SERVER_URL") or "https://github.com",
        runner_temp=Path(runner_temp) if runner_temp else None,
        workspace=Path(workspace) if workspace else None,
    )


def is_feature_available(environ: Mapping[str, str] | None = None) -> bool:
    """Return True when the configured cache service has a URL."""
    return bool(load_cache_settings(environ).service_url)


def get_upload_options(
    copy: UploadOptions | None = None, environ: Mapping[str, str] | None = None
) -> UploadOptions:
    """Resolve upload options: defaults, then caller values, then environment overrides.

    ``CACHE_UPLOAD_CONCURRENCY`` is capped at 32 and ``CACHE_UPLOAD_CHUNK_SIZE``
    (in MiB) at 128 MiB.
    """
    env = _env(environ)
    base = copy or UploadOptions()
    updates: dict[str, object] = {}

    concurrency = _parse_env_number(env, "CACHE_UPLOAD_CONCURRENCY")
    if concurrency is not None and concurrency >= 1:
        updates["upload_concurrency"] = min(int(concurrency), MAX_UPLOAD_CONCURRENCY)

    chunk_mib = _parse_env_number(env, "CACHE_UPLOAD_CHUNK_SIZE")
    if chunk_mib is not None and chunk_mib > 0:
        updates["upload_chunk_size"] = min(int(chunk_mib * MiB), MAX_UPLOAD_CHUNK_SIZE)

    result = UploadOptions.model_validate({**base.model_dump(), **updates}) if updates else base

    logger.debug(f"Use Azure SDK: {result.use_azure_sdk}")
    logger.debug(f"Upload concurrency: {result.upload_concurrency}")
    logger.debug(f"Upload chunk size: {result.upload_chunk_size}")
    return result


def get_download_options(
    copy: DownloadOptions | None = None, environ: Mapping[str, str] | None = None
) -> DownloadOptions:
    """Resolve download options: defaults, then caller values, then environment overrides.

    ``SEGMENT_DOWNLOAD_TIMEOUT_MINS`` overrides the per-segment deadline.
    """
    env = _env(environ)
    base = copy or DownloadOptions()

    minutes = _parse_env_number(env, "SEGMENT_DOWNLOAD_TIMEOUT_MINS")
    result = base
    if minutes is not None and minutes > 0:
        result = base.model_copy(update={"segment_timeout_ms": int(minutes * 60 * 1000)})

    logger.debug(f"Use Azure SDK: {result.use_azure_sdk}")
    logger.debug(f"Download concurrency: {result.download_concurrency}")
    logger.debug(f"Request timeout (ms): {result.timeout_ms}")
    logger.debug(f"Segment download timeout (ms): {result.segment_timeout_ms}")
    logger.debug(f"Lookup only: {result.lookup_only}")
    return result
