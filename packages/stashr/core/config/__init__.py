"""Configuration management for stashr."""

from stashr.core.config.loader import (
    get_download_options,
    get_upload_options,
    is_feature_available,
    load_cache_settings,
)
from stashr.core.config.models import (
    CacheServiceVersion,
    CacheSettings,
    DownloadOptions,
    UploadOptions,
)

__all__ = [
    # Models
    "CacheServiceVersion",
    "CacheSettings",
    "DownloadOptions",
    "UploadOptions",
    # Loaders
    "load_cache_settings",
    "get_upload_options",
    "get_download_options",
    "is_feature_available",
]
