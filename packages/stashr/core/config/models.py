"""Configuration models for stashr."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

MiB = 1024 * 1024


class CacheServiceVersion(str, Enum):
    V1 = "v1"
    V2 = "v2"


class CacheSettings(BaseModel):
    """Runner-provided settings for reaching the cache service."""

    model_config = {"frozen": True}

    service_version: CacheServiceVersion = Field(
        default=CacheServiceVersion.V1, description="Cache protocol to speak"
    )
    cache_url: str = Field(default="", description="Base URL of the REST cache service")
    results_url: str = Field(default="", description="Base URL of the results (RPC) service")
    runtime_token: str = Field(default="", repr=False, description="Bearer token for the service")
    server_url: str = Field(default="https://github.com", description="Hosting server URL")
    runner_temp: Path | None = Field(default=None, description="Scratch root for archives")
    workspace: Path | None = Field(default=None, description="Archive path root")

    @property
    def service_url(self) -> str:
        """URL of the service selected by ``service_version``."""
        if self.service_version == CacheServiceVersion.V2:
            return self.results_url
        return self.cache_url or self.results_url

    @property
    def is_ghes(self) -> bool:
        """True when running against a self-managed server installation."""
        hostname = (urlsplit(self.server_url or "https://github.com").hostname or "").upper()
        is_github_host = hostname == "GITHUB.COM"
        is_ghe_host = hostname.endswith(".GHE.COM") or hostname.endswith(".GHE.LOCALHOST")
        return not is_github_host and not is_ghe_host


class UploadOptions(BaseModel):
    """Tuning for archive uploads.

    Chunk settings apply to the REST service, blob settings to signed-URL uploads.
    """

    model_config = {"frozen": True}

    use_azure_sdk: bool = Field(default=False, description="Upload through the blob SDK")
    upload_concurrency: int = Field(default=4, ge=1, le=32, description="Parallel chunk uploads")
    upload_chunk_size: int = Field(
        default=32 * MiB, ge=1, le=128 * MiB, description="Chunk size in bytes"
    )
    blob_upload_concurrency: int = Field(default=8, ge=1, description="Parallel block uploads")
    blob_block_size: int = Field(default=64 * MiB, ge=1, description="Block size in bytes")
    blob_max_single_shot_size: int = Field(
        default=128 * MiB, ge=0, description="Largest blob uploaded in one request"
    )


class DownloadOptions(BaseModel):
    """Tuning for archive downloads."""

    model_config = {"frozen": True}

    use_azure_sdk: bool = Field(default=True, description="Download blob archives through the SDK")
    download_concurrency: int = Field(default=8, ge=1, description="Parallel ranges per segment")
    timeout_ms: int = Field(default=30000, gt=0, description="Per-request timeout")
    segment_timeout_ms: int = Field(default=600000, gt=0, description="Per-segment deadline")
    lookup_only: bool = Field(default=False, description="Only check for a hit, do not download")
    socket_timeout_ms: int = Field(default=5000, gt=0, description="Streaming idle timeout")
