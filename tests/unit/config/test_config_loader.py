"""Tests for environment-driven configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

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
    MiB,
    UploadOptions,
)


class TestLoadCacheSettings:
    """Tests for load_cache_settings()."""

    def test_rest_service(self) -> None:
        """Test the REST service is the default protocol."""
        settings = load_cache_settings(
            {
                "ACTIONS_CACHE_URL": "https://cache.example.test/",
                "ACTIONS_RUNTIME_TOKEN": "tok",
                "RUNNER_TEMP": "/tmp/runner",
                "GITHUB_WORKSPACE": "/work",
            }
        )

        assert settings.service_version == CacheServiceVersion.V1
        assert settings.service_url == "https://cache.example.test/"
        assert settings.runtime_token == "tok"
        assert settings.runner_temp == Path("/tmp/runner")
        assert settings.workspace == Path("/work")
        assert "tok" not in repr(settings)

    def test_results_service(self) -> None:
        """Test v2 reads the results URL."""
        settings = load_cache_settings(
            {
                "ACTIONS_CACHE_SERVICE_V2": "true",
                "ACTIONS_CACHE_URL": "https://cache.example.test/",
                "ACTIONS_RESULTS_URL": "https://results.example.test/",
            }
        )

        assert settings.service_version == CacheServiceVersion.V2
        assert settings.service_url == "https://results.example.test/"

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACTIONS_CACHE_URL", "https://env.example.test/")
        assert load_cache_settings().cache_url == "https://env.example.test/"

    def test_feature_availability(self) -> None:
        """Test the feature is available only with a service URL."""
        assert not is_feature_available({})
        assert is_feature_available({"ACTIONS_CACHE_URL": "https://cache.example.test/"})
        assert not is_feature_available(
            {"ACTIONS_CACHE_SERVICE_V2": "1", "ACTIONS_CACHE_URL": "https://cache.example.test/"}
        )


class TestIsGhes:
    @pytest.mark.parametrize(
        ("server_url", "expected"),
        [
            ("https://github.com", False),
            ("https://GITHUB.COM", False),
            ("https://acme.ghe.com", False),
            ("https://acme.ghe.localhost", False),
            ("https://git.corp.example", True),
        ],
    )
    def test_hosts(self, server_url: str, expected: bool) -> None:
        assert CacheSettings(server_url=server_url).is_ghes is expected


class TestUploadOptions:
    """Tests for get_upload_options()."""

    def test_defaults(self) -> None:
        options = get_upload_options(environ={})
        assert options.upload_concurrency == 4
        assert options.upload_chunk_size == 32 * MiB
        assert options.use_azure_sdk is False

    def test_caller_values_kept(self) -> None:
        """Test caller options survive when the environment is silent."""
        options = get_upload_options(UploadOptions(upload_concurrency=2), environ={})
        assert options.upload_concurrency == 2

    def test_environment_overrides(self) -> None:
        """Test environment values override caller options."""
        options = get_upload_options(
            UploadOptions(upload_concurrency=2),
            environ={"CACHE_UPLOAD_CONCURRENCY": "16", "CACHE_UPLOAD_CHUNK_SIZE": "8"},
        )
        assert options.upload_concurrency == 16
        assert options.upload_chunk_size == 8 * MiB

    def test_environment_capped(self) -> None:
        """Test environment overrides are capped."""
        options = get_upload_options(
            environ={"CACHE_UPLOAD_CONCURRENCY": "100", "CACHE_UPLOAD_CHUNK_SIZE": "1024"}
        )
        assert options.upload_concurrency == 32
        assert options.upload_chunk_size == 128 * MiB

    @pytest.mark.parametrize("value", ["", "abc", "-3", "0"])
    def test_invalid_environment_ignored(self, value: str) -> None:
        options = get_upload_options(environ={"CACHE_UPLOAD_CONCURRENCY": value})
        assert options.upload_concurrency == 4

    def test_model_bounds(self) -> None:
        """Test out-of-range values are rejected by the model."""
        with pytest.raises(ValueError):
            UploadOptions(upload_concurrency=33)


class TestDownloadOptions:
    """Tests for get_download_options()."""

    def test_defaults(self) -> None:
        options = get_download_options(environ={})
        assert options.use_azure_sdk is True
        assert options.download_concurrency == 8
        assert options.timeout_ms == 30000
        assert options.segment_timeout_ms == 600000
        assert options.lookup_only is False

    def test_segment_timeout_override(self) -> None:
        """Test SEGMENT_DOWNLOAD_TIMEOUT_MINS is converted to milliseconds."""
        options = get_download_options(
            DownloadOptions(lookup_only=True), environ={"SEGMENT_DOWNLOAD_TIMEOUT_MINS": "2"}
        )
        assert options.segment_timeout_ms == 120000
        assert options.lookup_only is True
