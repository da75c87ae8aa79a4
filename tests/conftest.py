"""Shared pytest fixtures for stashr tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from stashr.core.config.models import CacheServiceVersion, CacheSettings

# Variables read by the config loader; cleared so the host runner never leaks in
CACHE_ENV_VARS = (
    "ACTIONS_CACHE_SERVICE_V2",
    "ACTIONS_CACHE_URL",
    "ACTIONS_RESULTS_URL",
    "ACTIONS_RUNTIME_TOKEN",
    "GITHUB_SERVER_URL",
    "RUNNER_TEMP",
    "GITHUB_WORKSPACE",
    "CACHE_UPLOAD_CONCURRENCY",
    "CACHE_UPLOAD_CHUNK_SIZE",
    "SEGMENT_DOWNLOAD_TIMEOUT_MINS",
    "RUNNER_DEBUG",
)

# ============================================================================
# Path Fixtures
# ============================================================================


@pytest.fixture
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create an empty workspace directory."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def runner_temp(tmp_path: Path) -> Path:
    """Create an empty runner scratch directory."""
    path = tmp_path / "runner_temp"
    path.mkdir()
    return path


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_cache_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove cache-related environment variables for every test."""
    for name in CACHE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings(workspace: Path, runner_temp: Path) -> CacheSettings:
    """Settings for the REST service on github.com."""
    return CacheSettings(
        service_version=CacheServiceVersion.V1,
        cache_url="https://cache.example.test/",
        runtime_token="runtime-token",
        runner_temp=runner_temp,
        workspace=workspace,
    )


@pytest.fixture
def v2_settings(workspace: Path, runner_temp: Path) -> CacheSettings:
    """Settings for the signed-URL results service on github.com."""
    return CacheSettings(
        service_version=CacheServiceVersion.V2,
        results_url="https://results.example.test/",
        runtime_token="runtime-token",
        runner_temp=runner_temp,
        workspace=workspace,
    )
