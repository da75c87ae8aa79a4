"""Tests for backend selection."""

from __future__ import annotations

import logging

import pytest

from stashr.core.cache.backends import RestCacheBackend, RpcCacheBackend, create_backend
from stashr.core.cache.cache import restore_cache
from stashr.core.cache.constants import CompressionMethod
from stashr.core.cache.errors import CacheError
from stashr.core.config.models import CacheSettings


async def test_rest_backend_for_v1(settings: CacheSettings) -> None:
    """Test the REST backend serves the default protocol."""
    async with create_backend(settings) as backend:
        assert isinstance(backend, RestCacheBackend)


async def test_rpc_backend_for_v2(v2_settings: CacheSettings) -> None:
    """Test the signed-URL backend serves v2."""
    async with create_backend(v2_settings) as backend:
        assert isinstance(backend, RpcCacheBackend)


def test_v2_rejected_on_ghes(v2_settings: CacheSettings) -> None:
    """Test v2 is refused on self-managed servers."""
    ghes = v2_settings.model_copy(update={"server_url": "https://git.corp.example"})
    with pytest.raises(CacheError, match="not currently supported on GHES"):
        create_backend(ghes)


def test_missing_runtime_token_rejected(settings: CacheSettings) -> None:
    """Test no backend is built without a runtime token."""
    anonymous = settings.model_copy(update={"runtime_token": ""})
    with pytest.raises(CacheError, match="ACTIONS_RUNTIME_TOKEN"):
        create_backend(anonymous)


async def test_missing_runtime_token_is_contained(
    settings: CacheSettings, caplog: pytest.LogCaptureFixture
) -> None:
    """Test restore reports a missing token as a warning and a miss."""
    anonymous = settings.model_copy(update={"runtime_token": ""})
    with caplog.at_level(logging.WARNING):
        result = await restore_cache(
            ["node_modules"],
            "node-test",
            settings=anonymous,
            compression_method=CompressionMethod.GZIP,
        )

    assert result is None
    assert any("ACTIONS_RUNTIME_TOKEN" in r.getMessage() for r in caplog.records)
