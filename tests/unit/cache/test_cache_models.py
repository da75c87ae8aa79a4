"""Tests for cache keys and result models."""

from __future__ import annotations

import pytest

from stashr.core.cache.errors import ValidationError
from stashr.core.cache.models import CacheEntry, CacheKeys, check_key


class TestCheckKey:
    def test_accepts_max_length(self) -> None:
        """Test a 512-character key is accepted."""
        check_key("k" * 512)

    def test_rejects_long_key(self) -> None:
        """Test a 513-character key is rejected."""
        with pytest.raises(ValidationError, match="cannot be larger than 512 characters"):
            check_key("k" * 513)

    def test_rejects_comma(self) -> None:
        """Test commas are rejected."""
        with pytest.raises(ValidationError, match="cannot contain commas"):
            check_key("a,b")


class TestCacheKeys:
    """Tests for CacheKeys.build()."""

    def test_primary_first(self) -> None:
        """Test the primary key leads the lookup order."""
        keys = CacheKeys.build("node-test", ["node-", "n"])
        assert keys.all_keys == ["node-test", "node-", "n"]

    def test_ten_keys_allowed(self) -> None:
        """Test a primary key plus nine restore keys is accepted."""
        keys = CacheKeys.build("p", [f"r{i}" for i in range(9)])
        assert len(keys.all_keys) == 10

    def test_eleven_keys_rejected(self) -> None:
        """Test more than ten keys is rejected."""
        with pytest.raises(ValidationError, match="limited to a maximum of 10"):
            CacheKeys.build("p", [f"r{i}" for i in range(10)])

    def test_restore_key_validated(self) -> None:
        """Test restore keys follow the same rules as the primary key."""
        with pytest.raises(ValidationError):
            CacheKeys.build("p", ["bad,key"])

    def test_no_restore_keys(self) -> None:
        assert CacheKeys.build("p").all_keys == ["p"]


class TestCacheEntry:
    def test_download_url_prefers_archive_location(self) -> None:
        entry = CacheEntry(matched_key="k", archive_location="https://a.test/x")
        assert entry.download_url == "https://a.test/x"

    def test_download_url_missing(self) -> None:
        with pytest.raises(ValueError):
            _ = CacheEntry(matched_key="k").download_url

    def test_urls_hidden_from_repr(self) -> None:
        """Test signed URLs do not appear in the repr."""
        entry = CacheEntry(matched_key="k", signed_download_url="https://a.test/x?sig=abc")
        assert "sig=abc" not in repr(entry)
