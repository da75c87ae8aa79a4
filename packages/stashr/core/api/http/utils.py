"""Utility functions for HTTP client operations."""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urljoin


def join_url(base_url: str, path: str) -> str:
    """Join base URL with path in a predictable way.

    Ensures base URL ends with '/' and strips leading '/' from path.
    Absolute ``path`` values are returned unchanged.

    Args:
        base_url: Base URL (e.g. "https://cache.example.com/_apis/artifactcache/")
        path: Request path (e.g. "caches" or "/caches")

    Returns:
        Joined URL (e.g. "https://cache.example.com/_apis/artifactcache/caches")
    """
    if path.startswith(("http://", "https://")) or not base_url:
        return path
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urljoin(base, path.lstrip("/"))


def safe_snippet(content: bytes, limit: int) -> str:
    """Extract safe text snippet from response content for logging.

    Truncates content and decodes as UTF-8 with replacement for invalid bytes.

    Args:
        content: Response body bytes
        limit: Maximum number of bytes to include

    Returns:
        Truncated, decoded text snippet
    """
    if not content:
        return ""
    return content[:limit].decode("utf-8", errors="replace")


def get_request_id(headers: Mapping[str, str]) -> str | None:
    """Extract request ID from common tracing headers.

    Checks for: x-github-request-id, x-request-id, x-ms-request-id (case-insensitive).

    Args:
        headers: Response headers

    Returns:
        Request ID if found, None otherwise
    """
    for key in ("x-github-request-id", "x-request-id", "x-ms-request-id"):
        for hk, hv in headers.items():
            if hk.lower() == key:
                return hv
    return None
