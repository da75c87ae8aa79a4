"""Cache version fingerprinting.

The version string ties a cache entry to the exact path list and archive
format that produced it, so a restore never unpacks an incompatible archive.
"""

from __future__ import annotations

import hashlib
import sys
from collections.abc import Sequence

from stashr.core.cache.constants import VERSION_SALT, CompressionMethod


def compute_version(
    paths: Sequence[str],
    compression_method: CompressionMethod | None = None,
    enable_cross_os_archive: bool = False,
    *,
    omit_default_compression: bool = False,
    platform: str | None = None,
) -> str:
    """
    Compute the cache version for a set of paths and archive options.

    Components are joined with ``|`` in this order: the paths (order
    sensitive), the compression token, ``windows-only`` when archiving on
    Windows without cross-OS support, and the version salt.

    Args:
        paths: Path patterns exactly as given by the caller (not mutated)
        compression_method: Archive compression, if known
        enable_cross_os_archive: Whether archives may be restored on another OS
        omit_default_compression: Leave out the token for gzip/None (REST service scheme)
        platform: Platform override for ``sys.platform`` (testing)

    Returns:
        SHA256 hex digest (64 chars)

    Example:
        >>> compute_version(["node_modules"], CompressionMethod.ZSTD_WITHOUT_LONG)
        'b3e0...'
    """
    components = list(paths)

    if compression_method is not None:
        is_default = compression_method == CompressionMethod.GZIP
        if not (omit_default_compression and is_default):
            components.append(CompressionMethod(compression_method).value)

    current_platform = platform if platform is not None else sys.platform
    if current_platform == "win32" and not enable_cross_os_archive:
        components.append("windows-only")

    components.append(VERSION_SALT)

    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
