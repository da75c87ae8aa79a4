"""Archive creation and extraction.

``Archiver`` is the seam the orchestrator depends on; ``TarArchiver`` is the
default implementation backed by the system ``tar`` binary. Process calls run
in a worker thread; manifest and directory I/O go through aiofiles.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from stashr.core.cache.constants import CompressionMethod
from stashr.core.cache.errors import ArchiveError
from stashr.core.cache.utils import get_cache_file_name

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.txt"


class Archiver(Protocol):
    """Creates and extracts cache archives."""

    async def create_archive(
        self, folder: Path, paths: Sequence[str], method: CompressionMethod
    ) -> Path:
        """Archive ``paths`` into ``folder``; returns the archive path."""
        ...

    async def extract_archive(self, archive_path: Path, method: CompressionMethod) -> None:
        """Unpack ``archive_path`` into the workspace."""
        ...

    async def list_archive(self, archive_path: Path, method: CompressionMethod) -> list[str]:
        """Return the entry names stored in ``archive_path``."""
        ...


def _compression_args(method: CompressionMethod, *, create: bool) -> list[str]:
    # --long=30 keeps 32-bit runners able to decompress
    if method == CompressionMethod.ZSTD:
        program = "zstdmt --long=30" if create else "unzstd --long=30"
        return ["--use-compress-program", program]
    if method == CompressionMethod.ZSTD_WITHOUT_LONG:
        return ["--use-compress-program", "zstdmt" if create else "unzstd"]
    return ["-z"]


class TarArchiver:
    """Archiver that shells out to GNU/BSD tar.

    Args:
        workspace: Directory archive entries are relative to (default: cwd)
        timeout_s: Upper bound for a single tar invocation
    """

    def __init__(self, workspace: Path | None = None, *, timeout_s: float = 3600.0) -> None:
        self.workspace = workspace or Path.cwd()
        self.timeout_s = timeout_s

    def _tar(self) -> str:
        if sys.platform == "darwin":
            gtar = shutil.which("gtar")
            if gtar:
                return gtar
        tar = shutil.which("tar")
        if tar is None:
            raise ArchiveError("tar executable not found on PATH")
        return tar

    def _run(self, args: list[str], cwd: Path) -> str:
        logger.debug(f"Running: {' '.join(args)}")
        try:
            result = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ArchiveError(f"Tar timed out after {self.timeout_s}s") from e
        except OSError as e:
            raise ArchiveError(f"Tar failed with error: {e}") from e

        if result.returncode != 0:
            raise ArchiveError(
                f"Tar failed with error: exit code {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout

    async def _exec(self, args: list[str], cwd: Path) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run, args, cwd)

    async def create_archive(
        self, folder: Path, paths: Sequence[str], method: CompressionMethod
    ) -> Path:
        cache_file = get_cache_file_name(method)
        manifest = folder / MANIFEST_FILENAME
        # Manifest avoids command-line length limits
        async with aiofiles.open(manifest, "w", encoding="utf-8") as fh:
            await fh.write("\n".join(paths))

        args = [
            self._tar(),
            "--posix",
            "-cf",
            cache_file,
            "--exclude",
            cache_file,
            "-P",
            "-C",
            self.workspace.as_posix(),
            "--files-from",
            MANIFEST_FILENAME,
            *_compression_args(method, create=True),
        ]
        await self._exec(args, folder)
        return folder / cache_file

    async def extract_archive(self, archive_path: Path, method: CompressionMethod) -> None:
        await aiofiles.os.makedirs(self.workspace, exist_ok=True)
        args = [
            self._tar(),
            "-xf",
            archive_path.as_posix(),
            "-P",
            "-C",
            self.workspace.as_posix(),
            *_compression_args(method, create=False),
        ]
        if sys.platform == "darwin":
            args.append("--delay-directory-restore")
        await self._exec(args, self.workspace)

    async def list_archive(self, archive_path: Path, method: CompressionMethod) -> list[str]:
        args = [
            self._tar(),
            "-tf",
            archive_path.as_posix(),
            "-P",
            *_compression_args(method, create=False),
        ]
        output = await self._exec(args, archive_path.parent)
        entries = [line for line in output.splitlines() if line]
        for entry in entries:
            logger.debug(entry)
        return entries
