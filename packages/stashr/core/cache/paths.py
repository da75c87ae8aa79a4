"""Resolution of user path patterns into concrete archive entries."""

from __future__ import annotations

import asyncio
import glob
import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class PathResolver(Protocol):
    async def resolve(self, patterns: Sequence[str]) -> list[str]:
        """Return matched entries relative to the workspace, in a stable order."""
        ...


class GlobPathResolver:
    """Resolve patterns with the standard library glob.

    Patterns starting with ``!`` exclude previously matched entries. Results
    are workspace-relative with ``/`` separators; the workspace itself
    becomes ``"."``.

    Args:
        workspace: Root that patterns and results are relative to (default: cwd)
    """

    def __init__(self, workspace: Path | None = None) -> None:
        self.workspace = workspace or Path.cwd()

    def _resolve_sync(self, patterns: Sequence[str]) -> list[str]:
        matched: dict[str, None] = {}
        for raw in patterns:
            pattern = raw.strip()
            if not pattern or pattern.startswith("#"):
                continue
            exclude = pattern.startswith("!")
            if exclude:
                pattern = pattern[1:]
            pattern = os.path.expanduser(pattern)
            if not os.path.isabs(pattern):
                pattern = str(self.workspace / pattern)

            for hit in sorted(glob.glob(pattern, recursive=True)):
                relative = self._relative(hit)
                if exclude:
                    matched.pop(relative, None)
                else:
                    matched[relative] = None

        for entry in matched:
            logger.debug(f"Matched: {entry}")
        return list(matched)

    def _relative(self, path: str) -> str:
        rel = os.path.relpath(path, self.workspace).replace(os.sep, "/")
        return "." if rel in ("", ".") else rel

    async def resolve(self, patterns: Sequence[str]) -> list[str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._resolve_sync, patterns)
