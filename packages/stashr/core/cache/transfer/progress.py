"""Transfer progress reporting.

Transfer code depends only on ``ProgressReporter``; ``TransferProgress`` is
the default reporter, logging a status line on a fixed interval from an
asyncio task.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Protocol

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def on_progress(self, transferred_bytes: int) -> None: ...


class NullProgress:
    """Reporter that ignores everything."""

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def on_progress(self, transferred_bytes: int) -> None:
        pass


class TransferProgress:
    """Tracks bytes moved across sequential segments and logs throughput.

    ``on_progress`` takes the bytes moved within the current segment, so a
    segmented download can reuse one reporter for every segment.

    Args:
        content_length: Total bytes expected
        verb: Leading word of the status line ("Received", "Sent")
        interval_s: Seconds between status lines while running
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        content_length: int,
        *,
        verb: str = "Received",
        interval_s: float = 1.0,
        clock=time.monotonic,
    ) -> None:
        self.content_length = content_length
        self.verb = verb
        self.interval_s = interval_s
        self._clock = clock

        self.segment_index = 0
        self.segment_offset = 0
        self.segment_size = 0
        self.received_bytes = 0
        self.start_time = clock()
        self.displayed_complete = False
        self._task: asyncio.Task[None] | None = None

    def next_segment(self, segment_size: int) -> None:
        """Advance to the next segment; call only once the previous one is complete."""
        self.segment_offset += self.segment_size
        self.segment_index += 1
        self.segment_size = segment_size
        self.received_bytes = 0
        logger.debug(
            f"Downloading segment at offset {self.segment_offset} "
            f"with length {self.segment_size}..."
        )

    def on_progress(self, transferred_bytes: int) -> None:
        self.received_bytes = transferred_bytes

    @property
    def transferred_bytes(self) -> int:
        return self.segment_offset + self.received_bytes

    def is_done(self) -> bool:
        return self.transferred_bytes == self.content_length

    def display(self) -> None:
        """Log the current stats; after completion, log one last line and go quiet."""
        if self.displayed_complete:
            return

        transferred = self.transferred_bytes
        percentage = 100 * transferred / self.content_length if self.content_length else 100.0
        elapsed_s = max(self._clock() - self.start_time, 1e-9)
        speed = transferred / (1024 * 1024) / elapsed_s

        logger.info(
            f"{self.verb} {transferred} of {self.content_length} "
            f"({percentage:.1f}%), {speed:.1f} MBs/sec"
        )

        if self.is_done():
            self.displayed_complete = True

    async def _run(self) -> None:
        while not self.is_done():
            await asyncio.sleep(self.interval_s)
            self.display()

    def start(self) -> None:
        """Start the periodic display task on the running loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Cancel the display task and log the final line (at most once)."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.display()


@contextlib.contextmanager
def reporting(progress: ProgressReporter):
    """Run ``progress`` for the duration of a block."""
    progress.start()
    try:
        yield progress
    finally:
        progress.stop()
