"""Terminal rendering of upload progress."""

import asyncio
import sys
from typing import Optional, TextIO

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText

from cli.constants import CLEAR_LINE, RENDER_INTERVAL_SECONDS, STYLE
from cli.utils import format_file_size, format_snapshot
from common.types import ProgressSnapshot
from uploader.orchestrator import UploadSummary


class ProgressRenderer:
    """
    Redraws a single status line from the most recent progress snapshot.

    `push` only replaces the pending snapshot, so bursts of updates between
    redraws are coalesced and the producer never waits on the terminal.
    """

    def __init__(self, stream: Optional[TextIO] = None, interval: float = RENDER_INTERVAL_SECONDS):
        self.stream = stream or sys.stdout
        self.interval = interval
        self.enabled = bool(getattr(self.stream, 'isatty', lambda: False)())
        self._pending: Optional[ProgressSnapshot] = None
        self._task: Optional[asyncio.Task] = None
        self.rendered = 0

    def push(self, snapshot: ProgressSnapshot) -> None:
        self._pending = snapshot

    def render_pending(self) -> bool:
        """Draw the pending snapshot, if any. Returns True when a line was drawn."""
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return False
        self.rendered += 1
        if self.enabled:
            self.stream.write(CLEAR_LINE + format_snapshot(snapshot))
            self.stream.flush()
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.render_pending()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name="progress-renderer")

    async def stop(self) -> None:
        """Stop redrawing and leave the last state on screen."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.render_pending()
        if self.enabled and self.rendered:
            self.stream.write('\n')
            self.stream.flush()


def print_summary(summary: UploadSummary) -> None:
    """Print the end-of-run summary line."""
    fragments = [
        ('class:ok', f"Uploaded {summary.uploaded}"),
        ('', f" ({format_file_size(summary.bytes_uploaded)}), "),
        ('class:skipped', f"skipped {summary.skipped}"),
        ('', ", "),
        ('class:error' if summary.failed else '', f"failed {summary.failed}"),
        ('', f" of {summary.total_files} file(s)."),
    ]
    if summary.was_cancelled:
        fragments.append(('class:error', " Cancelled."))
    if summary.error is not None:
        fragments.append(('class:error', f"\nFirst error: {summary.error}"))
    print_formatted_text(FormattedText(fragments), style=STYLE)
