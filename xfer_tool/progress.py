"""Progress listeners invoked synchronously from the transfer path."""

from __future__ import annotations

import logging
import time
from typing import Optional

from .models import ProgressEvent


class LoggingProgressReporter:
    """Logs per-file progress at most once per ``interval`` seconds, plus completion.

    Runs on the transferring thread, so it never blocks.
    """

    def __init__(self, interval: float = 0.5, logger: Optional[logging.Logger] = None):
        self.interval = max(0.0, interval)
        self.logger = logger or logging.getLogger("xfer_tool")
        self.bytes_done = 0
        self._current: Optional[str] = None
        self._last_ts = 0.0
        self._last_bytes = 0

    def __call__(self, event: ProgressEvent) -> None:
        now = time.time()
        if event.file_name != self._current:
            self._current = event.file_name
            self._last_ts = now
            self._last_bytes = 0
        delta = max(0, event.transferred - self._last_bytes)
        finished = event.total > 0 and event.transferred >= event.total
        if not finished and now - self._last_ts < self.interval:
            return
        elapsed = now - self._last_ts if now > self._last_ts else 1e-6
        speed = delta / elapsed / (1024 * 1024)
        self.bytes_done += delta
        self._last_ts, self._last_bytes = now, event.transferred
        self.logger.info(
            f"[PROGRESS] {event.direction.value} {event.file_name}: "
            f"{event.transferred}/{event.total} bytes ({event.fraction * 100:.1f}%) - {speed:.2f} MB/s"
        )


__all__ = ["LoggingProgressReporter"]
