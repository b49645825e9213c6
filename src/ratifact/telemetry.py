"""Bounded in-memory log buffer shown in the dashboard overlays."""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime

DEFAULT_CAPACITY = 1000


class LogSink:
    """Ring buffer of timestamped progress lines.

    Writers on any thread append under a lock straight into the ring, so the
    buffer never holds more than ``capacity`` lines whether or not anything
    reads it. Reading takes a snapshot and never consumes lines.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._lock = threading.Lock()
        self._lines: deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._lines.maxlen or 0

    def append(self, message: str) -> None:
        """Add a line to the buffer, stamped with the current time."""
        line = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        with self._lock:
            self._lines.append(line)

    def snapshot(self, last: int | None = None) -> list[str]:
        """Return the buffered lines, oldest first.

        Args:
            last: Only return this many of the newest lines.

        Returns:
            Copy of the buffered lines.

        """
        with self._lock:
            lines = list(self._lines)
        if last is not None:
            return lines[-last:] if last > 0 else []
        return lines

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)
