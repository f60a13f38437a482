"""
OutputBuffer - bounded line store for captured pane output.

Written by background capture, read by renderers, so every method takes the
internal lock. Change detection compares a (length, hash) fingerprint rather
than the full content; a collision only skips one display refresh.
"""

import hashlib
import threading
from typing import List, Optional, Tuple

DEFAULT_CAPACITY = 500


def _fingerprint(content: str) -> Tuple[int, bytes]:
    digest = hashlib.blake2b(content.encode("utf-8", "surrogatepass"), digest_size=8).digest()
    return len(content), digest


class OutputBuffer:
    """Thread-safe ring of the last N output lines."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._lines: List[str] = []
        self._fingerprint: Optional[Tuple[int, bytes]] = None
        self._lock = threading.Lock()

    def update(self, content: str) -> bool:
        """
        Replace the buffer with new content if it changed.

        Returns:
            True if the content differed from the last update, False otherwise.
        """
        fingerprint = _fingerprint(content)
        with self._lock:
            if fingerprint == self._fingerprint:
                return False
            lines = content.split("\n")
            if len(lines) > self.capacity:
                lines = lines[-self.capacity:]
            self._lines = lines
            self._fingerprint = fingerprint
            return True

    def write(self, content: str) -> None:
        self.update(content)

    def lines(self) -> List[str]:
        """Return a copy of the buffered lines."""
        with self._lock:
            return list(self._lines)

    def lines_range(self, start: int, end: int) -> List[str]:
        """Return lines[start:end] with both bounds clamped to the buffer."""
        with self._lock:
            count = len(self._lines)
            start = max(0, min(start, count))
            end = max(start, min(end, count))
            return self._lines[start:end]

    def line_count(self) -> int:
        with self._lock:
            return len(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines = []
            self._fingerprint = None

    def __len__(self) -> int:
        return self.line_count()

    def __str__(self) -> str:
        with self._lock:
            return "\n".join(self._lines)
