"""Bounded console history fed by the host through an explicit sink."""

import threading
from collections import deque
from datetime import datetime

BRIDGE_LINE_MARKER = "[MetricsBridge]"
ERROR_LEVELS = {"ERROR", "STDERR"}


class ConsoleLogSink:
    """Thread-safe ring of timestamped console lines.

    Hosts call ``append`` for every line their console produces; the bridge
    never intercepts process stdout/stderr.
    """

    def __init__(self, max_lines=1000, clock=datetime.now):
        self._lines = deque(maxlen=max_lines)
        self._lock = threading.Lock()
        self._clock = clock

    @property
    def max_lines(self):
        return self._lines.maxlen

    def append(self, line, level="INFO"):
        """Store one line; returns False when the line was dropped."""
        clean = (line or "").replace("\r", "").strip()
        if not clean or BRIDGE_LINE_MARKER in clean:
            return False
        if str(level or "").upper() in ERROR_LEVELS:
            clean = f"[ERROR] {clean}"
        stamped = f"[{self._clock().time().isoformat(timespec='microseconds')}] {clean}"
        with self._lock:
            self._lines.append(stamped)
        return True

    def extend(self, text, level="INFO"):
        """Append every non-blank line of a multi-line block."""
        for line in (text or "").splitlines():
            self.append(line, level)

    def history(self):
        with self._lock:
            return list(self._lines)

    def clear(self):
        with self._lock:
            self._lines.clear()
