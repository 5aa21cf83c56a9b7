"""Rolling tick-duration window and process resource probes."""

import math
import threading
import time
from collections import deque
from dataclasses import dataclass

import psutil

WINDOW = 200  # ticks (~10s at 20 TPS)
NOMINAL_TPS = 20.0


@dataclass(frozen=True)
class MemoryStats:
    """Byte counts for the bridge's host process."""
    total: int
    used: int
    free: int
    max: int


class MetricsSampler:
    """Smoothed estimate of server tick performance.

    ``on_tick_end`` is called from the host's tick thread only; readers on
    request threads take the same lock to copy the window.
    """

    def __init__(self, window=WINDOW, clock_ns=time.monotonic_ns, process=None):
        self._durations_ns = deque(maxlen=window)
        self._lock = threading.Lock()
        self._clock_ns = clock_ns
        self._last_tick_ns = clock_ns()
        self._process = process
        if self._process is None:
            try:
                self._process = psutil.Process()
                # First cpu_percent() call only primes the counters.
                self._process.cpu_percent(interval=None)
            except psutil.Error:
                self._process = None

    def on_tick_end(self):
        """Record the time elapsed since the previous tick boundary."""
        now = self._clock_ns()
        elapsed = now - self._last_tick_ns
        self._last_tick_ns = now
        self.record_tick_duration(elapsed)

    def record_tick_duration(self, nanos):
        """Push one tick duration, clamped to >= 0; the oldest entry falls off when full."""
        with self._lock:
            self._durations_ns.append(max(0, int(nanos)))

    def window_size(self):
        with self._lock:
            return len(self._durations_ns)

    def avg_tick_ms(self):
        """Mean tick time in ms, or NaN before any tick has been observed."""
        with self._lock:
            samples = list(self._durations_ns)
        if not samples:
            return math.nan
        return (sum(samples) / len(samples)) / 1_000_000.0

    def tps(self):
        """Ticks per second derived from the mean, capped at the nominal 20."""
        ms = self.avg_tick_ms()
        if math.isnan(ms) or ms <= 0:
            return math.nan
        return min(NOMINAL_TPS, 1000.0 / ms)

    def cpu_process_load(self):
        """Process CPU utilization as 0..100 across all cores, or NaN."""
        if self._process is None:
            return math.nan
        try:
            percent = self._process.cpu_percent(interval=None)
            cores = psutil.cpu_count() or 1
        except (psutil.Error, OSError):
            return math.nan
        if percent is None or percent < 0:
            return math.nan
        return min(100.0, percent / cores)

    def memory(self):
        """Return ``MemoryStats`` (total/free from the system, used from process RSS).

        ``used`` falls back to system-wide usage when the process probe is
        unavailable.
        """
        vm = psutil.virtual_memory()
        used = vm.total - vm.available
        if self._process is not None:
            try:
                used = self._process.memory_info().rss
            except (psutil.Error, OSError):
                pass
        return MemoryStats(total=vm.total, used=used, free=vm.available, max=vm.total)
