"""Rolling latency telemetry for search and embedding calls.

Both windows are bounded FIFOs: once ``window_size`` samples are held, each
new sample evicts the oldest one. The monitor is shared by the ingestion
pool threads and the search handlers, so every access goes through one lock.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Deque, Optional

import psutil

from core.models import PerformanceSnapshot

LOGGER = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 100


def format_bytes(num_bytes: int) -> str:
    """Render a byte count with a binary unit, e.g. ``12.3 MB``."""

    unit = 1024
    if num_bytes < unit:
        return "< 1 KB"
    value = float(num_bytes)
    for suffix in "KMGTPE":
        value /= unit
        if value < unit:
            return f"{value:.1f} {suffix}B"
    return f"{value:.1f} EB"


def _mean(samples: Deque[float]) -> float:
    if not samples:
        return 0.0
    return sum(samples) / len(samples)


class PerformanceMonitor:
    """Keeps the most recent latency samples (in seconds) per operation."""

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self._lock = threading.Lock()
        self._search_times: Deque[float] = deque(maxlen=window_size)
        self._embedding_times: Deque[float] = deque(maxlen=window_size)
        self._process = psutil.Process()

    def record_search_time(self, seconds: float) -> None:
        with self._lock:
            self._search_times.append(seconds)

    def record_embedding_time(self, seconds: float) -> None:
        with self._lock:
            self._embedding_times.append(seconds)

    def snapshot(self) -> PerformanceSnapshot:
        """Return window means plus the current resident memory of the process."""

        with self._lock:
            search_avg = _mean(self._search_times)
            embedding_avg = _mean(self._embedding_times)
            search_samples = len(self._search_times)
            embedding_samples = len(self._embedding_times)

        return PerformanceSnapshot(
            search_avg=search_avg,
            embedding_avg=embedding_avg,
            search_samples=search_samples,
            embedding_samples=embedding_samples,
            memory_bytes=self._process.memory_info().rss,
        )

    def log_stats(self) -> None:
        snapshot = self.snapshot()
        LOGGER.info(
            "Performance: search avg %.3fs (%s samples), embedding avg %.3fs (%s samples), memory %s",
            snapshot.search_avg,
            snapshot.search_samples,
            snapshot.embedding_avg,
            snapshot.embedding_samples,
            format_bytes(snapshot.memory_bytes),
        )

    async def run_reporter(self, interval: float, stop_event: Optional[asyncio.Event] = None) -> None:
        """Log a snapshot every ``interval`` seconds until stopped or cancelled."""

        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.log_stats()
        LOGGER.debug("Performance reporter stopped")
