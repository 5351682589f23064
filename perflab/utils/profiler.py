"""
Profiling utilities for the Mongo performance lab.

Two layers of measurement are available:

- ``measure_memory`` takes the signed before/after RSS sample that a strategy
  reports as ``memory_used_bytes``; it wraps the read and nothing else.
- ``profile_block`` wraps a whole strategy run (explain included) for the
  orchestrator and collects wall-clock time, peak RSS from a background
  sampler, peak Python allocations (tracemalloc) and a CPU percent snapshot.

Usage examples:
    from perflab.utils.profiler import measure_memory, profile_block

    with profile_block("cursor_stream") as stats:
        with measure_memory() as memory:
            run_strategy()

    print(stats.duration_seconds, stats.peak_rss_bytes, memory.delta_bytes)
"""

from __future__ import annotations

import contextlib
import gc
import threading
import time
import tracemalloc
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import psutil


@dataclass
class MemoryDelta:
    """Before/after RSS samples; the delta may legitimately be negative."""

    before_bytes: int = 0
    after_bytes: int = 0

    @property
    def delta_bytes(self) -> int:
        return self.after_bytes - self.before_bytes


@dataclass
class ProfileStats:
    label: str
    start_ts: float = 0.0
    end_ts: float = 0.0
    duration_seconds: float = 0.0
    rss_delta_bytes: Optional[int] = None
    peak_rss_bytes: Optional[int] = None
    peak_traced_bytes: Optional[int] = None
    cpu_percent: Optional[float] = None
    extra: dict[str, Any] = field(default_factory=dict)


def current_rss_bytes() -> int:
    """Resident set size of the current process."""
    return psutil.Process().memory_info().rss


@contextlib.contextmanager
def measure_memory(collect_garbage: bool = True) -> Generator[MemoryDelta, None, None]:
    """
    Sample RSS before and after the block.

    A garbage collection pass runs before the first sample so the baseline does
    not include garbage left over from earlier work. The delta is reported as-is,
    never clamped.
    """
    if collect_garbage:
        gc.collect()
    sample = MemoryDelta(before_bytes=current_rss_bytes())
    yield sample
    sample.after_bytes = current_rss_bytes()


class PeakRssSampler:
    """Daemon thread polling process RSS and keeping the highest value seen."""

    def __init__(self, process: psutil.Process, interval_seconds: float) -> None:
        self._process = process
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name="rss-sampler", daemon=True)
        self.peak_bytes = process.memory_info().rss

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                rss = self._process.memory_info().rss
            except psutil.Error:
                return
            if rss > self.peak_bytes:
                self.peak_bytes = rss
            self._stop.wait(timeout=self._interval)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> int:
        self._stop.set()
        self._thread.join(timeout=1.0)
        return self.peak_bytes


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 50, enable_tracemalloc: bool = True
) -> Generator[ProfileStats, None, None]:
    """
    Profile a whole strategy run.

    Parameters
    ----------
    label : str
        Name recorded on the stats (the strategy name in practice).
    sample_interval_ms : int
        Polling interval of the peak-RSS sampler.
    enable_tracemalloc : bool
        Track peak Python allocations; tracing is stopped afterwards only if it
        was started here.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    rss_before = process.memory_info().rss
    sampler = PeakRssSampler(process, sample_interval_ms / 1000.0)

    started_tracing = enable_tracemalloc and not tracemalloc.is_tracing()
    if started_tracing:
        tracemalloc.start()
    # First call only primes the counter.
    process.cpu_percent(interval=None)
    sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts

        peak = sampler.stop()
        stats.peak_rss_bytes = peak if peak > 0 else None
        stats.rss_delta_bytes = process.memory_info().rss - rss_before
        stats.cpu_percent = process.cpu_percent(interval=None)

        if enable_tracemalloc and tracemalloc.is_tracing():
            stats.peak_traced_bytes = tracemalloc.get_traced_memory()[1]
            if started_tracing:
                tracemalloc.stop()


__all__ = [
    "MemoryDelta",
    "PeakRssSampler",
    "ProfileStats",
    "current_rss_bytes",
    "measure_memory",
    "profile_block",
]
