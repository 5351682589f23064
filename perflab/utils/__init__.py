"""
Utilities package for the Mongo performance lab.

Exports shared helpers for logging, profiling, and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from perflab.utils.logging import configure_logging, get_logger, results_log_path
from perflab.utils.profiler import (
    MemoryDelta,
    ProfileStats,
    current_rss_bytes,
    measure_memory,
    profile_block,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "results_log_path",
    "MemoryDelta",
    "ProfileStats",
    "current_rss_bytes",
    "measure_memory",
    "profile_block",
]
