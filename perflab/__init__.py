"""
Mongo Perf Lab - measuring harness for MongoDB read strategies.

Compares five ways of reading the same orders collection and reports how each
one behaves:

- Full materialization of every document
- Cursor streaming
- Projected streaming with a batch size hint
- Filtered aggregation that relies on an index
- Parallel chunked aggregation across worker threads

Each run records elapsed time, records read, process memory delta and the
query plan the server chose, then flags full scans, slow queries and poor
examined/returned ratios.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from perflab.analysis import analyze_plan, assess_efficiency
from perflab.config import Settings, get_settings
from perflab.domain import Metrics, PlanReport, ReadQuery, ScanClassification
from perflab.executor import available_strategies, run_strategy
from perflab.infrastructure import StoreAccess, StoreContext
from perflab.orchestrator import RunConfig, run_strategies
from perflab.strategies.abstract import AbstractReadStrategy, ReadStrategy, StrategyKind
from perflab.utils.logging import configure_logging, get_logger
from perflab.utils.profiler import ProfileStats, measure_memory, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Store
    "StoreAccess",
    "StoreContext",
    # Domain
    "Metrics",
    "PlanReport",
    "ReadQuery",
    "ScanClassification",
    # Analysis
    "analyze_plan",
    "assess_efficiency",
    # Execution
    "AbstractReadStrategy",
    "ReadStrategy",
    "StrategyKind",
    "available_strategies",
    "run_strategy",
    "RunConfig",
    "run_strategies",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "measure_memory",
    "profile_block",
]
