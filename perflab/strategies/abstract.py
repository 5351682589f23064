"""
Abstract strategy interfaces for the Mongo performance lab.

Every read strategy shares one skeleton, implemented once in
``AbstractReadStrategy.run``:

    explain (same filter/projection/options as the read)
      -> analyze the plan
      -> sample memory, time and perform the read
      -> build Metrics
      -> score efficiency from the execution stats

Concrete strategies only supply the explain command and the read itself.
"""

from __future__ import annotations

import abc
import logging
import time
from contextlib import closing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Protocol, runtime_checkable

from pymongo.errors import ConnectionFailure, PyMongoError

from perflab.analysis.plan_analyzer import analyze_plan, assess_efficiency
from perflab.config import Settings, get_settings
from perflab.domain.models import Metrics, PlanReport, ReadQuery
from perflab.infrastructure.store import StoreAccess
from perflab.utils import profiler
from perflab.utils.logging import get_logger

DEFAULT_PROJECTION: Dict[str, int] = {"userId": 1, "status": 1, "_id": 0}


class StrategyKind(str, Enum):
    FULL_MATERIALIZE = "full_materialize"
    CURSOR_STREAM = "cursor_stream"
    PROJECTED_STREAM = "projected_stream"
    INDEXED_AGGREGATION = "indexed_aggregation"
    PARALLEL_AGGREGATION = "parallel_aggregation"


@dataclass(frozen=True)
class ReadOutcome:
    """What a strategy's read loop reports back to the skeleton."""

    records_read: int
    notes: Optional[str] = None


@runtime_checkable
class ReadStrategy(Protocol):
    """
    Common interface all read strategies implement.

    Attributes
    ----------
    kind : StrategyKind
        Tag used by the registry and in reports.
    description : str
        A human-friendly summary of the approach.
    """

    kind: StrategyKind
    description: str

    def run(self, store: StoreAccess, query: Optional[ReadQuery] = None) -> Metrics:
        """
        Explain, execute and measure one read against the store.

        Parameters
        ----------
        store : StoreAccess
            Open store handle owned by the caller.
        query : ReadQuery | None
            Filter/projection/batch size; strategy defaults fill the gaps.

        Returns
        -------
        Metrics
            Duration, records read, memory delta and plan analysis.
        """
        ...


class AbstractReadStrategy(abc.ABC):
    """
    Base class holding the shared explain -> read -> measure -> classify flow.

    Subclasses set ``kind`` and ``description`` and implement
    ``explain_command`` and ``read``. ``filters_by_default`` marks strategies
    whose default query narrows on the configured status value.
    """

    kind: StrategyKind
    description: str
    filters_by_default: bool = False

    def __init__(
        self, settings: Optional[Settings] = None, logger: Optional[logging.Logger] = None
    ) -> None:
        self.settings = settings or get_settings()
        self.log = logger or get_logger(f"perflab.strategies.{self.kind.value}")

    @property
    def name(self) -> str:
        return self.kind.value

    def default_filter(self) -> Dict[str, Any]:
        if self.filters_by_default:
            return {"status": self.settings.benchmark_filter_status}
        return {}

    def resolve_query(self, query: Optional[ReadQuery]) -> ReadQuery:
        """Fill in strategy defaults; explicit values always win."""
        if query is None:
            return ReadQuery(filter=self.default_filter())
        return query

    @abc.abstractmethod
    def explain_command(self, store: StoreAccess, query: ReadQuery) -> Dict[str, Any]:
        """Command descriptor mirroring exactly the read about to run."""
        raise NotImplementedError

    @abc.abstractmethod
    def read(self, store: StoreAccess, query: ReadQuery) -> ReadOutcome:
        """Perform the read and count every document iterated."""
        raise NotImplementedError

    def explain(self, store: StoreAccess, query: ReadQuery) -> Optional[PlanReport]:
        """
        Request and analyze the plan for ``query``.

        Connectivity failures propagate; any other store error is downgraded to
        a warning and the run continues without a plan.
        """
        command = self.explain_command(store, query)
        self.log.info(f"[EXPLAIN] Analyzing query for {self.name}", extra={"strategy": self.name})
        try:
            plan = store.explain(command, verbosity="executionStats")
        except ConnectionFailure:
            raise
        except PyMongoError as exc:
            self.log.warning(
                f"[EXPLAIN] Explain failed for {self.name}: {exc}",
                extra={"strategy": self.name, "error": str(exc)},
            )
            return None
        return analyze_plan(plan, self.name, self.log, self.settings.slow_query_ms)

    def count_documents(self, cursor: Iterable[Any]) -> int:
        """Iterate a cursor to exhaustion one document at a time, closing it afterwards."""
        interval = self.settings.benchmark_progress_interval
        records = 0
        with closing(cursor):  # type: ignore[type-var]
            for _document in cursor:
                records += 1
                if interval and records % interval == 0:
                    self.log.info(f"  processed {records:,} records", extra={"records": records})
        return records

    def run(self, store: StoreAccess, query: Optional[ReadQuery] = None) -> Metrics:
        resolved = self.resolve_query(query)
        plan = self.explain(store, resolved)

        with profiler.measure_memory() as memory:
            start = time.perf_counter()
            outcome = self.read(store, resolved)
            duration = time.perf_counter() - start

        stats = plan.execution_stats if plan is not None else None
        efficiency = (
            assess_efficiency(stats, self.log, self.settings.low_efficiency_pct)
            if stats is not None
            else None
        )
        metrics = Metrics(
            strategy=self.name,
            duration_seconds=duration,
            records_read=outcome.records_read,
            memory_used_bytes=memory.delta_bytes,
            execution_stats=stats,
            plan=plan,
            efficiency=efficiency,
            notes=outcome.notes,
        )
        self.log.info(
            f"[RESULT] {self.name}: records={metrics.records_read:,} "
            f"duration={metrics.duration_seconds:.3f}s "
            f"memory={metrics.memory_used_bytes / (1024 * 1024):.2f}MB",
            extra={
                "strategy": self.name,
                "records": metrics.records_read,
                "duration": metrics.duration_seconds,
                "memory_used_bytes": metrics.memory_used_bytes,
            },
        )
        return metrics


__all__ = [
    "AbstractReadStrategy",
    "DEFAULT_PROJECTION",
    "ReadOutcome",
    "ReadStrategy",
    "StrategyKind",
]
