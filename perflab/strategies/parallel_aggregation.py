"""
Parallel chunked aggregation strategy.

Splits the filtered result set into skip/limit windows and reads them on a
thread pool through ``ChunkCoordinator``. Memory sampling wraps the whole
fan-out and join, so the reported delta is the aggregate across workers.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from perflab.config import Settings
from perflab.domain.models import ReadQuery
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.abstract import (
    DEFAULT_PROJECTION,
    AbstractReadStrategy,
    ReadOutcome,
    StrategyKind,
)
from perflab.strategies.chunking import ChunkCoordinator, ChunkPolicy, ParallelReadReport
from perflab.strategies.commands import aggregate_command, match_project_pipeline


class ParallelAggregationStrategy(AbstractReadStrategy):
    """
    Fan an aggregation out across ``num_workers`` concurrent chunk readers.

    The explain step analyzes the per-worker pipeline without its skip/limit
    window, i.e. the ``$match`` + ``$project`` shape every worker shares.
    """

    kind = StrategyKind.PARALLEL_AGGREGATION
    description = "Thread pool of skip/limit aggregation workers with a shared counter."
    filters_by_default = True

    def __init__(
        self,
        settings: Optional[Settings] = None,
        num_workers: Optional[int] = None,
        chunk_size: Optional[int] = None,
        policy: Optional[ChunkPolicy] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(settings=settings, **kwargs)
        self.num_workers = num_workers or self.settings.parallel_workers
        self.chunk_size = chunk_size or self.settings.parallel_chunk_size
        self.policy: ChunkPolicy = policy or self.settings.parallel_chunk_policy
        self.last_report: Optional[ParallelReadReport] = None

    def resolve_query(self, query: Optional[ReadQuery]) -> ReadQuery:
        base = super().resolve_query(query)
        return base.model_copy(
            update={
                "projection": base.projection or dict(DEFAULT_PROJECTION),
                "batch_size": base.batch_size or self.settings.benchmark_batch_size,
            }
        )

    def explain_command(self, store: StoreAccess, query: ReadQuery) -> Dict[str, Any]:
        pipeline = match_project_pipeline(query.filter, query.projection)
        return aggregate_command(store.collection_name, pipeline, query.batch_size)

    def read(self, store: StoreAccess, query: ReadQuery) -> ReadOutcome:
        coordinator = ChunkCoordinator(
            store, projection=query.projection, batch_size=query.batch_size, logger=self.log
        )
        report = coordinator.execute(query.filter, self.num_workers, self.chunk_size, self.policy)
        self.last_report = report

        notes = (
            f"workers={report.num_workers} chunk_size={report.chunk_size} "
            f"policy={report.policy} matching={report.total_matching} "
            f"idle={len(report.idle_workers)}"
        )
        if report.uncovered_records:
            notes += f" uncovered={report.uncovered_records}"
        if report.failed_workers:
            notes += f" failed_workers={report.failed_workers}"
        return ReadOutcome(records_read=report.records_read, notes=notes)


__all__ = ["ParallelAggregationStrategy"]
