"""
Indexed aggregation strategy.

Runs ``$match`` + ``$project`` inside the store. The ``$match`` stage can use an
index on the filtered field when one exists (see ``perflab create-index``); the
plan analyzer reports whether it did.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from perflab.domain.models import PlanReport, ReadQuery, ScanClassification
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.abstract import (
    DEFAULT_PROJECTION,
    AbstractReadStrategy,
    ReadOutcome,
    StrategyKind,
)
from perflab.strategies.commands import aggregate_command, match_project_pipeline


class IndexedAggregationStrategy(AbstractReadStrategy):
    kind = StrategyKind.INDEXED_AGGREGATION
    description = "Aggregation pipeline ($match + $project) served by an index when present."
    filters_by_default = True

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

    def explain(self, store: StoreAccess, query: ReadQuery) -> Optional[PlanReport]:
        plan = super().explain(store, query)
        if plan is not None and plan.scan is ScanClassification.FULL_SCAN:
            self.log.warning("$match is not using an index; run `perflab create-index` first")
        return plan

    def read(self, store: StoreAccess, query: ReadQuery) -> ReadOutcome:
        pipeline = match_project_pipeline(query.filter, query.projection)
        cursor = store.aggregate(pipeline, batch_size=query.batch_size)
        records = self.count_documents(cursor)
        return ReadOutcome(
            records_read=records,
            notes=f"aggregate $match+$project batch_size={query.batch_size}",
        )


__all__ = ["IndexedAggregationStrategy"]
