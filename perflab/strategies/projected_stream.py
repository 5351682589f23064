"""
Projected streaming strategy.

Same single-cursor streaming as ``cursor_stream`` but requests only a subset of
fields and an explicit batch size, shrinking both the per-record payload and
the number of round trips.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from perflab.domain.models import ReadQuery
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.abstract import (
    DEFAULT_PROJECTION,
    AbstractReadStrategy,
    ReadOutcome,
    StrategyKind,
)
from perflab.strategies.commands import find_command


class ProjectedStreamStrategy(AbstractReadStrategy):
    kind = StrategyKind.PROJECTED_STREAM
    description = "find() with field projection and tuned batch size, streamed."

    def resolve_query(self, query: Optional[ReadQuery]) -> ReadQuery:
        base = super().resolve_query(query)
        return base.model_copy(
            update={
                "projection": base.projection or dict(DEFAULT_PROJECTION),
                "batch_size": base.batch_size or self.settings.benchmark_batch_size,
            }
        )

    def explain_command(self, store: StoreAccess, query: ReadQuery) -> Dict[str, Any]:
        return find_command(
            store.collection_name, query.filter, query.projection, query.batch_size
        )

    def read(self, store: StoreAccess, query: ReadQuery) -> ReadOutcome:
        cursor = store.find(query.filter, projection=query.projection, batch_size=query.batch_size)
        records = self.count_documents(cursor)
        fields = ",".join(key for key, value in (query.projection or {}).items() if value)
        return ReadOutcome(
            records_read=records,
            notes=f"projection=[{fields}] batch_size={query.batch_size}",
        )


__all__ = ["ProjectedStreamStrategy"]
