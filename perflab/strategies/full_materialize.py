"""
Full-materialize (baseline) strategy: one find, whole result buffered.

Intended as the simplest possible baseline to compare against streaming,
projected, indexed and parallel reads.
"""

from __future__ import annotations

from contextlib import closing
from typing import Any, Dict

from perflab.domain.models import ReadQuery
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.abstract import AbstractReadStrategy, ReadOutcome, StrategyKind
from perflab.strategies.commands import find_command


class FullMaterializeStrategy(AbstractReadStrategy):
    """
    Load every matching document into a list before counting.

    WARNING: the entire result set is held in memory. On the full collection
    (1M orders) this is expected to be the slowest and most memory-heavy
    strategy. Keep as a baseline only.
    """

    kind = StrategyKind.FULL_MATERIALIZE
    description = "Single find() with the whole cursor buffered into a list."

    def explain_command(self, store: StoreAccess, query: ReadQuery) -> Dict[str, Any]:
        return find_command(
            store.collection_name, query.filter, query.projection, query.batch_size
        )

    def read(self, store: StoreAccess, query: ReadQuery) -> ReadOutcome:
        cursor = store.find(query.filter, projection=query.projection, batch_size=query.batch_size)
        with closing(cursor):
            documents = list(cursor)
        return ReadOutcome(
            records_read=len(documents),
            notes="Full materialization baseline; no streaming or projection.",
        )


__all__ = ["FullMaterializeStrategy"]
