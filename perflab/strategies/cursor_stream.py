"""
Cursor streaming strategy.

Iterates the find() cursor one document at a time instead of buffering the
whole result, so only the driver's current batch is resident.
"""

from __future__ import annotations

from typing import Any, Dict

from perflab.domain.models import ReadQuery
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.abstract import AbstractReadStrategy, ReadOutcome, StrategyKind
from perflab.strategies.commands import find_command


class CursorStreamStrategy(AbstractReadStrategy):
    kind = StrategyKind.CURSOR_STREAM
    description = "Single find() iterated record by record (no buffering)."

    def explain_command(self, store: StoreAccess, query: ReadQuery) -> Dict[str, Any]:
        return find_command(
            store.collection_name, query.filter, query.projection, query.batch_size
        )

    def read(self, store: StoreAccess, query: ReadQuery) -> ReadOutcome:
        cursor = store.find(query.filter, projection=query.projection, batch_size=query.batch_size)
        records = self.count_documents(cursor)
        return ReadOutcome(records_read=records, notes="Cursor streaming, counted incrementally.")


__all__ = ["CursorStreamStrategy"]
