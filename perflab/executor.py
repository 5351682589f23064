"""
Strategy executor: maps a ``StrategyKind`` onto its implementation and runs it.

Usage:
    from perflab.executor import run_strategy
    from perflab.infrastructure import StoreContext

    with StoreContext() as store:
        metrics = run_strategy(store, "projected_stream", filter={"status": "PAID"})
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from perflab.config import Settings
from perflab.domain.models import Metrics, ReadQuery
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.abstract import AbstractReadStrategy, StrategyKind
from perflab.strategies.cursor_stream import CursorStreamStrategy
from perflab.strategies.full_materialize import FullMaterializeStrategy
from perflab.strategies.indexed_aggregation import IndexedAggregationStrategy
from perflab.strategies.parallel_aggregation import ParallelAggregationStrategy
from perflab.strategies.projected_stream import ProjectedStreamStrategy

StrategyFactory = Callable[..., AbstractReadStrategy]

STRATEGY_REGISTRY: Dict[StrategyKind, StrategyFactory] = {
    StrategyKind.FULL_MATERIALIZE: FullMaterializeStrategy,
    StrategyKind.CURSOR_STREAM: CursorStreamStrategy,
    StrategyKind.PROJECTED_STREAM: ProjectedStreamStrategy,
    StrategyKind.INDEXED_AGGREGATION: IndexedAggregationStrategy,
    StrategyKind.PARALLEL_AGGREGATION: ParallelAggregationStrategy,
}


def available_strategies() -> List[str]:
    """Strategy names in benchmark order (baseline first)."""
    return [kind.value for kind in STRATEGY_REGISTRY]


def resolve_kind(strategy: Union[StrategyKind, str]) -> StrategyKind:
    try:
        return StrategyKind(strategy)
    except ValueError:
        raise ValueError(
            f"Unknown strategy '{strategy}'. Available: {', '.join(available_strategies())}"
        ) from None


def create_strategy(
    strategy: Union[StrategyKind, str], settings: Optional[Settings] = None, **options: Any
) -> AbstractReadStrategy:
    return STRATEGY_REGISTRY[resolve_kind(strategy)](settings=settings, **options)


def run_strategy(
    store: StoreAccess,
    strategy: Union[StrategyKind, str],
    filter: Optional[Mapping[str, Any]] = None,
    projection: Optional[Mapping[str, Any]] = None,
    batch_size: Optional[int] = None,
    settings: Optional[Settings] = None,
    **options: Any,
) -> Metrics:
    """
    Run one strategy against ``store`` and return its Metrics.

    ``filter=None`` keeps the strategy's default filter (all documents for the
    find-based strategies, the configured status for the aggregations).
    """
    impl = create_strategy(strategy, settings=settings, **options)
    if filter is None and projection is None and batch_size is None:
        return impl.run(store)
    query = ReadQuery(
        filter=dict(filter) if filter is not None else impl.default_filter(),
        projection=dict(projection) if projection is not None else None,
        batch_size=batch_size,
    )
    return impl.run(store, query)


__all__ = [
    "STRATEGY_REGISTRY",
    "available_strategies",
    "create_strategy",
    "resolve_kind",
    "run_strategy",
]
