"""
Strategies package for the Mongo performance lab.

This module re-exports the abstract interfaces and the concrete strategy classes
so downstream code can import from `perflab.strategies` directly.
"""

from perflab.strategies.abstract import (
    AbstractReadStrategy,
    ReadOutcome,
    ReadStrategy,
    StrategyKind,
)
from perflab.strategies.chunking import ChunkCoordinator, ParallelReadReport, SharedCounter
from perflab.strategies.cursor_stream import CursorStreamStrategy
from perflab.strategies.full_materialize import FullMaterializeStrategy
from perflab.strategies.indexed_aggregation import IndexedAggregationStrategy
from perflab.strategies.parallel_aggregation import ParallelAggregationStrategy
from perflab.strategies.projected_stream import ProjectedStreamStrategy

__all__ = [
    # Abstracts
    "AbstractReadStrategy",
    "ReadOutcome",
    "ReadStrategy",
    "StrategyKind",
    # Coordination
    "ChunkCoordinator",
    "ParallelReadReport",
    "SharedCounter",
    # Concrete strategies
    "CursorStreamStrategy",
    "FullMaterializeStrategy",
    "IndexedAggregationStrategy",
    "ParallelAggregationStrategy",
    "ProjectedStreamStrategy",
]
