"""
Domain package for the Mongo performance lab.

Exports the value types used across strategies, plan analysis and reporting.
Keep this package focused on data definitions and validation concerns.
"""

from perflab.domain.models import (
    Chunk,
    EfficiencyReport,
    ExecutionStats,
    Metrics,
    PlanReport,
    ReadQuery,
    ScanClassification,
)

__all__ = [
    "Chunk",
    "EfficiencyReport",
    "ExecutionStats",
    "Metrics",
    "PlanReport",
    "ReadQuery",
    "ScanClassification",
]
