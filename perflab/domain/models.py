"""
Domain models for the Mongo performance lab.

Value types shared by the plan analyzer, the strategies and the reporting
layer. Everything here is immutable once built; a Metrics instance is created
once per strategy run and handed to the orchestrator/reporter.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class ScanClassification(str, Enum):
    """How the store located documents, read from the winning plan stage."""

    FULL_SCAN = "COLLSCAN"
    INDEX_SCAN = "IXSCAN"
    INDEX_FETCH = "FETCH"
    UNKNOWN = "UNKNOWN"


class ExecutionStats(BaseModel):
    """
    Execution statistics parsed from an explain document.

    Every field is optional: find and aggregate explain output populate
    different subsets, and an absent value means "unknown", not zero.
    """

    execution_time_ms: Optional[int] = Field(None, description="executionTimeMillis")
    total_docs_examined: Optional[int] = Field(None, ge=0, description="totalDocsExamined")
    total_keys_examined: Optional[int] = Field(None, ge=0, description="totalKeysExamined")
    n_returned: Optional[int] = Field(None, ge=0, description="nReturned")

    model_config = {"frozen": True}


class PlanReport(BaseModel):
    """Outcome of analyzing one explain document."""

    label: str
    scan: ScanClassification = ScanClassification.UNKNOWN
    winning_stage: Optional[str] = None
    index_name: Optional[str] = None
    pipeline_stages: Tuple[str, ...] = ()
    execution_stats: Optional[ExecutionStats] = None
    warnings: Tuple[str, ...] = ()

    model_config = {"frozen": True}


class EfficiencyReport(BaseModel):
    """Returned/examined ratio derived from execution stats after a run."""

    efficiency_pct: Optional[float] = None
    warnings: Tuple[str, ...] = ()

    model_config = {"frozen": True}


class ReadQuery(BaseModel):
    """Filter, projection and batch size handed to a strategy."""

    filter: Dict[str, Any] = Field(default_factory=dict)
    projection: Optional[Dict[str, Any]] = None
    batch_size: Optional[int] = Field(None, gt=0)

    model_config = {"frozen": True}


class Metrics(BaseModel):
    """
    Measurements of a single strategy run.

    ``memory_used_bytes`` is the signed RSS delta across the read; a negative
    value means memory was reclaimed between the two samples.
    """

    strategy: str
    duration_seconds: float = Field(..., ge=0)
    records_read: int = Field(..., ge=0)
    memory_used_bytes: int
    execution_stats: Optional[ExecutionStats] = None
    plan: Optional[PlanReport] = None
    efficiency: Optional[EfficiencyReport] = None
    notes: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def throughput_records_per_sec(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.records_read / self.duration_seconds

    @property
    def warnings(self) -> List[str]:
        collected: List[str] = []
        if self.plan is not None:
            collected.extend(self.plan.warnings)
        if self.efficiency is not None:
            collected.extend(self.efficiency.warnings)
        return collected


@dataclass(frozen=True)
class Chunk:
    """Skip/limit window claimed by one parallel worker."""

    worker_id: int
    skip: int
    limit: int

    def __post_init__(self) -> None:
        if self.skip < 0:
            raise ValueError(f"skip must be >= 0, got {self.skip}")
        if self.limit <= 0:
            raise ValueError(f"limit must be > 0, got {self.limit}")


__all__ = [
    "Chunk",
    "EfficiencyReport",
    "ExecutionStats",
    "Metrics",
    "PlanReport",
    "ReadQuery",
    "ScanClassification",
]
