"""
Explain-output analysis.

Explain documents are handled as loosely typed trees: find and aggregate return
structurally different output (top-level ``queryPlanner``/``executionStats`` for
find and pushed-down pipelines, a ``stages`` list with a ``$cursor`` entry for
classic aggregations, ``winningPlan.queryPlan`` for slot-based plans). Fields are
extracted defensively; anything missing or of the wrong type is treated as
unknown rather than zero, and nothing in this module raises on malformed input.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Mapping, Optional, Tuple

from perflab.domain.models import (
    EfficiencyReport,
    ExecutionStats,
    PlanReport,
    ScanClassification,
)
from perflab.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_SLOW_QUERY_MS = 100
DEFAULT_LOW_EFFICIENCY_PCT = 50.0

_STAGE_CLASSIFICATION = {
    "COLLSCAN": ScanClassification.FULL_SCAN,
    "IXSCAN": ScanClassification.INDEX_SCAN,
    "FETCH": ScanClassification.INDEX_FETCH,
}


def _mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


def _as_int(value: Any) -> Optional[int]:
    # bool is an int subclass; a flag is never a count.
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def classify_stage(stage: Optional[str]) -> ScanClassification:
    """Exact-match a declared stage name onto a scan classification."""
    if not isinstance(stage, str):
        return ScanClassification.UNKNOWN
    return _STAGE_CLASSIFICATION.get(stage, ScanClassification.UNKNOWN)


def _cursor_stage(plan: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    stages = plan.get("stages")
    if not isinstance(stages, list):
        return None
    for stage in stages:
        stage_map = _mapping(stage)
        if stage_map is None:
            continue
        cursor = _mapping(stage_map.get("$cursor"))
        if cursor is not None:
            return cursor
    return None


def winning_plan(plan: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """Locate the winning plan in find or aggregate explain output."""
    planner = _mapping(plan.get("queryPlanner"))
    if planner is None:
        cursor = _cursor_stage(plan)
        planner = _mapping(cursor.get("queryPlanner")) if cursor is not None else None
    if planner is None:
        return None
    winning = _mapping(planner.get("winningPlan"))
    if winning is None:
        return None
    # Slot-based engine wraps the classic tree in "queryPlan".
    if "stage" not in winning and _mapping(winning.get("queryPlan")) is not None:
        return winning["queryPlan"]
    return winning


def _find_index_name(node: Optional[Mapping[str, Any]]) -> Optional[str]:
    while node is not None:
        name = node.get("indexName")
        if isinstance(name, str):
            return name
        node = _mapping(node.get("inputStage"))
    return None


def pipeline_stage_names(plan: Mapping[str, Any]) -> Tuple[str, ...]:
    """Names of the aggregation stages listed in explain output, in order."""
    stages = plan.get("stages")
    if not isinstance(stages, list):
        return ()
    names: List[str] = []
    for stage in stages:
        stage_map = _mapping(stage)
        if stage_map is None:
            continue
        declared = stage_map.get("stage")
        if isinstance(declared, str):
            names.append(declared)
        elif stage_map:
            names.append(next(iter(stage_map)))
    return tuple(names)


def parse_execution_stats(plan: Mapping[str, Any]) -> Optional[ExecutionStats]:
    """
    Pull executionStats out of an explain document.

    Returns None when no execution statistics section exists at all; within the
    section, absent counters stay None.
    """
    section = _mapping(plan.get("executionStats"))
    if section is None:
        cursor = _cursor_stage(plan)
        section = _mapping(cursor.get("executionStats")) if cursor is not None else None
    if section is None:
        return None

    def _count(key: str) -> Optional[int]:
        value = _as_int(section.get(key))
        return value if value is None or value >= 0 else None

    return ExecutionStats(
        execution_time_ms=_as_int(section.get("executionTimeMillis")),
        total_docs_examined=_count("totalDocsExamined"),
        total_keys_examined=_count("totalKeysExamined"),
        n_returned=_count("nReturned"),
    )


def latency_warnings(
    stats: Optional[ExecutionStats], slow_query_ms: int = DEFAULT_SLOW_QUERY_MS
) -> List[str]:
    warnings: List[str] = []
    if stats is None:
        return warnings
    if stats.execution_time_ms is not None and stats.execution_time_ms > slow_query_ms:
        warnings.append(f"Slow query (>{slow_query_ms}ms): optimization may be needed")
    examined, returned = stats.total_docs_examined, stats.n_returned
    if examined is not None and returned is not None and returned > 0:
        if examined > returned * 2:
            warnings.append(
                f"Examined {examined // returned}x more documents than returned "
                "(an index may be needed)"
            )
    return warnings


def analyze_plan(
    plan: Mapping[str, Any],
    label: str,
    logger: Optional[logging.Logger] = None,
    slow_query_ms: int = DEFAULT_SLOW_QUERY_MS,
) -> PlanReport:
    """
    Classify an explain document and derive latency/examination warnings.

    Emits informational and warning lines through ``logger``; never raises.
    """
    out = logger or log
    out.info(f"=== EXPLAIN RESULTS - {label} ===", extra={"label": label})

    stats = parse_execution_stats(plan)
    if stats is not None:
        out.info(
            f"Execution stats: time={stats.execution_time_ms}ms "
            f"docsExamined={stats.total_docs_examined} "
            f"keysExamined={stats.total_keys_examined} returned={stats.n_returned}",
            extra={"label": label, **stats.model_dump()},
        )
    warnings = latency_warnings(stats, slow_query_ms)

    winning = winning_plan(plan)
    stage = winning.get("stage") if winning is not None else None
    stage = stage if isinstance(stage, str) else None
    scan = classify_stage(stage)
    index_name = _find_index_name(winning)

    pipeline_stages = pipeline_stage_names(plan)
    if scan is ScanClassification.UNKNOWN and pipeline_stages:
        for name in pipeline_stages:
            if classify_stage(name) in (
                ScanClassification.FULL_SCAN,
                ScanClassification.INDEX_SCAN,
            ):
                scan = classify_stage(name)
                break
    if pipeline_stages:
        out.info(f"Pipeline stages: {' -> '.join(pipeline_stages)}")

    if stage is not None:
        out.info(f"Winning plan stage: {stage}", extra={"winning_stage": stage})
    if scan is ScanClassification.FULL_SCAN:
        warnings.append("Collection scan detected: every document is examined, an index is needed")
    elif scan is ScanClassification.INDEX_SCAN:
        out.info(f"Index scan in use (index={index_name or '?'})", extra={"index": index_name})
    elif scan is ScanClassification.INDEX_FETCH:
        out.info(
            f"Index in use, documents fetched (index={index_name or '?'})",
            extra={"index": index_name},
        )

    for warning in warnings:
        out.warning(warning, extra={"label": label})

    if out.isEnabledFor(logging.DEBUG):
        out.debug(f"Explain output:\n{json.dumps(plan, indent=2, default=str)}")

    return PlanReport(
        label=label,
        scan=scan,
        winning_stage=stage,
        index_name=index_name,
        pipeline_stages=pipeline_stages,
        execution_stats=stats,
        warnings=tuple(warnings),
    )


def assess_efficiency(
    stats: Optional[ExecutionStats],
    logger: Optional[logging.Logger] = None,
    low_efficiency_pct: float = DEFAULT_LOW_EFFICIENCY_PCT,
) -> EfficiencyReport:
    """
    Returned/examined ratio as a percentage.

    Only computed when ``total_docs_examined > 0``; an unknown ``n_returned``
    leaves the ratio unknown as well.
    """
    out = logger or log
    if stats is None:
        return EfficiencyReport()
    examined, returned = stats.total_docs_examined, stats.n_returned
    if examined is None or examined <= 0 or returned is None:
        return EfficiencyReport()

    efficiency = returned / examined * 100
    out.info("Efficiency ratio: %.2f%%", efficiency)
    warnings: Tuple[str, ...] = ()
    if efficiency < low_efficiency_pct:
        warnings = ("Low efficiency: index optimization may help",)
        out.warning(warnings[0])
    return EfficiencyReport(efficiency_pct=efficiency, warnings=warnings)


__all__ = [
    "DEFAULT_LOW_EFFICIENCY_PCT",
    "DEFAULT_SLOW_QUERY_MS",
    "analyze_plan",
    "assess_efficiency",
    "classify_stage",
    "latency_warnings",
    "parse_execution_stats",
    "pipeline_stage_names",
    "winning_plan",
]
