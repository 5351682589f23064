"""
Orchestrator for running read strategies, profiling execution, and persisting results.

Usage (example from CLI):
    from perflab.infrastructure import StoreContext
    from perflab.orchestrator import RunConfig, run_strategies

    with StoreContext() as store:
        results = run_strategies(store, RunConfig(strategy_names=["cursor_stream"]))

Outputs are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence

from perflab.domain.models import Metrics, ReadQuery
from perflab.executor import available_strategies, create_strategy, resolve_kind
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.abstract import AbstractReadStrategy, StrategyKind
from perflab.utils.logging import get_logger
from perflab.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

FailurePolicy = Literal["tolerant", "strict"]


@dataclass
class RunConfig:
    """
    Parameters for one orchestrated benchmark session.

    ``filter``/``projection``/``batch_size`` left as None fall back to each
    strategy's defaults. ``failure_policy="strict"`` re-raises the first
    strategy error instead of recording it and moving on.
    """

    strategy_names: Sequence[str] = field(default_factory=lambda: ["all"])
    filter: Optional[Mapping[str, Any]] = None
    projection: Optional[Mapping[str, Any]] = None
    batch_size: Optional[int] = None
    num_workers: Optional[int] = None
    chunk_size: Optional[int] = None
    chunk_policy: Optional[Literal["fixed", "cover"]] = None
    results_dir: Path | str = "results"
    persist: bool = True
    warmup: bool = False
    runs: int = 1
    failure_policy: FailurePolicy = "tolerant"


def _round_float(value: float, decimals: int = 2) -> float:
    """Round a float to specified decimal places for human-readable output."""
    return round(value, decimals)


def _round_stats(stats: dict, decimals: int = 2) -> dict:
    """Round all float values in a stats dictionary."""
    return {k: _round_float(v, decimals) if isinstance(v, float) else v for k, v in stats.items()}


def _summary(values: List[float]) -> dict:
    return {
        "median": statistics.median(values),
        "mean": statistics.mean(values),
        "stddev": statistics.stdev(values) if len(values) > 1 else 0.0,
        "min": min(values),
        "max": max(values),
    }


def _aggregate_runs(run_results: List[dict]) -> dict:
    """
    Aggregate multiple runs into statistical summary.

    Failed runs are excluded from the statistics but still counted.
    """
    succeeded = [r for r in run_results if not r.get("error")]
    aggregated: Dict[str, Any] = {
        "failed_runs": len(run_results) - len(succeeded),
    }
    if not succeeded:
        aggregated["records_read"] = 0
        aggregated["notes"] = run_results[0].get("notes") if run_results else None
        return aggregated

    aggregated["duration_seconds"] = _round_stats(
        _summary([r["duration_seconds"] for r in succeeded]), decimals=3
    )
    aggregated["throughput_records_per_sec"] = _round_stats(
        _summary([r["throughput_records_per_sec"] for r in succeeded])
    )
    memory = _summary([float(r["memory_used_bytes"]) for r in succeeded])
    aggregated["memory_used_bytes"] = {k: int(v) for k, v in memory.items()}
    # Reads never mutate the store, so repeated runs should agree.
    aggregated["records_read"] = succeeded[0]["records_read"]
    aggregated["records_consistent"] = len({r["records_read"] for r in succeeded}) == 1
    aggregated["scan"] = succeeded[0].get("scan")
    aggregated["efficiency_pct"] = succeeded[0].get("efficiency_pct")
    # Partition gaps and failed workers surface through notes.
    notes = [r.get("notes") for r in succeeded]
    aggregated["notes"] = notes[0]
    if len(set(notes)) > 1:
        aggregated["notes"] = f"{notes[0]} (notes differ across runs)"

    peak_rss_values = [r["peak_rss_bytes"] for r in succeeded if r.get("peak_rss_bytes")]
    if peak_rss_values:
        aggregated["peak_rss_bytes"] = {
            k: int(v) for k, v in _summary([float(v) for v in peak_rss_values]).items()
        }
    return aggregated


def metrics_to_result(metrics: Metrics) -> dict:
    """Flatten Metrics into the JSON-friendly shape persisted and rendered."""
    plan = metrics.plan
    return {
        "strategy": metrics.strategy,
        "records_read": metrics.records_read,
        "duration_seconds": metrics.duration_seconds,
        "throughput_records_per_sec": metrics.throughput_records_per_sec,
        "memory_used_bytes": metrics.memory_used_bytes,
        "scan": plan.scan.value if plan is not None else None,
        "winning_stage": plan.winning_stage if plan is not None else None,
        "index_name": plan.index_name if plan is not None else None,
        "efficiency_pct": (
            metrics.efficiency.efficiency_pct if metrics.efficiency is not None else None
        ),
        "execution_stats": (
            metrics.execution_stats.model_dump() if metrics.execution_stats is not None else None
        ),
        "warnings": metrics.warnings,
        "notes": metrics.notes,
        "error": None,
    }


def _merge_result(result: dict, stats: ProfileStats) -> dict:
    """Merge a strategy result with profiler stats, rounding floats for readability."""
    merged = dict(result)
    merged.setdefault("records_read", 0)
    duration = merged.get("duration_seconds") or 0.0
    merged["throughput_records_per_sec"] = (
        _round_float(merged["records_read"] / duration) if duration > 0 else 0.0
    )
    merged["duration_seconds"] = _round_float(duration, 3)
    if merged.get("efficiency_pct") is not None:
        merged["efficiency_pct"] = _round_float(merged["efficiency_pct"])
    merged["peak_rss_bytes"] = stats.peak_rss_bytes
    merged["cpu_percent"] = _round_float(stats.cpu_percent, 1) if stats.cpu_percent else None
    merged["profile"] = {
        "label": stats.label,
        "start_ts": _round_float(stats.start_ts, 3),
        "end_ts": _round_float(stats.end_ts, 3),
        "duration_seconds": _round_float(stats.duration_seconds, 3),
        "rss_delta_bytes": stats.rss_delta_bytes,
        "peak_rss_bytes": stats.peak_rss_bytes,
        "peak_traced_bytes": stats.peak_traced_bytes,
        "cpu_percent": _round_float(stats.cpu_percent, 1) if stats.cpu_percent else None,
    }
    return merged


def _build_strategy(name: str, config: RunConfig) -> AbstractReadStrategy:
    kind = resolve_kind(name)
    if kind is StrategyKind.PARALLEL_AGGREGATION:
        return create_strategy(
            kind,
            num_workers=config.num_workers,
            chunk_size=config.chunk_size,
            policy=config.chunk_policy,
        )
    return create_strategy(kind)


def _build_query(strategy: AbstractReadStrategy, config: RunConfig) -> Optional[ReadQuery]:
    if config.filter is None and config.projection is None and config.batch_size is None:
        return None
    return ReadQuery(
        filter=dict(config.filter) if config.filter is not None else strategy.default_filter(),
        projection=dict(config.projection) if config.projection is not None else None,
        batch_size=config.batch_size,
    )


def _persist_results(payload: dict, results_dir: Path) -> Path:
    """Write ``latest.json`` plus a timestamped archive copy; returns the archive path."""
    results_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive = results_dir / f"run-{stamp}.json"
    body = json.dumps(payload, indent=2, sort_keys=True, default=str)
    for target in (results_dir / "latest.json", archive):
        target.write_text(body, encoding="utf-8")
    log.info(f"Results written to {results_dir}", extra={"archive": str(archive)})
    return archive


def _failure_result(name: str, exc: Exception, policy: FailurePolicy) -> dict:
    return {
        "strategy": name,
        "records_read": 0,
        "duration_seconds": 0.0,
        "memory_used_bytes": 0,
        "error": str(exc),
        "notes": "Execution failed in tolerant mode; run continued.",
        "extra": {"failed": True, "error_type": type(exc).__name__, "failure_policy": policy},
    }


def _profiled_execute(store: StoreAccess, name: str, config: RunConfig) -> dict:
    strategy = _build_strategy(name, config)
    query = _build_query(strategy, config)
    with profile_block(name) as stats:
        try:
            result = metrics_to_result(strategy.run(store, query))
        except Exception as exc:  # noqa: BLE001 - tolerant mode records failures
            if config.failure_policy == "strict":
                raise
            log.exception(f"[FAILED] {name}: {exc}", extra={"strategy": name})
            result = _failure_result(name, exc, config.failure_policy)
    return _merge_result(result, stats)


def _warmup(store: StoreAccess, name: str, config: RunConfig) -> None:
    strategy = _build_strategy(name, config)
    try:
        strategy.run(store, _build_query(strategy, config))
    except Exception as exc:  # noqa: BLE001 - warmup is best effort
        if config.failure_policy == "strict":
            raise
        log.warning(f"[WARMUP] {name} failed: {exc}", extra={"strategy": name})


def _measure_strategy(store: StoreAccess, name: str, config: RunConfig) -> dict:
    """All measured runs of one strategy, aggregated when there is more than one."""
    banner = "=" * 60
    log.info(banner)
    log.info(f"[STRATEGY] {name}", extra={"strategy": name})
    log.info(banner)

    if config.warmup:
        log.info(f"[WARMUP] {name}", extra={"strategy": name})
        _warmup(store, name, config)

    runs: List[dict] = []
    for run_num in range(1, config.runs + 1):
        result = _profiled_execute(store, name, config)
        result.update(strategy=name, run=run_num)
        runs.append(result)
        log.info(
            f"[RUN {run_num}/{config.runs}] {name}: {result['records_read']:,} records "
            f"in {result['duration_seconds']}s",
            extra={"strategy": name, "run": run_num, "failed": bool(result.get("error"))},
        )

    if config.runs == 1:
        return runs[0]

    aggregated = _aggregate_runs(runs)
    aggregated.update(strategy=name, runs=config.runs, individual_runs=runs)
    if not aggregated.get("records_consistent", True):
        log.warning(
            f"[AGGREGATION] {name} read different record counts across runs",
            extra={"strategy": name},
        )
    return aggregated


def run_strategies(store: StoreAccess, config: Optional[RunConfig] = None) -> List[dict]:
    """
    Run the selected strategies one after another against ``store``.

    Parameters
    ----------
    store : StoreAccess
        Open store handle, owned by the caller and shared by every run.
    config : RunConfig | None
        Strategy selection, query overrides, repetition and persistence options.

    Returns
    -------
    List[dict]
        One entry per strategy, in execution order. With ``runs > 1`` each
        entry holds summary statistics plus the ``individual_runs``.
    """
    config = config or RunConfig()
    names = list(config.strategy_names)
    if names == ["all"]:
        names = available_strategies()
    # Reject typos before anything touches the store.
    for name in names:
        resolve_kind(name)

    results = [_measure_strategy(store, name, config) for name in names]

    if config.persist:
        _persist_results(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "strategies": names,
                "filter": dict(config.filter) if config.filter is not None else None,
                "runs": config.runs,
                "results": results,
            },
            Path(config.results_dir),
        )
    log.info(f"[DONE] {len(names)} strategies measured", extra={"strategies": names})
    return results


__all__ = [
    "RunConfig",
    "metrics_to_result",
    "run_strategies",
]
