"""
Builders for read pipelines and the explain commands that mirror them.

Keeping both in one place guarantees the explained command carries the same
filter, projection, skip/limit and batch size as the read that follows it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from perflab.domain.models import Chunk

Stage = Dict[str, Any]


def find_command(
    collection: str,
    filter: Mapping[str, Any],
    projection: Optional[Mapping[str, Any]] = None,
    batch_size: Optional[int] = None,
) -> Dict[str, Any]:
    command: Dict[str, Any] = {"find": collection, "filter": dict(filter)}
    if projection is not None:
        command["projection"] = dict(projection)
    if batch_size:
        command["batchSize"] = batch_size
    return command


def aggregate_command(
    collection: str, pipeline: List[Stage], batch_size: Optional[int] = None
) -> Dict[str, Any]:
    cursor: Dict[str, Any] = {"batchSize": batch_size} if batch_size else {}
    return {"aggregate": collection, "pipeline": pipeline, "cursor": cursor}


def match_project_pipeline(
    filter: Mapping[str, Any], projection: Optional[Mapping[str, Any]]
) -> List[Stage]:
    pipeline: List[Stage] = [{"$match": dict(filter)}]
    if projection:
        pipeline.append({"$project": dict(projection)})
    return pipeline


def chunk_pipeline(
    filter: Mapping[str, Any], chunk: Chunk, projection: Optional[Mapping[str, Any]]
) -> List[Stage]:
    """$match -> $skip -> $limit -> $project for one worker's window."""
    pipeline: List[Stage] = [
        {"$match": dict(filter)},
        {"$skip": chunk.skip},
        {"$limit": chunk.limit},
    ]
    if projection:
        pipeline.append({"$project": dict(projection)})
    return pipeline


__all__ = [
    "Stage",
    "aggregate_command",
    "chunk_pipeline",
    "find_command",
    "match_project_pipeline",
]
