"""
Chunk coordination for the parallel aggregation strategy.

The matching result set is split into fixed ``skip``/``limit`` windows, one per
worker. Workers run on a thread pool (pymongo's client is thread-safe), each
iterating its own cursor and counting locally, then add that count to a single
lock-guarded total. The coordinator waits on all futures before returning.

Partitioning policies
---------------------
``fixed``  (default) ``skip = worker_id * chunk_size``; if
           ``num_workers * chunk_size < total`` the trailing records are never
           read. The shortfall is computed and reported, not hidden.
``cover``  ``chunk_size`` is recomputed as ``ceil(total / num_workers)`` so the
           windows span every matching record.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from contextlib import closing
from dataclasses import dataclass
from typing import Any, List, Literal, Mapping, Optional, Tuple

from perflab.domain.models import Chunk
from perflab.infrastructure.store import StoreAccess
from perflab.strategies.commands import chunk_pipeline
from perflab.utils.logging import get_logger

log = get_logger(__name__)

ChunkPolicy = Literal["fixed", "cover"]


def plan_chunks(num_workers: int, chunk_size: int) -> List[Chunk]:
    """One window per worker; skips strictly increase and never overlap."""
    if num_workers <= 0:
        raise ValueError(f"num_workers must be > 0, got {num_workers}")
    return [
        Chunk(worker_id=worker_id, skip=worker_id * chunk_size, limit=chunk_size)
        for worker_id in range(num_workers)
    ]


def covering_chunk_size(total: int, num_workers: int) -> int:
    if num_workers <= 0:
        raise ValueError(f"num_workers must be > 0, got {num_workers}")
    return max(math.ceil(total / num_workers), 1)


def uncovered_records(total: int, num_workers: int, chunk_size: int) -> int:
    """Records past the last window under fixed partitioning."""
    return max(total - num_workers * chunk_size, 0)


class SharedCounter:
    """The single piece of state shared between workers."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def add(self, amount: int) -> int:
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass(frozen=True)
class WorkerResult:
    worker_id: int
    records_read: int
    idle: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class ParallelReadReport:
    total_matching: int
    records_read: int
    chunk_size: int
    policy: str
    chunks: Tuple[Chunk, ...]
    workers: Tuple[WorkerResult, ...]

    @property
    def num_workers(self) -> int:
        return len(self.chunks)

    @property
    def uncovered_records(self) -> int:
        return uncovered_records(self.total_matching, self.num_workers, self.chunk_size)

    @property
    def idle_workers(self) -> List[int]:
        return [worker.worker_id for worker in self.workers if worker.idle]

    @property
    def failed_workers(self) -> List[int]:
        return [worker.worker_id for worker in self.workers if worker.error is not None]

    @property
    def complete(self) -> bool:
        return self.records_read == self.total_matching


class ChunkCoordinator:
    """
    Fan a filtered aggregation out over ``num_workers`` skip/limit windows.

    Parameters
    ----------
    store : StoreAccess
        Shared store handle; each worker opens its own cursor on it.
    projection : mapping | None
        ``$project`` stage appended to every worker pipeline.
    batch_size : int | None
        Cursor batch size for every worker.
    """

    def __init__(
        self,
        store: StoreAccess,
        projection: Optional[Mapping[str, Any]] = None,
        batch_size: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.projection = projection
        self.batch_size = batch_size
        self.log = logger or log

    def _run_worker(
        self, chunk: Chunk, filter: Mapping[str, Any], total: int, counter: SharedCounter
    ) -> WorkerResult:
        if chunk.skip >= total:
            return WorkerResult(worker_id=chunk.worker_id, records_read=0, idle=True)

        local_count = 0
        error: Optional[str] = None
        try:
            cursor = self.store.aggregate(
                chunk_pipeline(filter, chunk, self.projection), batch_size=self.batch_size
            )
            with closing(cursor):
                for _document in cursor:
                    local_count += 1
        except Exception as exc:  # noqa: BLE001 - a failed window is recorded, siblings continue
            error = f"{type(exc).__name__}: {exc}"
            self.log.warning(
                f"  worker {chunk.worker_id} failed after {local_count:,} records: {error}",
                extra={"worker_id": chunk.worker_id, "records": local_count, "error": error},
            )
        finally:
            counter.add(local_count)

        if error is None:
            self.log.info(
                f"  worker {chunk.worker_id} finished: {local_count:,} records",
                extra={"worker_id": chunk.worker_id, "records": local_count},
            )
        return WorkerResult(worker_id=chunk.worker_id, records_read=local_count, error=error)

    def execute(
        self,
        filter: Mapping[str, Any],
        num_workers: int,
        chunk_size: int,
        policy: ChunkPolicy = "fixed",
    ) -> ParallelReadReport:
        total = self.store.count(filter)
        self.log.info(f"Matching documents: {total:,}", extra={"total_matching": total})

        if policy == "cover":
            chunk_size = covering_chunk_size(total, num_workers)
        chunks = plan_chunks(num_workers, chunk_size)

        gap = uncovered_records(total, num_workers, chunk_size)
        if gap:
            self.log.warning(
                f"Partition covers {num_workers * chunk_size:,} of {total:,} matching records; "
                f"{gap:,} trailing records will not be read",
                extra={"uncovered_records": gap, "policy": policy},
            )

        counter = SharedCounter()
        with ThreadPoolExecutor(
            max_workers=num_workers, thread_name_prefix="chunk-worker"
        ) as executor:
            futures = [
                executor.submit(self._run_worker, chunk, filter, total, counter)
                for chunk in chunks
            ]
            wait(futures, return_when=ALL_COMPLETED)
        workers = tuple(future.result() for future in futures)

        return ParallelReadReport(
            total_matching=total,
            records_read=counter.value,
            chunk_size=chunk_size,
            policy=policy,
            chunks=tuple(chunks),
            workers=workers,
        )

    def run_parallel(self, filter: Mapping[str, Any], num_workers: int, chunk_size: int) -> int:
        """Total records read across all workers under fixed partitioning."""
        return self.execute(filter, num_workers, chunk_size).records_read


__all__ = [
    "ChunkCoordinator",
    "ChunkPolicy",
    "ParallelReadReport",
    "SharedCounter",
    "WorkerResult",
    "covering_chunk_size",
    "plan_chunks",
    "uncovered_records",
]
