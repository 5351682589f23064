from __future__ import annotations

import threading

import pytest
from pymongo.errors import OperationFailure

from perflab.domain.models import Chunk
from perflab.strategies.chunking import (
    ChunkCoordinator,
    SharedCounter,
    covering_chunk_size,
    plan_chunks,
    uncovered_records,
)
from perflab.strategies.commands import chunk_pipeline

TOTAL_MATCHING = 250_000
DEFAULT_WORKERS = 10
DEFAULT_CHUNK_SIZE = 100_000
FEW_WORKERS = 2
PAID_FILTER = {"status": "PAID"}
PROJECTION = {"userId": 1, "status": 1, "_id": 0}
FAIL_AFTER = 30_000
COUNTER_THREADS = 8
COUNTER_INCREMENTS = 1_000


def test_plan_chunks_windows_never_overlap() -> None:
    chunks = plan_chunks(DEFAULT_WORKERS, DEFAULT_CHUNK_SIZE)

    assert [c.worker_id for c in chunks] == list(range(DEFAULT_WORKERS))
    assert [c.skip for c in chunks] == [i * DEFAULT_CHUNK_SIZE for i in range(DEFAULT_WORKERS)]
    assert all(c.limit == DEFAULT_CHUNK_SIZE for c in chunks)
    for earlier, later in zip(chunks, chunks[1:]):
        assert earlier.skip + earlier.limit <= later.skip


@pytest.mark.parametrize("workers", [0, -1])
def test_plan_chunks_rejects_non_positive_workers(workers) -> None:
    with pytest.raises(ValueError):
        plan_chunks(workers, DEFAULT_CHUNK_SIZE)


@pytest.mark.parametrize(("skip", "limit"), [(-1, 10), (0, 0)])
def test_chunk_rejects_invalid_window(skip, limit) -> None:
    with pytest.raises(ValueError):
        Chunk(worker_id=0, skip=skip, limit=limit)


def test_chunk_pipeline_orders_stages() -> None:
    pipeline = chunk_pipeline(PAID_FILTER, Chunk(worker_id=2, skip=200, limit=100), PROJECTION)

    assert pipeline == [
        {"$match": PAID_FILTER},
        {"$skip": 200},
        {"$limit": 100},
        {"$project": PROJECTION},
    ]


def test_partition_helpers() -> None:
    assert uncovered_records(TOTAL_MATCHING, DEFAULT_WORKERS, DEFAULT_CHUNK_SIZE) == 0
    assert uncovered_records(TOTAL_MATCHING, FEW_WORKERS, DEFAULT_CHUNK_SIZE) == 50_000
    assert covering_chunk_size(TOTAL_MATCHING, FEW_WORKERS) == 125_000
    assert covering_chunk_size(0, FEW_WORKERS) == 1


def test_ten_workers_cover_250k_with_trailing_idle_workers(make_synthetic_store) -> None:
    # 10 x 100,000 windows span 1,000,000 positions, so 250,000 matches are fully
    # covered: workers 0-1 read full chunks, worker 2 reads the last 50,000 and
    # workers 3-9 have nothing to read.
    store = make_synthetic_store(TOTAL_MATCHING)
    coordinator = ChunkCoordinator(store, projection=PROJECTION, batch_size=1000)

    report = coordinator.execute(PAID_FILTER, DEFAULT_WORKERS, DEFAULT_CHUNK_SIZE)

    assert report.records_read == TOTAL_MATCHING
    assert report.complete
    assert report.uncovered_records == 0
    per_worker = {w.worker_id: w.records_read for w in report.workers}
    assert per_worker[0] == DEFAULT_CHUNK_SIZE
    assert per_worker[1] == DEFAULT_CHUNK_SIZE
    assert per_worker[2] == 50_000
    assert report.idle_workers == list(range(3, DEFAULT_WORKERS))
    # Idle workers never open a cursor.
    assert len(store.aggregate_calls) == 3
    assert all(cursor.closed for cursor in store.cursors)


def test_run_parallel_returns_total(make_synthetic_store) -> None:
    coordinator = ChunkCoordinator(make_synthetic_store(TOTAL_MATCHING))

    assert coordinator.run_parallel(PAID_FILTER, DEFAULT_WORKERS, DEFAULT_CHUNK_SIZE) == TOTAL_MATCHING


def test_fixed_policy_reports_gap_when_windows_fall_short(make_synthetic_store, caplog) -> None:
    coordinator = ChunkCoordinator(make_synthetic_store(TOTAL_MATCHING))

    report = coordinator.execute(PAID_FILTER, FEW_WORKERS, DEFAULT_CHUNK_SIZE, policy="fixed")

    assert report.records_read == FEW_WORKERS * DEFAULT_CHUNK_SIZE
    assert report.uncovered_records == 50_000
    assert not report.complete
    assert "50,000 trailing records will not be read" in caplog.text


def test_cover_policy_reads_every_matching_record(make_synthetic_store) -> None:
    coordinator = ChunkCoordinator(make_synthetic_store(TOTAL_MATCHING))

    report = coordinator.execute(PAID_FILTER, FEW_WORKERS, DEFAULT_CHUNK_SIZE, policy="cover")

    assert report.chunk_size == 125_000
    assert report.records_read == TOTAL_MATCHING
    assert report.uncovered_records == 0


def test_failing_worker_keeps_partial_count_and_siblings_finish(make_synthetic_store) -> None:
    store = make_synthetic_store(
        TOTAL_MATCHING,
        fail_at_skip={DEFAULT_CHUNK_SIZE: FAIL_AFTER},
        error=OperationFailure("cursor killed"),
    )
    coordinator = ChunkCoordinator(store)

    report = coordinator.execute(PAID_FILTER, DEFAULT_WORKERS, DEFAULT_CHUNK_SIZE)

    assert report.failed_workers == [1]
    per_worker = {w.worker_id: w.records_read for w in report.workers}
    assert per_worker[1] == FAIL_AFTER
    assert per_worker[0] == DEFAULT_CHUNK_SIZE
    assert per_worker[2] == 50_000
    assert report.records_read == DEFAULT_CHUNK_SIZE + FAIL_AFTER + 50_000
    assert "OperationFailure" in report.workers[1].error


def test_empty_result_makes_every_worker_idle(make_synthetic_store) -> None:
    report = ChunkCoordinator(make_synthetic_store(0)).execute(PAID_FILTER, 4, 10)

    assert report.records_read == 0
    assert report.idle_workers == [0, 1, 2, 3]
    assert report.complete


def test_coordinator_on_real_documents(fake_store) -> None:
    coordinator = ChunkCoordinator(fake_store, projection=PROJECTION)

    report = coordinator.execute(PAID_FILTER, num_workers=3, chunk_size=4)

    # 10 PAID orders, windows [0,4) [4,8) [8,12)
    assert report.records_read == 10
    assert [w.records_read for w in report.workers] == [4, 4, 2]
    assert fake_store.count_calls == [PAID_FILTER]


def test_shared_counter_is_exact_under_contention() -> None:
    counter = SharedCounter()

    def _bump() -> None:
        for _ in range(COUNTER_INCREMENTS):
            counter.add(1)

    threads = [threading.Thread(target=_bump) for _ in range(COUNTER_THREADS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter.value == COUNTER_THREADS * COUNTER_INCREMENTS


def test_unexpected_worker_error_is_contained(make_synthetic_store) -> None:
    store = make_synthetic_store(
        TOTAL_MATCHING,
        fail_at_skip={DEFAULT_CHUNK_SIZE: FAIL_AFTER},
        error=ValueError("boom"),
    )

    report = ChunkCoordinator(store).execute(PAID_FILTER, DEFAULT_WORKERS, DEFAULT_CHUNK_SIZE)

    assert report.failed_workers == [1]
    assert report.workers[1].error == "ValueError: boom"
    assert report.records_read == DEFAULT_CHUNK_SIZE + FAIL_AFTER + 50_000
    assert all(cursor.closed for cursor in store.cursors)


def test_fake_store_pipeline_applies_every_stage(fake_store) -> None:
    pipeline = chunk_pipeline(PAID_FILTER, Chunk(worker_id=1, skip=4, limit=4), PROJECTION)

    documents = list(fake_store.aggregate(pipeline))

    assert len(documents) == 4
    assert all(set(document) == {"userId", "status"} for document in documents)
    assert all(document["status"] == "PAID" for document in documents)
