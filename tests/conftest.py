"""
Pytest configuration for the Mongo Perf Lab.

Provides fixtures for:
- In-memory store doubles implementing ``StoreAccess`` (unit tests)
- Settings overrides with small, fast thresholds
- MongoDB connection and seeded collection for integration tests
"""

from __future__ import annotations

import itertools
import os
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import pytest

from perflab.config import Settings

STATUSES = ["PAID", "CANCELLED", "PENDING"]
SMALL_ORDER_COUNT = 30
INTEGRATION_ORDER_COUNT = 3_000

ExplainResponse = Union[Dict[str, Any], Callable[[Mapping[str, Any]], Dict[str, Any]]]


class FakeCursor:
    """
    Lazy, single-pass cursor with an explicit close().

    ``fail_after`` makes iteration raise ``error`` once that many documents have
    been yielded, simulating a cursor dying mid-stream.
    """

    def __init__(
        self,
        documents: Iterable[Dict[str, Any]],
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self._documents = iter(documents)
        self._fail_after = fail_after
        self._error = error
        self.yielded = 0
        self.closed = False

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return self

    def __next__(self) -> Dict[str, Any]:
        if self.closed:
            raise StopIteration
        if self._fail_after is not None and self.yielded >= self._fail_after:
            raise self._error or RuntimeError("cursor failed")
        document = next(self._documents)
        self.yielded += 1
        return document

    def close(self) -> None:
        self.closed = True


def _matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in filter.items())


def _project(document: Mapping[str, Any], projection: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not projection:
        return dict(document)
    included = [key for key, value in projection.items() if value and key != "_id"]
    if included:
        projected = {key: document[key] for key in included if key in document}
        if projection.get("_id", 1) and "_id" in document:
            projected["_id"] = document["_id"]
        return projected
    return {key: value for key, value in document.items() if key not in projection}


def _filtered(
    documents: Iterable[Dict[str, Any]], filter: Mapping[str, Any]
) -> Iterator[Dict[str, Any]]:
    return (document for document in documents if _matches(document, filter))


def _projected(
    documents: Iterable[Dict[str, Any]], projection: Mapping[str, Any]
) -> Iterator[Dict[str, Any]]:
    return (_project(document, projection) for document in documents)


def _match_filter(command: Mapping[str, Any]) -> Mapping[str, Any]:
    if "filter" in command:
        return command["filter"]
    for stage in command.get("pipeline", []):
        if "$match" in stage:
            return stage["$match"]
    return {}


class FakeStore:
    """
    In-memory ``StoreAccess`` over a list of documents.

    Supports equality filters, inclusion/exclusion projections and the
    ``$match``/``$skip``/``$limit``/``$project`` pipeline stages. Every call is
    recorded so tests can compare what was explained against what was read.
    """

    def __init__(
        self,
        documents: List[Dict[str, Any]],
        collection_name: str = "orders",
        explain_response: Optional[ExplainResponse] = None,
        explain_error: Optional[Exception] = None,
        cursor_fail_after: Optional[int] = None,
        cursor_error: Optional[Exception] = None,
    ) -> None:
        self.documents = documents
        self._collection_name = collection_name
        self.explain_response = explain_response
        self.explain_error = explain_error
        self.cursor_fail_after = cursor_fail_after
        self.cursor_error = cursor_error
        self.find_calls: List[Dict[str, Any]] = []
        self.aggregate_calls: List[Dict[str, Any]] = []
        self.explain_calls: List[Dict[str, Any]] = []
        self.count_calls: List[Dict[str, Any]] = []
        self.created_indexes: List[Any] = []
        self.cursors: List[FakeCursor] = []

    @property
    def collection_name(self) -> str:
        return self._collection_name

    def _cursor(self, documents: Iterable[Dict[str, Any]]) -> FakeCursor:
        cursor = FakeCursor(documents, self.cursor_fail_after, self.cursor_error)
        self.cursors.append(cursor)
        return cursor

    def find(self, filter, projection=None, batch_size=None) -> FakeCursor:
        self.find_calls.append(
            {"filter": dict(filter), "projection": projection, "batch_size": batch_size}
        )
        return self._cursor(
            _project(document, projection)
            for document in self.documents
            if _matches(document, filter)
        )

    def aggregate(self, pipeline, batch_size=None) -> FakeCursor:
        self.aggregate_calls.append({"pipeline": list(pipeline), "batch_size": batch_size})
        documents: Iterable[Dict[str, Any]] = iter(self.documents)
        for stage in pipeline:
            if "$match" in stage:
                documents = _filtered(documents, stage["$match"])
            elif "$skip" in stage:
                documents = itertools.islice(documents, stage["$skip"], None)
            elif "$limit" in stage:
                documents = itertools.islice(documents, stage["$limit"])
            elif "$project" in stage:
                documents = _projected(documents, stage["$project"])
        return self._cursor(documents)

    def count(self, filter) -> int:
        self.count_calls.append(dict(filter))
        return sum(1 for document in self.documents if _matches(document, filter))

    def explain(self, command, verbosity="executionStats") -> Dict[str, Any]:
        self.explain_calls.append({"command": command, "verbosity": verbosity})
        if self.explain_error is not None:
            raise self.explain_error
        if callable(self.explain_response):
            return self.explain_response(command)
        if self.explain_response is not None:
            return self.explain_response
        returned = self.count(_match_filter(command))
        self.count_calls.pop()
        return {
            "queryPlanner": {"winningPlan": {"stage": "COLLSCAN"}},
            "executionStats": {
                "executionTimeMillis": 5,
                "totalDocsExamined": len(self.documents),
                "totalKeysExamined": 0,
                "nReturned": returned,
            },
        }

    def create_index(self, keys, **options) -> str:
        self.created_indexes.append((keys, options))
        return options.get("name") or "_".join(f"{field}_{order}" for field, order in keys)


class SyntheticStore:
    """
    Store double for large parallel scenarios: every document matches and is
    produced lazily, so hundreds of thousands of records need no storage.

    ``fail_at_skip`` maps a chunk's ``$skip`` to the number of documents that
    chunk yields before its cursor raises ``error``.
    """

    def __init__(
        self,
        total: int,
        fail_at_skip: Optional[Dict[int, int]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.total = total
        self.fail_at_skip = fail_at_skip or {}
        self.error = error
        self.aggregate_calls: List[Dict[str, Any]] = []
        self.cursors: List[FakeCursor] = []
        self._lock = threading.Lock()

    @property
    def collection_name(self) -> str:
        return "orders"

    def count(self, filter) -> int:
        del filter
        return self.total

    def find(self, filter, projection=None, batch_size=None) -> FakeCursor:
        del filter, projection, batch_size
        return FakeCursor(({"n": i} for i in range(self.total)))

    def aggregate(self, pipeline, batch_size=None) -> FakeCursor:
        skip, limit = 0, None
        for stage in pipeline:
            skip = stage.get("$skip", skip)
            limit = stage.get("$limit", limit)
        stop = self.total if limit is None else min(skip + limit, self.total)
        cursor = FakeCursor(
            ({"n": i, "status": "PAID"} for i in range(skip, stop)),
            fail_after=self.fail_at_skip.get(skip),
            error=self.error,
        )
        with self._lock:
            self.aggregate_calls.append({"pipeline": list(pipeline), "batch_size": batch_size})
            self.cursors.append(cursor)
        return cursor

    def explain(self, command, verbosity="executionStats") -> Dict[str, Any]:
        del command, verbosity
        return {"queryPlanner": {"winningPlan": {"stage": "COLLSCAN"}}}

    def create_index(self, keys, **options) -> str:
        del keys
        return options.get("name", "index")


def make_orders(count: int = SMALL_ORDER_COUNT) -> List[Dict[str, Any]]:
    return [
        {
            "_id": i,
            "userId": f"user-{i % 7}",
            "status": STATUSES[i % len(STATUSES)],
            "total": (i * 37) % 5000,
            "items": [{"productId": f"p-{i}", "price": i % 1000, "qty": i % 5 + 1}],
        }
        for i in range(count)
    ]


@pytest.fixture
def orders() -> List[Dict[str, Any]]:
    """Thirty deterministic orders; statuses cycle so ten of them are PAID."""
    return make_orders()


@pytest.fixture
def fake_store(orders: List[Dict[str, Any]]) -> FakeStore:
    return FakeStore(orders)


@pytest.fixture
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Small progress interval and worker counts keep the unit tests fast while
    still crossing every threshold at least once.
    """
    return Settings(
        mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        mongo_db=os.getenv("MONGO_DB", "perfdb_test"),
        mongo_collection=os.getenv("MONGO_COLLECTION", "orders"),
        log_level="DEBUG",
        benchmark_batch_size=5,
        benchmark_filter_status="PAID",
        benchmark_progress_interval=4,
        parallel_workers=3,
        parallel_chunk_size=4,
        parallel_chunk_policy="fixed",
    )


@pytest.fixture(scope="session")
def integration_enabled() -> bool:
    return os.getenv("RUN_INTEGRATION_TESTS") == "1"


@pytest.fixture(scope="session")
def mongo_client(integration_enabled: bool):
    """
    Provide a session-scoped MongoClient for integration tests.

    Skips tests unless RUN_INTEGRATION_TESTS=1 and the server answers a ping.
    """
    if not integration_enabled:
        pytest.skip("Integration tests disabled; set RUN_INTEGRATION_TESTS=1")

    from pymongo import MongoClient
    from pymongo.errors import PyMongoError

    client = MongoClient(
        os.getenv("MONGO_URI", "mongodb://localhost:27017"), serverSelectionTimeoutMS=5000
    )
    try:
        client.admin.command("ping")
    except PyMongoError:
        client.close()
        pytest.skip("MongoDB not available for integration tests")
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def seeded_collection(mongo_client, test_settings: Settings):
    """
    Seed a small orders collection with the data generator and drop it afterwards.
    """
    from scripts.generate_data import _load_orders

    collection = mongo_client[test_settings.mongo_db][test_settings.mongo_collection]
    collection.drop()
    _load_orders(collection, rows=INTEGRATION_ORDER_COUNT, batch_size=500, seed=42)
    try:
        yield collection
    finally:
        collection.drop()


@pytest.fixture
def make_store() -> Callable[..., FakeStore]:
    """Factory for FakeStore instances with custom documents or failure modes."""
    return FakeStore


@pytest.fixture
def make_synthetic_store() -> Callable[..., SyntheticStore]:
    """Factory for lazily generated large stores (parallel partition scenarios)."""
    return SyntheticStore
