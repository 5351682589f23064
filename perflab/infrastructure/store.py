"""
Document-store access for the Mongo performance lab.

``StoreAccess`` is the narrow capability the strategies depend on (find,
aggregate, count, explain, create_index). ``MongoStore`` binds it to a pymongo
collection, and ``StoreContext`` owns the ``MongoClient`` lifecycle: created
once at process start, passed explicitly into every strategy run, closed on
exit.

Only the initial connectivity check is retried (tenacity); reads and explain
calls are never retried here.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, runtime_checkable

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from perflab.config import Settings, get_settings
from perflab.utils.logging import get_logger

log = get_logger(__name__)

Document = Dict[str, Any]


class StoreConnectionError(RuntimeError):
    """Raised when no usable store handle can be obtained."""


@runtime_checkable
class StoreAccess(Protocol):
    """
    Read/aggregate/explain operations required from the document store.

    Cursors are lazy, forward-only and single pass; callers close them.
    """

    @property
    def collection_name(self) -> str: ...

    def find(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
        batch_size: Optional[int] = None,
    ) -> Iterator[Document]: ...

    def aggregate(
        self, pipeline: List[Mapping[str, Any]], batch_size: Optional[int] = None
    ) -> Iterator[Document]: ...

    def count(self, filter: Mapping[str, Any]) -> int: ...

    def explain(
        self, command: Mapping[str, Any], verbosity: str = "executionStats"
    ) -> Document: ...

    def create_index(self, keys: List[tuple[str, int]], **options: Any) -> str: ...


class MongoStore:
    """``StoreAccess`` implementation over a pymongo ``Collection``."""

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    @property
    def collection_name(self) -> str:
        return self._collection.name

    def find(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
        batch_size: Optional[int] = None,
    ):
        kwargs: Dict[str, Any] = {}
        if projection is not None:
            kwargs["projection"] = dict(projection)
        if batch_size:
            kwargs["batch_size"] = batch_size
        return self._collection.find(dict(filter), **kwargs)

    def aggregate(self, pipeline: List[Mapping[str, Any]], batch_size: Optional[int] = None):
        kwargs: Dict[str, Any] = {}
        if batch_size:
            kwargs["batchSize"] = batch_size
        return self._collection.aggregate([dict(stage) for stage in pipeline], **kwargs)

    def count(self, filter: Mapping[str, Any]) -> int:
        return self._collection.count_documents(dict(filter))

    def explain(self, command: Mapping[str, Any], verbosity: str = "executionStats") -> Document:
        return self._collection.database.command(
            "explain", dict(command), verbosity=verbosity
        )

    def create_index(self, keys: List[tuple[str, int]], **options: Any) -> str:
        return self._collection.create_index(keys, **options)

    def index_names(self) -> List[str]:
        return [index["name"] for index in self._collection.list_indexes()]


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(ConnectionFailure),
    reraise=True,
)
def _ping(client: MongoClient) -> None:
    client.admin.command("ping")


class StoreContext:
    """
    Owns the MongoClient for the lifetime of a CLI invocation.

    Example
    -------
        with StoreContext(settings) as store:
            metrics = run_strategy(store, StrategyKind.CURSOR_STREAM)
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[MongoClient] = None):
        self._settings = settings or get_settings()
        self._client = client
        self._store: Optional[MongoStore] = None

    def open(self) -> MongoStore:
        if self._store is not None:
            return self._store
        settings = self._settings
        if self._client is None:
            self._client = MongoClient(
                settings.mongo_uri,
                maxPoolSize=settings.mongo_max_pool_size,
                serverSelectionTimeoutMS=settings.mongo_connect_timeout_ms,
                connectTimeoutMS=settings.mongo_connect_timeout_ms,
            )
        try:
            _ping(self._client)
        except ConnectionFailure as exc:
            self.close()
            raise StoreConnectionError(
                f"Cannot reach MongoDB at {settings.mongo_uri}: {exc}"
            ) from exc

        collection = self._client[settings.mongo_db][settings.mongo_collection]
        self._store = MongoStore(collection)
        log.info(
            "Store handle acquired",
            extra={"db": settings.mongo_db, "collection": settings.mongo_collection},
        )
        return self._store

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        self._store = None

    def __enter__(self) -> MongoStore:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        self.close()


__all__ = [
    "Document",
    "MongoStore",
    "StoreAccess",
    "StoreConnectionError",
    "StoreContext",
]
