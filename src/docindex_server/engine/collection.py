"""Collection facade: the operations external callers use."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from itertools import islice
import logging
from typing import Any

from docindex_server.config import EngineSettings
from docindex_server.domain.filters import Filter
from docindex_server.domain.model import Document
from docindex_server.domain.schema import CollectionSchema
from docindex_server.engine.errors import EngineError
from docindex_server.engine.planner import Deadline, QueryPlan, QueryPlanner
from docindex_server.engine.store import DocumentStore
from docindex_server.indexes.manager import IndexManager
from docindex_server.observability.metrics import DOCUMENT_COUNT, QUERY_LATENCY, WRITE_OUTCOMES, track_latency
from docindex_server.observability.tracing import create_span
from docindex_server.search.executor import SearchExecutor, SearchHit


logger = logging.getLogger(__name__)


class Collection:
    """Documents of one schema plus their indexes, planner and executor.

    Reads share the store's lock and writes hold it exclusively, so a query
    never sees the document map and the indexes disagree. Every document
    handed to a caller is a detached copy; changing it never touches the
    stored document or its index entries.
    """

    def __init__(
        self,
        schema: CollectionSchema,
        settings: EngineSettings | None = None,
        *,
        id_factory: Callable[[], str] | None = None,
        guard: Callable[[], None] | None = None,
    ) -> None:
        self.schema = schema
        self._guard = guard or (lambda: None)
        self.settings = settings or EngineSettings()
        self.indexes = IndexManager(schema.indexes, geo_cell_degrees=self.settings.geo_cell_degrees)
        self.store = DocumentStore(schema, self.indexes, id_factory=id_factory)
        self.planner = QueryPlanner(schema, self.indexes, allow_full_scan=self.settings.allow_full_scan)
        self.executor = SearchExecutor()

    @property
    def name(self) -> str:
        return self.schema.name

    # -- writes ---------------------------------------------------------

    def insert(self, fields: Mapping[str, Any]) -> Document:
        return self._write("insert", lambda: self.store.insert(fields))

    def update(self, doc_id: str, changes: Mapping[str, Any]) -> Document:
        return self._write("update", lambda: self.store.update(doc_id, changes))

    def delete(self, doc_id: str) -> Document:
        return self._write("delete", lambda: self.store.delete(doc_id))

    def _write(self, operation: str, action: Callable[[], Document]) -> Document:
        self._guard()
        with create_span(f"collection.{operation}", attributes={"db.collection": self.name}):
            try:
                doc = action()
            except EngineError as exc:
                WRITE_OUTCOMES.labels(collection=self.name, operation=operation, outcome=exc.code).inc()
                if exc.status_code >= 500:
                    logger.error("%s on %s failed: %s", operation, self.name, exc.message)
                raise
        WRITE_OUTCOMES.labels(collection=self.name, operation=operation, outcome="ok").inc()
        DOCUMENT_COUNT.labels(collection=self.name).set(self.store.count())
        return doc.detached()

    # -- reads ----------------------------------------------------------

    def get(self, doc_id: str) -> Document:
        self._guard()
        return self.store.get(doc_id).detached()

    def count(self) -> int:
        self._guard()
        return self.store.count()

    def query(
        self,
        query: Filter | None = None,
        *,
        limit: int | None = None,
        deadline: Deadline | None = None,
    ) -> list[SearchHit]:
        """Run ``query`` and return ranked hits.

        Without a ranking clause hits come back in insertion order. A
        ``deadline`` defaults to the collection's configured query timeout.
        """

        self._guard()
        query = query or Filter()
        if deadline is None:
            deadline = Deadline.from_millis(
                self.settings.query_timeout_ms, check_interval=self.settings.deadline_check_interval
            )
        with self.store.lock.read():
            plan = self.planner.plan(query)
            with create_span(
                "collection.query",
                attributes={"db.collection": self.name, "db.strategy": plan.strategy.value},
            ), track_latency(QUERY_LATENCY, collection=self.name, strategy=plan.strategy.value):
                hits = self.executor.execute(plan, self.store.view(), deadline=deadline)
                results = [
                    replace(hit, document=hit.document.detached())
                    for hit in (islice(hits, limit) if limit is not None else hits)
                ]
        logger.debug("Query on %s via %s returned %d hit(s)", self.name, plan.strategy.value, len(results))
        return results

    def find(
        self,
        query: Filter | None = None,
        *,
        limit: int | None = None,
        deadline: Deadline | None = None,
    ) -> list[Document]:
        return [hit.document for hit in self.query(query, limit=limit, deadline=deadline)]

    def plan(self, query: Filter | None = None) -> QueryPlan:
        self._guard()
        with self.store.lock.read():
            return self.planner.plan(query or Filter())

    def explain(self, query: Filter | None = None) -> dict[str, Any]:
        data = self.plan(query).to_dict()
        data["collection"] = self.name
        return data

    # -- introspection --------------------------------------------------

    def index_stats(self) -> list[dict[str, Any]]:
        self._guard()
        with self.store.lock.read():
            return self.indexes.stats()

    def verify(self) -> list[str]:
        """Audit every index against the stored documents; empty when consistent."""
        self._guard()
        return self.store.verify()
