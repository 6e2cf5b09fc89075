"""Search executor: runs a ``QueryPlan`` and yields matching documents.

Ranked strategies produce lazy sequences backed by a heap, so taking the
first ``n`` results costs ``O(k + n log k)`` after scoring ``k`` candidates.

Ordering:
- no ranking clause: insertion order (``seq``)
- text: TF-IDF score descending, then ``seq``
- geo: distance ascending, then ``seq``
- text and geo together: the text clause selects candidates, the geo
  clause discards those outside its radius, and the survivors are ordered
  by score descending, then distance ascending, then ``seq``
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
import heapq
import logging

from docindex_server.domain.filters import Equals, In
from docindex_server.domain.model import Document
from docindex_server.engine.planner import Deadline, QueryPlan, Strategy
from docindex_server.indexes.geo import GeoIndex
from docindex_server.indexes.text import TextIndex
from docindex_server.search.stats import calculate_idf, tf_idf


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchHit:
    """One matching document with the signals it was ranked by."""

    document: Document
    score: float | None = None
    distance: float | None = None


def score_documents(
    text_index: TextIndex, query: str, *, deadline: Deadline | None = None
) -> dict[str, float]:
    """Return ``{doc_id: tf-idf score}`` for every document sharing a token with ``query``."""

    terms = text_index.query_terms(query)
    total = text_index.document_count
    scores: dict[str, float] = {}
    for term in terms:
        postings = text_index.postings(term)
        if not postings:
            continue
        idf = calculate_idf(len(postings), total)
        for doc_id, frequency in postings.items():
            if deadline is not None:
                deadline.tick()
            scores[doc_id] = scores.get(doc_id, 0.0) + tf_idf(frequency, idf)
    return scores


def _residual_ok(doc: Document, residual: list[Equals | In]) -> bool:
    return all(clause.matches(doc) for clause in residual)


def _drain(heap: list[tuple], hits: Mapping[str, SearchHit]) -> Iterator[SearchHit]:
    heapq.heapify(heap)
    while heap:
        entry = heapq.heappop(heap)
        yield hits[entry[-1]]


class SearchExecutor:
    """Executes plans against a snapshot of the document map."""

    def execute(
        self,
        plan: QueryPlan,
        documents: Mapping[str, Document],
        *,
        deadline: Deadline | None = None,
    ) -> Iterator[SearchHit]:
        if plan.strategy is Strategy.TEXT:
            return self._text(plan, documents, deadline)
        if plan.strategy is Strategy.GEO:
            return self._geo_indexed(plan, documents, deadline)
        if plan.strategy is Strategy.INDEX:
            return self._unranked(plan, self._by_seq(plan.candidate_ids(), documents), deadline)
        if plan.geo is not None:
            return self._geo_scan(plan, documents.values(), deadline)
        return self._unranked(plan, documents.values(), deadline)

    @staticmethod
    def _by_seq(doc_ids: Iterable[str], documents: Mapping[str, Document]) -> list[Document]:
        docs = [documents[doc_id] for doc_id in doc_ids if doc_id in documents]
        docs.sort(key=lambda doc: doc.seq)
        return docs

    def _unranked(
        self, plan: QueryPlan, docs: Iterable[Document], deadline: Deadline | None
    ) -> Iterator[SearchHit]:
        for doc in docs:
            if deadline is not None:
                deadline.tick()
            if _residual_ok(doc, plan.residual):
                yield SearchHit(doc)

    def _text(
        self, plan: QueryPlan, documents: Mapping[str, Document], deadline: Deadline | None
    ) -> Iterator[SearchHit]:
        text_index = plan.index
        if not isinstance(text_index, TextIndex) or plan.text is None:
            raise ValueError("text plan without a text index")
        geo = plan.geo
        scores = score_documents(text_index, plan.text.query, deadline=deadline)

        heap: list[tuple] = []
        hits: dict[str, SearchHit] = {}
        for doc_id, score in scores.items():
            doc = documents.get(doc_id)
            if doc is None:
                continue
            if deadline is not None:
                deadline.tick()
            if not _residual_ok(doc, plan.residual):
                continue
            distance = None
            if geo is not None:
                distance = geo.distance_to(doc)
                if distance is None or distance > geo.max_distance:
                    continue
            hits[doc_id] = SearchHit(doc, score=score, distance=distance)
            heap.append((-score, distance if distance is not None else 0.0, doc.seq, doc_id))
        logger.debug("Text query %r matched %d of %d scored documents", plan.text.query, len(hits), len(scores))
        return _drain(heap, hits)

    def _geo_indexed(
        self, plan: QueryPlan, documents: Mapping[str, Document], deadline: Deadline | None
    ) -> Iterator[SearchHit]:
        geo = plan.geo
        geo_index = plan.index
        if not isinstance(geo_index, GeoIndex) or geo is None:
            raise ValueError("geo plan without a 2dsphere index")
        heap: list[tuple] = []
        hits: dict[str, SearchHit] = {}
        for doc_id, distance in geo_index.near(geo.lng, geo.lat, geo.max_distance):
            if deadline is not None:
                deadline.tick()
            doc = documents.get(doc_id)
            if doc is None or not _residual_ok(doc, plan.residual):
                continue
            hits[doc_id] = SearchHit(doc, distance=distance)
            heap.append((distance, doc.seq, doc_id))
        return _drain(heap, hits)

    def _geo_scan(
        self, plan: QueryPlan, docs: Iterable[Document], deadline: Deadline | None
    ) -> Iterator[SearchHit]:
        geo = plan.geo
        if geo is None:
            raise ValueError("geo scan without a geo clause")
        heap: list[tuple] = []
        hits: dict[str, SearchHit] = {}
        for doc in docs:
            if deadline is not None:
                deadline.tick()
            if not _residual_ok(doc, plan.residual):
                continue
            distance = geo.distance_to(doc)
            if distance is None or distance > geo.max_distance:
                continue
            hits[doc.doc_id] = SearchHit(doc, distance=distance)
            heap.append((distance, doc.seq, doc.doc_id))
        return _drain(heap, hits)
