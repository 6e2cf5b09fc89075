"""Query planning.

The planner turns a validated ``Filter`` into a ``QueryPlan``:

1. A text clause is always primary and must be served by the text index.
2. Otherwise a geo-near clause is primary when its field has a 2dsphere
   index.
3. Otherwise every usable ordered index is costed by the number of ids its
   lookup would return, and the cheapest one wins. Compound indexes serve
   any leftmost prefix of equality clauses; a partial index is usable only
   when the filter itself contains the partial predicate.
4. With nothing indexable the plan is a full scan, or ``UnsupportedQuery``
   when scans are disabled.

Clauses not answered by the chosen index stay residual and are re-checked
against each candidate document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import time
from typing import Any

from docindex_server.domain.filters import Equals, Filter, GeoNear, In, Scalar, TextSearch
from docindex_server.domain.schema import CollectionSchema
from docindex_server.engine.errors import QueryTimeout, UnsupportedQuery
from docindex_server.indexes.base import SecondaryIndex
from docindex_server.indexes.manager import IndexManager
from docindex_server.indexes.ordered import OrderedIndex
from docindex_server.indexes.text import TextIndex


logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    TEXT = "text"
    GEO = "geo"
    INDEX = "index"
    SCAN = "scan"


_STAGES = {
    Strategy.TEXT: "TEXT",
    Strategy.GEO: "GEO_NEAR_2DSPHERE",
    Strategy.INDEX: "IXSCAN",
    Strategy.SCAN: "COLLSCAN",
}


class Deadline:
    """Cooperative query deadline.

    ``tick()`` is called once per examined document; the clock is read only
    every ``check_interval`` ticks.
    """

    def __init__(self, timeout_s: float, *, check_interval: int = 256, clock=time.monotonic) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self.timeout_s = timeout_s
        self.check_interval = max(1, check_interval)
        self._clock = clock
        self._expires_at = clock() + timeout_s
        self._ticks = 0

    @classmethod
    def from_millis(cls, timeout_ms: int | None, *, check_interval: int = 256) -> Deadline | None:
        if not timeout_ms or timeout_ms <= 0:
            return None
        return cls(timeout_ms / 1000.0, check_interval=check_interval)

    @property
    def examined(self) -> int:
        return self._ticks

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self) -> None:
        if self.expired():
            raise QueryTimeout(
                f"Query exceeded its deadline of {self.timeout_s * 1000:.0f} ms after examining {self._ticks} entries"
            )

    def tick(self) -> None:
        self._ticks += 1
        if self._ticks % self.check_interval == 0:
            self.check()


@dataclass
class QueryPlan:
    """Chosen access path for one filter."""

    filter: Filter
    strategy: Strategy
    index: SecondaryIndex | None = None
    lookup_keys: list[tuple[Scalar, ...]] = field(default_factory=list)
    consumed: list[Equals | In] = field(default_factory=list)
    residual: list[Equals | In] = field(default_factory=list)
    estimated_candidates: int | None = None
    rejected: list[dict[str, Any]] = field(default_factory=list)

    @property
    def text(self) -> TextSearch | None:
        return self.filter.text

    @property
    def geo(self) -> GeoNear | None:
        return self.filter.geo

    @property
    def index_name(self) -> str | None:
        return self.index.name if self.index is not None else None

    @property
    def ranking(self) -> list[str]:
        ranking: list[str] = []
        if self.text is not None:
            ranking.append("textScore")
        if self.geo is not None:
            ranking.append("distance")
        return ranking

    def candidate_ids(self) -> list[str]:
        """Run the ordered-index lookups for an ``INDEX`` plan."""

        if self.strategy is not Strategy.INDEX or self.index is None:
            raise ValueError("candidate_ids() is only defined for index plans")
        structure = self.index.structure
        if not isinstance(structure, OrderedIndex):
            raise ValueError(f"Index '{self.index.name}' does not support key lookups")
        if len(self.lookup_keys) == 1:
            return structure.lookup(self.lookup_keys[0])
        seen: dict[str, None] = {}
        for key in self.lookup_keys:
            for doc_id in structure.lookup(key):
                seen.setdefault(doc_id, None)
        return list(seen)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stage": _STAGES[self.strategy],
            "strategy": self.strategy.value,
            "indexName": self.index_name,
            "filter": self.filter.describe(),
            "residual": [clause.model_dump() for clause in self.residual],
            "ranking": self.ranking,
        }
        if self.lookup_keys:
            data["keys"] = [list(key) for key in self.lookup_keys]
        if self.estimated_candidates is not None:
            data["estimatedCandidates"] = self.estimated_candidates
        if self.rejected:
            data["rejectedPlans"] = self.rejected
        return data


@dataclass
class _Candidate:
    index: SecondaryIndex
    keys: list[tuple[Scalar, ...]]
    consumed: list[Equals | In]
    cost: int
    order: int


class QueryPlanner:
    """Chooses an access path per filter for one collection."""

    def __init__(self, schema: CollectionSchema, indexes: IndexManager, *, allow_full_scan: bool = True) -> None:
        self.schema = schema
        self.indexes = indexes
        self.allow_full_scan = allow_full_scan

    def plan(self, query: Filter) -> QueryPlan:
        self._check_fields(query)
        field_clauses = query.field_clauses

        if query.text is not None:
            return self._plan_text(query, field_clauses)

        if query.geo is not None:
            geo_index = self.indexes.geo_index(query.geo.field)
            if geo_index is not None:
                return QueryPlan(
                    filter=query,
                    strategy=Strategy.GEO,
                    index=geo_index,
                    residual=list(field_clauses),
                    estimated_candidates=geo_index.entry_count(),
                )
            return self._plan_scan(query, field_clauses, reason=f"no 2dsphere index on '{query.geo.field}'")

        if not field_clauses:
            # Listing the whole collection has no clause to index.
            return QueryPlan(filter=query, strategy=Strategy.SCAN)

        candidates = self._ordered_candidates(query, field_clauses)
        if not candidates:
            fields = ", ".join(clause.field for clause in field_clauses)
            return self._plan_scan(query, field_clauses, reason=f"no index covers {fields}")

        candidates.sort(key=lambda c: (c.cost, -len(c.consumed), c.order))
        best = candidates[0]
        residual = [clause for clause in field_clauses if clause not in best.consumed]
        plan = QueryPlan(
            filter=query,
            strategy=Strategy.INDEX,
            index=best.index,
            lookup_keys=best.keys,
            consumed=best.consumed,
            residual=residual,
            estimated_candidates=best.cost,
            rejected=[
                {"indexName": other.index.name, "estimatedCandidates": other.cost} for other in candidates[1:]
            ],
        )
        logger.debug("Planned %s via %s (cost=%d)", query.describe(), best.index.name, best.cost)
        return plan

    def explain(self, query: Filter) -> dict[str, Any]:
        return self.plan(query).to_dict()

    def _check_fields(self, query: Filter) -> None:
        for path in query.fields():
            if self.schema.root_field(path) is None:
                raise UnsupportedQuery(f"Unknown field '{path}' in filter on '{self.schema.name}'")

    def _plan_text(self, query: Filter, field_clauses: list[Equals | In]) -> QueryPlan:
        text_index: TextIndex | None = self.indexes.text_index()
        if text_index is None:
            raise UnsupportedQuery(f"Text search requires a text index on '{self.schema.name}'")
        terms = text_index.query_terms(query.text.query) if query.text is not None else []
        estimate = sum(text_index.document_frequency(term) for term in terms)
        return QueryPlan(
            filter=query,
            strategy=Strategy.TEXT,
            index=text_index,
            residual=list(field_clauses),
            estimated_candidates=estimate,
        )

    def _plan_scan(self, query: Filter, field_clauses: list[Equals | In], *, reason: str) -> QueryPlan:
        if not self.allow_full_scan:
            raise UnsupportedQuery(f"Query needs a collection scan ({reason}) and scans are disabled")
        logger.debug("Falling back to collection scan: %s", reason)
        return QueryPlan(filter=query, strategy=Strategy.SCAN, residual=list(field_clauses))

    def _ordered_candidates(self, query: Filter, field_clauses: list[Equals | In]) -> list[_Candidate]:
        equalities = query.equality_values()
        memberships = {clause.field: clause for clause in field_clauses if isinstance(clause, In)}
        candidates: list[_Candidate] = []

        for order, index in enumerate(self.indexes):
            if not index.definition.is_ordered:
                continue
            if index.definition.is_partial and not all(
                path in equalities and equalities[path] == value for path, value in index.definition.partial_filter
            ):
                continue
            structure = index.structure
            if not isinstance(structure, OrderedIndex):
                continue

            prefix: list[Scalar] = []
            consumed: list[Equals | In] = []
            membership: In | None = None
            for path in index.definition.fields:
                if path in equalities:
                    prefix.append(equalities[path])
                    consumed.append(next(c for c in field_clauses if isinstance(c, Equals) and c.field == path))
                    continue
                membership = memberships.get(path)
                break

            if membership is not None:
                keys = [(*prefix, value) for value in membership.values]
                consumed.append(membership)
            elif prefix:
                keys = [tuple(prefix)]
            else:
                continue

            cost = sum(structure.cardinality(key) for key in keys)
            candidates.append(_Candidate(index=index, keys=keys, consumed=consumed, cost=cost, order=order))
        return candidates

