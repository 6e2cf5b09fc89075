"""Index manager: keeps every secondary index in step with the document store.

Each write is applied to all indexes as one unit. If any index update
fails, the updates already applied are undone in reverse order and the
write is reported as ``InternalIndexInconsistency`` so the store can refuse
to commit it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
import logging
from typing import Any

from docindex_server.domain.model import Document
from docindex_server.domain.schema import IndexDefinition, IndexKind
from docindex_server.engine.errors import InternalIndexInconsistency, UniqueConstraintViolation
from docindex_server.indexes.base import SecondaryIndex
from docindex_server.indexes.geo import GeoIndex
from docindex_server.indexes.ordered import MultikeyIndex, OrderedIndex
from docindex_server.indexes.partial import PartialIndex
from docindex_server.indexes.text import TextIndex


logger = logging.getLogger(__name__)

_Step = tuple[SecondaryIndex, str, Document]


def build_index(definition: IndexDefinition, *, geo_cell_degrees: float = 1.0) -> SecondaryIndex:
    """Create the physical structure for ``definition``."""

    index: SecondaryIndex
    if definition.kind == IndexKind.MULTIKEY:
        index = MultikeyIndex(definition)
    elif definition.kind in (IndexKind.SINGLE, IndexKind.COMPOUND):
        index = OrderedIndex(definition)
    elif definition.kind == IndexKind.TEXT:
        index = TextIndex(definition)
    elif definition.kind == IndexKind.GEO:
        index = GeoIndex(definition, cell_degrees=geo_cell_degrees)
    else:  # pragma: no cover - exhaustive over IndexKind
        raise ValueError(f"Unsupported index kind: {definition.kind}")
    if definition.is_partial:
        return PartialIndex(index)
    return index


class IndexManager:
    """Owns one structure per index definition of a collection."""

    def __init__(
        self,
        definitions: Sequence[IndexDefinition],
        *,
        geo_cell_degrees: float = 1.0,
        index_factory: Callable[..., SecondaryIndex] = build_index,
    ) -> None:
        self._factory = index_factory
        self._geo_cell_degrees = geo_cell_degrees
        self._indexes: dict[str, SecondaryIndex] = {
            definition.name: index_factory(definition, geo_cell_degrees=geo_cell_degrees) for definition in definitions
        }

    def __iter__(self) -> Iterator[SecondaryIndex]:
        return iter(self._indexes.values())

    def __len__(self) -> int:
        return len(self._indexes)

    def __getitem__(self, name: str) -> SecondaryIndex:
        return self._indexes[name]

    def by_kind(self, *kinds: IndexKind) -> list[SecondaryIndex]:
        return [index for index in self._indexes.values() if index.kind in kinds]

    def text_index(self) -> TextIndex | None:
        for index in self.by_kind(IndexKind.TEXT):
            structure = index.structure
            if isinstance(structure, TextIndex) and not index.definition.is_partial:
                return structure
        return None

    def geo_index(self, field: str) -> GeoIndex | None:
        for index in self.by_kind(IndexKind.GEO):
            structure = index.structure
            if isinstance(structure, GeoIndex) and structure.field == field and not index.definition.is_partial:
                return structure
        return None

    # -- constraints ----------------------------------------------------

    def check_unique(self, doc: Document) -> None:
        """Raise ``UniqueConstraintViolation`` if ``doc`` duplicates a unique key held by another document."""

        for index in self._indexes.values():
            if not index.definition.unique:
                continue
            duplicate = index.conflicts(doc)
            if duplicate is not None:
                raise UniqueConstraintViolation(index.name, tuple(duplicate))

    # -- mutation -------------------------------------------------------

    def apply_insert(self, doc: Document) -> None:
        self._apply([(index, "add", doc) for index in self._indexes.values()])

    def apply_delete(self, doc: Document) -> None:
        self._apply([(index, "remove", doc) for index in self._indexes.values()])

    def apply_update(self, old: Document, new: Document) -> None:
        steps: list[_Step] = []
        for index in self._indexes.values():
            steps.append((index, "remove", old))
            steps.append((index, "add", new))
        self._apply(steps)

    def _apply(self, steps: list[_Step]) -> None:
        applied: list[_Step] = []
        for step in steps:
            index, operation, doc = step
            try:
                getattr(index, operation)(doc)
            except Exception as exc:
                logger.error(
                    "Index %s failed to %s document %s; rolling back %d step(s)",
                    index.name,
                    operation,
                    doc.doc_id,
                    len(applied),
                )
                self._rollback(applied)
                raise InternalIndexInconsistency(
                    f"Index '{index.name}' failed to {operation} document {doc.doc_id}: {exc}"
                ) from exc
            applied.append(step)

    def _rollback(self, applied: list[_Step]) -> None:
        for index, operation, doc in reversed(applied):
            inverse = "remove" if operation == "add" else "add"
            try:
                getattr(index, inverse)(doc)
            except Exception:
                logger.critical(
                    "Rollback of %s on index %s failed for document %s",
                    operation,
                    index.name,
                    doc.doc_id,
                    exc_info=True,
                )

    # -- auditing -------------------------------------------------------

    def verify(self, documents: Iterable[Document]) -> list[str]:
        """Rebuild every index from ``documents`` and report mismatches with the live structures."""

        docs = list(documents)
        problems: list[str] = []
        for name, live in self._indexes.items():
            expected = self._factory(live.definition, geo_cell_degrees=self._geo_cell_degrees)
            for doc in docs:
                expected.add(doc)
            live_entries = live.entries()
            expected_entries = expected.entries()
            if live_entries != expected_entries:
                missing = len(expected_entries - live_entries)
                extra = len(live_entries - expected_entries)
                problems.append(f"{name}: {missing} missing and {extra} unexpected entries")
        return problems

    def stats(self) -> list[dict[str, Any]]:
        return [index.stats() for index in self._indexes.values()]
