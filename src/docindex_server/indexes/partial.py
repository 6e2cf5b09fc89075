"""Partial index wrapper."""

from __future__ import annotations

from typing import Any

from docindex_server.domain.model import Document
from docindex_server.indexes.base import SecondaryIndex


class PartialIndex(SecondaryIndex):
    """Keeps only documents matching the definition's partial filter.

    Eligibility is evaluated on every add, so an update that changes a
    document's status moves it in or out of the index.
    """

    def __init__(self, inner: SecondaryIndex) -> None:
        super().__init__(inner.definition)
        self.inner = inner
        self._members: set[str] = set()

    @property
    def structure(self) -> SecondaryIndex:
        return self.inner

    def eligible(self, doc: Document) -> bool:
        return self.definition.partial_matches(doc.fields)

    def add(self, doc: Document) -> None:
        if not self.eligible(doc):
            return
        self.inner.add(doc)
        self._members.add(doc.doc_id)

    def remove(self, doc: Document) -> None:
        if doc.doc_id not in self._members:
            return
        self.inner.remove(doc)
        self._members.discard(doc.doc_id)

    def conflicts(self, doc: Document) -> tuple[Any, ...] | None:
        if not self.eligible(doc):
            return None
        return self.inner.conflicts(doc)

    def contains(self, doc_id: str) -> bool:
        return doc_id in self._members

    def entries(self) -> frozenset[tuple[Any, ...]]:
        return self.inner.entries()

    def entry_count(self) -> int:
        return self.inner.entry_count()

    def stats(self) -> dict[str, Any]:
        data = self.inner.stats()
        data["partial"] = True
        data["partialFilterExpression"] = dict(self.definition.partial_filter)
        data["members"] = len(self._members)
        return data
