"""Inverted index for full-text search."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from docindex_server.domain.model import Document
from docindex_server.domain.schema import IndexDefinition
from docindex_server.indexes.base import SecondaryIndex
from docindex_server.search.analyzers import analyze_terms, get_analyzer


_EMPTY: Mapping[str, int] = MappingProxyType({})


def _field_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(_field_text(item) for item in value)
    return str(value)


class TextIndex(SecondaryIndex):
    """Maps each normalized token to ``{doc_id: term frequency}``.

    Documents whose indexed fields produce no tokens are not part of the
    index and can never match a text query.
    """

    def __init__(self, definition: IndexDefinition) -> None:
        super().__init__(definition)
        self.analyzer = get_analyzer(definition.analyzer)
        self._postings: dict[str, dict[str, int]] = {}
        self._doc_terms: dict[str, Counter[str]] = {}

    def analyze(self, text: str) -> list[str]:
        return analyze_terms(self.analyzer, text)

    def query_terms(self, query: str) -> list[str]:
        """Distinct query terms in first-seen order, analyzed like indexed text."""
        return list(dict.fromkeys(self.analyze(query)))

    def add(self, doc: Document) -> None:
        text = " ".join(_field_text(doc.get(path)) for path in self.definition.fields)
        counts = Counter(self.analyze(text))
        if not counts:
            return
        self.remove(doc)
        self._doc_terms[doc.doc_id] = counts
        for term, frequency in counts.items():
            self._postings.setdefault(term, {})[doc.doc_id] = frequency

    def remove(self, doc: Document) -> None:
        counts = self._doc_terms.pop(doc.doc_id, None)
        if counts is None:
            return
        for term in counts:
            postings = self._postings.get(term)
            if postings is None:
                continue
            postings.pop(doc.doc_id, None)
            if not postings:
                del self._postings[term]

    def postings(self, term: str) -> Mapping[str, int]:
        postings = self._postings.get(term)
        return MappingProxyType(postings) if postings is not None else _EMPTY

    def document_frequency(self, term: str) -> int:
        return len(self._postings.get(term, ()))

    @property
    def document_count(self) -> int:
        return len(self._doc_terms)

    def contains(self, doc_id: str) -> bool:
        return doc_id in self._doc_terms

    def entries(self) -> frozenset[tuple[Any, ...]]:
        return frozenset(
            (term, frequency, doc_id)
            for term, postings in self._postings.items()
            for doc_id, frequency in postings.items()
        )

    def entry_count(self) -> int:
        return sum(len(postings) for postings in self._postings.values())

    def stats(self) -> dict[str, Any]:
        data = super().stats()
        data["terms"] = len(self._postings)
        data["documents"] = self.document_count
        return data
