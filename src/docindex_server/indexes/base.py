"""Common interface of all secondary index structures."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from docindex_server.domain.model import Document
from docindex_server.domain.schema import IndexDefinition, IndexKind


class SecondaryIndex(ABC):
    """One physical structure kept in step with the document store."""

    def __init__(self, definition: IndexDefinition) -> None:
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def kind(self) -> IndexKind:
        return self.definition.kind

    @property
    def structure(self) -> SecondaryIndex:
        """The structure that answers lookups (partial indexes return their inner one)."""
        return self

    @abstractmethod
    def add(self, doc: Document) -> None:
        """Add every entry ``doc`` contributes."""

    @abstractmethod
    def remove(self, doc: Document) -> None:
        """Remove exactly the entries ``doc`` contributed."""

    @abstractmethod
    def entries(self) -> frozenset[tuple[Any, ...]]:
        """Canonical set of entries, used to audit consistency."""

    @abstractmethod
    def entry_count(self) -> int:
        """Number of (key, document) entries."""

    def contains(self, doc_id: str) -> bool:
        return any(entry[-1] == doc_id for entry in self.entries())

    def conflicts(self, doc: Document) -> tuple[Any, ...] | None:
        """Return the duplicated key if adding ``doc`` would break uniqueness."""
        return None

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "fields": list(self.definition.fields),
            "unique": self.definition.unique,
            "partial": self.definition.is_partial,
            "entries": self.entry_count(),
        }
