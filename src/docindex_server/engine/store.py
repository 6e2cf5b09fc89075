"""Document store: canonical documents of one collection.

Every write runs validate, unique check, index update and commit inside
the collection's write lock. Index updates happen before the document map
changes, so a failed index update leaves both sides untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from datetime import datetime
import logging
from typing import Any

from docindex_server.domain.model import Document, ObjectIdGenerator, utcnow
from docindex_server.domain.schema import CollectionSchema
from docindex_server.engine.errors import DocumentNotFound, SchemaValidationError
from docindex_server.engine.locking import ReadWriteLock
from docindex_server.indexes.manager import IndexManager


logger = logging.getLogger(__name__)


class DocumentStore:
    """Owns the documents of a collection and keeps its indexes in step."""

    def __init__(
        self,
        schema: CollectionSchema,
        indexes: IndexManager,
        *,
        lock: ReadWriteLock | None = None,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.schema = schema
        self.indexes = indexes
        self.lock = lock or ReadWriteLock()
        self._id_factory = id_factory or ObjectIdGenerator()
        self._clock = clock
        self._documents: dict[str, Document] = {}
        self._next_seq = 1

    # -- writes ---------------------------------------------------------

    def insert(self, fields: Mapping[str, Any]) -> Document:
        """Validate and store a new document.

        Raises ``SchemaValidationError`` or ``UniqueConstraintViolation``
        without side effects.
        """

        validated = self.schema.validate(fields)
        with self.lock.write():
            doc_id = self._id_factory()
            while doc_id in self._documents:
                doc_id = self._id_factory()
            now = self._clock()
            doc = Document(doc_id=doc_id, seq=self._next_seq, fields=validated, created_at=now, updated_at=now)
            self.indexes.check_unique(doc)
            self.indexes.apply_insert(doc)
            self._documents[doc_id] = doc
            self._next_seq += 1
        logger.debug("Inserted %s into %s (seq=%d)", doc.doc_id, self.schema.name, doc.seq)
        return doc

    def update(self, doc_id: str, changes: Mapping[str, Any]) -> Document:
        """Merge ``changes`` into an existing document.

        A ``None`` value clears an optional field. The result is validated
        like an insert; unique constraints ignore the document's own entries
        and partial-index membership is re-evaluated.
        """

        if not isinstance(changes, Mapping):
            raise SchemaValidationError(f"{self.schema.model_name} validation failed: changes must be an object")
        with self.lock.write():
            old = self._require(doc_id)
            merged = {**old.fields, **changes}
            validated = self.schema.validate({key: value for key, value in merged.items() if value is not None})
            new = old.with_fields(validated, updated_at=self._clock())
            self.indexes.check_unique(new)
            self.indexes.apply_update(old, new)
            self._documents[doc_id] = new
        logger.debug("Updated %s in %s", doc_id, self.schema.name)
        return new

    def delete(self, doc_id: str) -> Document:
        """Remove a document and exactly the index entries it contributed."""

        with self.lock.write():
            doc = self._require(doc_id)
            self.indexes.apply_delete(doc)
            del self._documents[doc_id]
        logger.debug("Deleted %s from %s", doc_id, self.schema.name)
        return doc

    # -- reads ----------------------------------------------------------

    def get(self, doc_id: str) -> Document:
        with self.lock.read():
            return self._require(doc_id)

    def count(self) -> int:
        with self.lock.read():
            return len(self._documents)

    def documents(self) -> list[Document]:
        """Snapshot of all documents in insertion order."""

        with self.lock.read():
            return list(self._documents.values())

    def view(self) -> Mapping[str, Document]:
        """Live document map; callers must hold ``lock`` for reading."""
        return self._documents

    def __iter__(self) -> Iterator[Document]:
        return iter(self.documents())

    def __len__(self) -> int:
        return self.count()

    def verify(self) -> list[str]:
        with self.lock.read():
            return self.indexes.verify(self._documents.values())

    def _require(self, doc_id: str) -> Document:
        doc = self._documents.get(doc_id)
        if doc is None:
            raise DocumentNotFound(doc_id)
        return doc
