"""Document engine: explicit lifecycle and collection registry.

There is no module-level engine. The process that serves HTTP creates one
instance, opens it during startup and closes it during shutdown; tests
create as many independent engines as they need.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
import threading
from types import TracebackType

from docindex_server.config import EngineSettings
from docindex_server.domain.schema import CollectionSchema
from docindex_server.engine.collection import Collection
from docindex_server.engine.errors import EngineClosed


logger = logging.getLogger(__name__)


class DocumentEngine:
    """Owns named collections; every operation requires the engine to be open."""

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or EngineSettings()
        self._collections: dict[str, Collection] = {}
        self._lock = threading.Lock()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> DocumentEngine:
        with self._lock:
            if not self._open:
                self._open = True
                logger.info(
                    "Document engine opened (full_scan=%s, timeout_ms=%s)",
                    self.settings.allow_full_scan,
                    self.settings.query_timeout_ms,
                )
        return self

    def close(self) -> None:
        """Close the engine and drop its collections. Safe to call twice."""
        with self._lock:
            if not self._open:
                return
            self._open = False
            dropped = len(self._collections)
            self._collections.clear()
        logger.info("Document engine closed (%d collection(s) dropped)", dropped)

    def __enter__(self) -> DocumentEngine:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if not self._open:
            raise EngineClosed()

    def create_collection(
        self,
        schema: CollectionSchema,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> Collection:
        """Register a collection for ``schema``; its indexes are fixed from now on."""

        with self._lock:
            self._ensure_open()
            if schema.name in self._collections:
                raise ValueError(f"Collection '{schema.name}' already exists")
            collection = Collection(schema, self.settings, id_factory=id_factory, guard=self._ensure_open)
            self._collections[schema.name] = collection
        logger.info("Created collection %s with %d index(es)", schema.name, len(schema.indexes))
        return collection

    def collection(self, name: str) -> Collection:
        self._ensure_open()
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(f"Unknown collection '{name}'") from None

    def collection_names(self) -> list[str]:
        self._ensure_open()
        return list(self._collections)
