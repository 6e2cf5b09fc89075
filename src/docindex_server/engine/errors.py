"""Error taxonomy for the document engine.

Every error carries a stable ``code`` and the HTTP status class the service
layer should translate it to.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for all engine failures."""

    code = "engine_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class SchemaValidationError(EngineError):
    """Raised when a document is missing required fields or has malformed values."""

    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class UniqueConstraintViolation(EngineError):
    """Raised when a write would duplicate a value on a unique index."""

    code = "duplicate_key"
    status_code = 400

    def __init__(self, index_name: str, key: tuple[Any, ...]) -> None:
        rendered = ", ".join(repr(part) for part in key)
        super().__init__(f"E11000 duplicate key error index: {index_name} dup key: {{ {rendered} }}")
        self.index_name = index_name
        self.key = key

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["index"] = self.index_name
        return data


class DocumentNotFound(EngineError):
    """Raised when a lookup by identity misses."""

    code = "not_found"
    status_code = 404

    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document not found: {doc_id}")
        self.doc_id = doc_id


class UnsupportedQuery(EngineError):
    """Raised when a clause cannot be answered from an index and scans are disabled."""

    code = "unsupported_query"
    status_code = 400


class QueryTimeout(EngineError):
    """Raised when a query exceeds its caller-supplied deadline."""

    code = "query_timeout"
    status_code = 503


class InternalIndexInconsistency(EngineError):
    """Fatal: an index could not be kept in step with the document store."""

    code = "internal_index_inconsistency"
    status_code = 500


class EngineClosed(EngineError):
    """Raised when an operation is attempted on a closed engine."""

    code = "engine_closed"
    status_code = 503

    def __init__(self) -> None:
        super().__init__("Document engine is not open")
