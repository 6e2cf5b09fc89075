"""Service layer - use cases behind the HTTP routes.

Each function turns loosely typed request parameters into a validated
``Filter`` or document payload, calls the engine, and returns a plain
result dict. Engine failures come back as ``{"status": "error", ...}``
results carrying the HTTP status class; they are never raised past this
layer.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
import math
import re
from typing import Any

from pydantic import ValidationError

from docindex_server.domain.filters import Equals, Filter, GeoNear, TextSearch
from docindex_server.engine.engine import DocumentEngine
from docindex_server.engine.errors import EngineError


logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "indexes"
DEFAULT_GEO_DISTANCE = 5000

# request parameter -> stored field
LIST_FILTER_FIELDS = {"status": "status", "tag": "tags", "firstName": "firstName"}

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class InvalidQuery(ValueError):
    """Request parameters that cannot be turned into a filter."""


def parse_int_prefix(value: Any) -> int | None:
    """Parse the leading integer of ``value`` (``"1500m"`` -> 1500); ``None`` when there is none."""

    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _INT_PREFIX.match(str(value))
    return int(match.group(1)) if match else None


def parse_float_prefix(value: Any) -> float | None:
    """Parse the leading decimal number of ``value``; ``None`` when there is none."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    match = _FLOAT_PREFIX.match(str(value))
    if not match:
        return None
    number = float(match.group(1))
    return number if math.isfinite(number) else None


def _present(params: Mapping[str, Any], key: str) -> Any:
    """Return the parameter when it is set to something other than an empty string."""

    value = params.get(key)
    if value is None or value == "":
        return None
    return value


def _error(exc: EngineError) -> dict[str, Any]:
    return {"status": "error", "code": exc.status_code, "error_code": exc.code, "message": exc.message}


def _invalid(message: str) -> dict[str, Any]:
    return {"status": "error", "code": 400, "error_code": "invalid_query", "message": message}


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if not isinstance(part, int))
    return f"Invalid query: {location}: {first['msg']}" if location else f"Invalid query: {first['msg']}"


def build_list_filter(params: Mapping[str, Any]) -> Filter:
    """Equality clauses for ``status``, ``tag`` and ``firstName``; absent or empty ones are skipped."""

    clauses = []
    for param, field in LIST_FILTER_FIELDS.items():
        value = _present(params, param)
        if value is not None:
            clauses.append(Equals(field=field, value=str(value)))
    return Filter.of(*clauses)


def build_search_filter(params: Mapping[str, Any], *, default_distance: int = DEFAULT_GEO_DISTANCE) -> Filter:
    """Text, tag and geo-near clauses from search parameters.

    Geo-near applies only when both ``lng`` and ``lat`` are given.
    ``distance`` is read as a leading integer in metres; a missing,
    unparsable or zero value falls back to ``default_distance``.
    """

    clauses: list[Any] = []
    text = _present(params, "text")
    if text is not None:
        clauses.append(TextSearch(query=str(text)))

    tag = _present(params, "tag")
    if tag is not None:
        clauses.append(Equals(field="tags", value=str(tag)))

    lng_raw = _present(params, "lng")
    lat_raw = _present(params, "lat")
    if lng_raw is not None and lat_raw is not None:
        lng = parse_float_prefix(lng_raw)
        lat = parse_float_prefix(lat_raw)
        if lng is None or lat is None:
            raise InvalidQuery(f"Invalid coordinates: lng={lng_raw!r}, lat={lat_raw!r}")
        distance = parse_int_prefix(_present(params, "distance")) or default_distance
        clauses.append(GeoNear(lng=lng, lat=lat, max_distance=distance))
    return Filter.of(*clauses)


def create_document(
    engine: DocumentEngine,
    fields: Any,
    *,
    collection_name: str = DEFAULT_COLLECTION,
) -> dict[str, Any]:
    """Insert one document and report the collection size after the write."""

    try:
        collection = engine.collection(collection_name)
        doc = collection.insert(fields)
        total = collection.count()
    except EngineError as exc:
        logger.info("Create rejected on %s: %s", collection_name, exc.message)
        return _error(exc)

    logger.info("Created document %s in %s (total=%d)", doc.doc_id, collection_name, total)
    return {
        "status": "created",
        "code": 201,
        "message": "Document created successfully",
        "totalCount": total,
        "data": doc.to_dict(),
    }


def list_documents(
    engine: DocumentEngine,
    params: Mapping[str, Any],
    *,
    collection_name: str = DEFAULT_COLLECTION,
) -> dict[str, Any]:
    """Documents matching every given filter, in insertion order."""

    try:
        query = build_list_filter(params)
        docs = engine.collection(collection_name).find(query)
    except ValidationError as exc:
        return _invalid(_validation_message(exc))
    except EngineError as exc:
        logger.warning("List failed on %s: %s", collection_name, exc.message)
        return _error(exc)

    return {
        "status": "ok",
        "code": 200,
        "message": "Document fetched successfully",
        "count": len(docs),
        "data": [doc.to_dict() for doc in docs],
    }


def search_documents(
    engine: DocumentEngine,
    params: Mapping[str, Any],
    *,
    collection_name: str = DEFAULT_COLLECTION,
    default_distance: int = DEFAULT_GEO_DISTANCE,
) -> dict[str, Any]:
    """Text / tag / geo-near search; ranked results when a text or geo clause is present."""

    try:
        query = build_search_filter(params, default_distance=default_distance)
        docs = engine.collection(collection_name).find(query)
    except InvalidQuery as exc:
        return _invalid(str(exc))
    except ValidationError as exc:
        return _invalid(_validation_message(exc))
    except EngineError as exc:
        logger.warning("Search failed on %s: %s", collection_name, exc.message)
        return _error(exc)

    return {
        "status": "ok",
        "code": 200,
        "message": "Search results fetched successfully",
        "count": len(docs),
        "data": [doc.to_dict() for doc in docs],
    }


def get_document(
    engine: DocumentEngine,
    doc_id: str,
    *,
    collection_name: str = DEFAULT_COLLECTION,
) -> dict[str, Any]:
    try:
        doc = engine.collection(collection_name).get(doc_id)
    except EngineError as exc:
        return _error(exc)
    return {"status": "ok", "code": 200, "message": "Document fetched successfully", "data": doc.to_dict()}


def explain_search(
    engine: DocumentEngine,
    params: Mapping[str, Any],
    *,
    collection_name: str = DEFAULT_COLLECTION,
    default_distance: int = DEFAULT_GEO_DISTANCE,
) -> dict[str, Any]:
    """Query plan the search endpoint would use for ``params``."""

    try:
        query = build_search_filter(params, default_distance=default_distance)
        plan = engine.collection(collection_name).explain(query)
    except InvalidQuery as exc:
        return _invalid(str(exc))
    except ValidationError as exc:
        return _invalid(_validation_message(exc))
    except EngineError as exc:
        return _error(exc)
    return {"status": "ok", "code": 200, "message": "Query plan", "plan": plan}
