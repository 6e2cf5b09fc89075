"""Domain model - documents and value objects.

Documents are immutable snapshots: an update produces a new ``Document``
with the same identity, so a reader holding a reference never observes a
half-applied write.
"""

from __future__ import annotations

from collections.abc import Mapping
import copy
from datetime import datetime, timezone
from enum import Enum
import os
import threading
import time
from typing import Any

from pydantic import Field
from pydantic.dataclasses import dataclass


class DocumentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class GeoPoint:
    """A (longitude, latitude) pair in degrees."""

    lng: float = Field(ge=-180.0, le=180.0)
    lat: float = Field(ge=-90.0, le=90.0)

    def to_geojson(self) -> dict[str, Any]:
        return {"type": "Point", "coordinates": [self.lng, self.lat]}

    @classmethod
    def from_geojson(cls, value: Any) -> GeoPoint | None:
        """Read a stored GeoJSON point; ``None`` when the value carries no coordinates."""

        if not isinstance(value, dict):
            return None
        coordinates = value.get("coordinates")
        if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
            return None
        return cls(lng=float(coordinates[0]), lat=float(coordinates[1]))


class ObjectIdGenerator:
    """Generate 24-hex identifiers laid out like BSON ObjectIds.

    4 bytes of epoch seconds, 5 bytes of per-process randomness and a 3 byte
    counter. Identifiers from one generator are unique and increase with
    creation time.
    """

    def __init__(self) -> None:
        self._process_bytes = os.urandom(5).hex()
        self._counter = int.from_bytes(os.urandom(3), "big")
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            self._counter = (self._counter + 1) % 0x1000000
            counter = self._counter
        return f"{int(time.time()) & 0xFFFFFFFF:08x}{self._process_bytes}{counter:06x}"


def resolve_path(fields: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Resolve a dotted path against nested mappings."""

    current: Any = fields
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Document:
    """Aggregate root for a stored document.

    ``seq`` is the store-assigned insertion sequence; results without a
    ranking clause are ordered by it.
    """

    doc_id: str
    seq: int
    fields: dict[str, Any]
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def get(self, path: str, default: Any = None) -> Any:
        """Resolve a dotted field path such as ``location.coordinates``."""

        return resolve_path(self.fields, path, default)

    def geo_point(self, path: str) -> GeoPoint | None:
        return GeoPoint.from_geojson(self.get(path))

    def with_fields(self, fields: dict[str, Any], *, updated_at: datetime | None = None) -> Document:
        return Document(
            doc_id=self.doc_id,
            seq=self.seq,
            fields=fields,
            created_at=self.created_at,
            updated_at=updated_at or utcnow(),
        )

    def detached(self) -> Document:
        """Copy whose fields share no mutable state with this document."""

        return Document(
            doc_id=self.doc_id,
            seq=self.seq,
            fields=copy.deepcopy(self.fields),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the way API clients expect: ``_id`` first, timestamps last."""

        return {
            "_id": self.doc_id,
            **copy.deepcopy(self.fields),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __hash__(self) -> int:
        return hash(self.doc_id)
