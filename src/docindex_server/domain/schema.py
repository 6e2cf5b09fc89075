"""
Collection schema: field declarations, validation and index declarations.

A schema is declared once when a collection is defined and never changes at
runtime. It provides:
- Field specs that cast and validate incoming values (string, string array,
  free text, GeoJSON point, enumeration)
- Index definitions (single-field, compound, multikey, text, geospatial,
  each optionally unique and/or partial)

Example:
    schema = CollectionSchema(
        name="people",
        fields=[StringField("username", required=True), StringArrayField("tags")],
    )
    schema.index({"username": 1}, unique=True)
    schema.index({"tags": 1})
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Any

from docindex_server.domain.model import DocumentStatus, resolve_path
from docindex_server.engine.errors import SchemaValidationError


_MISSING: Any = object()


class FieldType(str, Enum):
    STRING = "string"
    STRING_ARRAY = "string_array"
    TEXT = "text"
    GEO_POINT = "geo_point"
    ENUM = "enum"


class FieldCastError(ValueError):
    """Raised by a field spec when a value cannot be cast."""


def _cast_string(name: str, value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise FieldCastError(f'Cast to string failed for value "{value!r}" at path "{name}"')


def _cast_number(name: str, value: Any) -> int | float:
    if isinstance(value, bool):
        raise FieldCastError(f'Cast to Number failed for value "{value!r}" at path "{name}"')
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value) if any(ch in value for ch in ".eE") else int(value)
        except ValueError as exc:
            raise FieldCastError(f'Cast to Number failed for value "{value}" at path "{name}"') from exc
    else:
        raise FieldCastError(f'Cast to Number failed for value "{value!r}" at path "{name}"')
    if isinstance(number, float) and not math.isfinite(number):
        raise FieldCastError(f'Cast to Number failed for value "{value!r}" at path "{name}"')
    return number


@dataclass(frozen=True)
class FieldSpec(ABC):
    """Base class for all field declarations."""

    name: str
    required: bool = False

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    @abstractmethod
    def cast(self, value: Any) -> Any:
        """Return the stored form of ``value`` or raise ``FieldCastError``."""

    def default(self) -> Any:
        return _MISSING

    def is_empty(self, value: Any) -> bool:
        return value is None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.field_type.value, "required": self.required}


@dataclass(frozen=True)
class StringField(FieldSpec):
    """Exact-match string field."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.STRING

    def cast(self, value: Any) -> str:
        return _cast_string(self.name, value)

    def is_empty(self, value: Any) -> bool:
        return value is None or value == ""


@dataclass(frozen=True)
class TextField(StringField):
    """Free text, eligible for a text index."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT


@dataclass(frozen=True)
class StringArrayField(FieldSpec):
    """Array of strings; a bare string is stored as a one-element array."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.STRING_ARRAY

    def cast(self, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [_cast_string(f"{self.name}.{idx}", item) for idx, item in enumerate(value)]
        return [_cast_string(self.name, value)]

    def default(self) -> list[str]:
        return []

    def is_empty(self, value: Any) -> bool:
        return not value


@dataclass(frozen=True)
class EnumField(FieldSpec):
    """String restricted to a fixed set of choices."""

    choices: tuple[str, ...] = ()
    default_value: str | None = None

    @property
    def field_type(self) -> FieldType:
        return FieldType.ENUM

    def cast(self, value: Any) -> str:
        text = _cast_string(self.name, value)
        if text not in self.choices:
            raise FieldCastError(f"`{text}` is not a valid enum value for path `{self.name}`.")
        return text

    def default(self) -> Any:
        return self.default_value if self.default_value is not None else _MISSING

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["choices"] = list(self.choices)
        if self.default_value is not None:
            data["default"] = self.default_value
        return data


@dataclass(frozen=True)
class GeoPointField(FieldSpec):
    """GeoJSON point ``{"type": "Point", "coordinates": [lng, lat]}``."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.GEO_POINT

    def cast(self, value: Any) -> dict[str, Any]:
        if not isinstance(value, Mapping):
            raise FieldCastError(f'Cast to Point failed for value "{value!r}" at path "{self.name}"')
        point_type = value.get("type", "Point")
        if point_type != "Point":
            raise FieldCastError(f"`{point_type}` is not a valid enum value for path `{self.name}.type`.")
        coordinates = value.get("coordinates")
        if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
            raise FieldCastError(f"Path `{self.name}.coordinates` must be [longitude, latitude]")
        lng = _cast_number(f"{self.name}.coordinates.0", coordinates[0])
        lat = _cast_number(f"{self.name}.coordinates.1", coordinates[1])
        if not -180 <= lng <= 180:
            raise FieldCastError(f"Longitude {lng} at path `{self.name}` is outside [-180, 180]")
        if not -90 <= lat <= 90:
            raise FieldCastError(f"Latitude {lat} at path `{self.name}` is outside [-90, 90]")
        return {"type": "Point", "coordinates": [lng, lat]}


class IndexKind(str, Enum):
    SINGLE = "single"
    COMPOUND = "compound"
    MULTIKEY = "multikey"
    TEXT = "text"
    GEO = "2dsphere"


@dataclass(frozen=True)
class IndexDefinition:
    """Declaration of one secondary index.

    ``partial_filter`` holds ``(path, value)`` equality pairs; a partial index
    only contains documents matching all of them.
    """

    name: str
    kind: IndexKind
    fields: tuple[str, ...]
    directions: tuple[int, ...] = ()
    unique: bool = False
    partial_filter: tuple[tuple[str, Any], ...] = ()
    analyzer: str | None = None

    def __post_init__(self) -> None:
        if not self.fields:
            raise ValueError(f"Index '{self.name}' must cover at least one field")
        if self.directions and len(self.directions) != len(self.fields):
            raise ValueError(f"Index '{self.name}' needs one direction per field")
        if any(direction not in (1, -1) for direction in self.directions):
            raise ValueError(f"Index '{self.name}' directions must be 1 or -1")
        if self.kind in (IndexKind.TEXT, IndexKind.GEO) and self.unique:
            raise ValueError(f"{self.kind.value} index '{self.name}' cannot be unique")
        if self.kind == IndexKind.GEO and len(self.fields) != 1:
            raise ValueError(f"2dsphere index '{self.name}' must cover exactly one field")

    @property
    def is_partial(self) -> bool:
        return bool(self.partial_filter)

    @property
    def is_ordered(self) -> bool:
        return self.kind in (IndexKind.SINGLE, IndexKind.COMPOUND, IndexKind.MULTIKEY)

    def key_directions(self) -> tuple[int, ...]:
        return self.directions or tuple(1 for _ in self.fields)

    def partial_matches(self, fields: Mapping[str, Any]) -> bool:
        """Return True when ``fields`` satisfies the partial filter (always for non-partial)."""

        return all(resolve_path(fields, path, _MISSING) == value for path, value in self.partial_filter)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "fields": list(self.fields),
            "unique": self.unique,
        }
        if self.directions:
            data["directions"] = list(self.directions)
        if self.partial_filter:
            data["partialFilterExpression"] = dict(self.partial_filter)
        return data


@dataclass
class CollectionSchema:
    """Static schema of a collection: its fields and its index declarations."""

    name: str
    fields: list[FieldSpec]
    indexes: list[IndexDefinition] = field(default_factory=list)
    model_name: str = "Document"

    def __post_init__(self) -> None:
        self._field_map: dict[str, FieldSpec] = {f.name: f for f in self.fields}
        if len(self._field_map) != len(self.fields):
            raise ValueError(f"Duplicate field names in schema '{self.name}'")
        existing = list(self.indexes)
        self.indexes = []
        for definition in existing:
            self._register_index(definition)

    def __getitem__(self, name: str) -> FieldSpec:
        return self._field_map[name]

    def __contains__(self, name: str) -> bool:
        return name in self._field_map

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def root_field(self, path: str) -> FieldSpec | None:
        return self._field_map.get(path.split(".", 1)[0])

    def index(
        self,
        keys: Mapping[str, int | str],
        *,
        unique: bool = False,
        partial_filter_expression: Mapping[str, Any] | None = None,
        name: str | None = None,
        analyzer: str | None = None,
    ) -> IndexDefinition:
        """Declare an index from a key specification such as ``{"firstName": 1, "lastName": 1}``.

        ``"text"`` and ``"2dsphere"`` key values select those index kinds; a
        single ascending/descending key over an array field becomes multikey.
        """

        if not keys:
            raise ValueError("Index key specification must not be empty")
        paths = tuple(keys)
        values = tuple(keys.values())
        index_name = name or "_".join(f"{path}_{value}" for path, value in keys.items())

        if all(value == "text" for value in values):
            kind = IndexKind.TEXT
            directions: tuple[int, ...] = ()
        elif values == ("2dsphere",):
            kind = IndexKind.GEO
            directions = ()
        elif all(value in (1, -1) for value in values):
            directions = tuple(int(value) for value in values)
            array_paths = [p for p in paths if isinstance(self.root_field(p), StringArrayField)]
            if array_paths and len(paths) > 1:
                raise ValueError(f"Compound index '{index_name}' cannot include array field {array_paths[0]}")
            if array_paths:
                kind = IndexKind.MULTIKEY
            elif len(paths) > 1:
                kind = IndexKind.COMPOUND
            else:
                kind = IndexKind.SINGLE
        else:
            raise ValueError(f"Unsupported index key specification: {dict(keys)}")

        definition = IndexDefinition(
            name=index_name,
            kind=kind,
            fields=paths,
            directions=directions,
            unique=unique,
            partial_filter=tuple((partial_filter_expression or {}).items()),
            analyzer=analyzer,
        )
        self._register_index(definition)
        return definition

    def _register_index(self, definition: IndexDefinition) -> None:
        for path in definition.fields:
            if self.root_field(path) is None:
                raise ValueError(f"Index '{definition.name}' references unknown field '{path}'")
        for path, _value in definition.partial_filter:
            if self.root_field(path) is None:
                raise ValueError(f"Partial filter of '{definition.name}' references unknown field '{path}'")
        if any(existing.name == definition.name for existing in self.indexes):
            raise ValueError(f"Index '{definition.name}' is already declared on '{self.name}'")
        self.indexes.append(definition)

    @property
    def unique_indexes(self) -> list[IndexDefinition]:
        return [definition for definition in self.indexes if definition.unique]

    def validate(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Cast and validate a full document, applying defaults and dropping unknown fields."""

        if not isinstance(raw, Mapping):
            raise SchemaValidationError(f"{self.model_name} validation failed: document must be an object")

        validated: dict[str, Any] = {}
        errors: list[dict[str, Any]] = []
        for spec in self.fields:
            value = raw.get(spec.name, _MISSING)
            if value is _MISSING or value is None:
                default = spec.default()
                value = default if default is not _MISSING else value
            if value is _MISSING or value is None or spec.is_empty(value):
                if spec.required:
                    errors.append({"path": spec.name, "message": f"Path `{spec.name}` is required."})
                    continue
                if value is _MISSING or value is None:
                    continue
            try:
                validated[spec.name] = spec.cast(value)
            except FieldCastError as exc:
                errors.append({"path": spec.name, "message": str(exc)})

        if errors:
            details = ", ".join(f"{error['path']}: {error['message']}" for error in errors)
            raise SchemaValidationError(f"{self.model_name} validation failed: {details}", errors=errors)
        return validated

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fields": [spec.to_dict() for spec in self.fields],
            "indexes": [definition.to_dict() for definition in self.indexes],
        }


def create_index_demo_schema(name: str = "indexes") -> CollectionSchema:
    """
    Schema of the demo collection served by the HTTP API.

    Fields:
    - username, email: required strings, each backed by a unique index
    - firstName, lastName: strings, compound index (firstName, lastName)
    - tags: string array, multikey index
    - description: free text, text index
    - location: GeoJSON point, 2dsphere index
    - status: "active" | "inactive" (default "inactive"), partial index
      containing only active documents
    """

    schema = CollectionSchema(
        name=name,
        model_name="Index",
        fields=[
            StringField("username", required=True),
            StringField("email", required=True),
            StringField("firstName"),
            StringField("lastName"),
            StringArrayField("tags"),
            TextField("description"),
            GeoPointField("location"),
            EnumField(
                "status",
                choices=tuple(status.value for status in DocumentStatus),
                default_value=DocumentStatus.INACTIVE.value,
            ),
        ],
    )
    schema.index({"username": 1}, unique=True)
    schema.index({"email": 1}, unique=True)
    schema.index({"firstName": 1, "lastName": 1})
    schema.index({"tags": 1})
    schema.index({"description": "text"})
    schema.index({"location": "2dsphere"})
    schema.index({"status": 1}, partial_filter_expression={"status": DocumentStatus.ACTIVE.value})
    return schema

