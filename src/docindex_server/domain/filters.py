"""Validated filter expressions.

A filter is a tuple of clauses ANDed together. Each clause is one of four
shapes (equality, membership, text search, geo-near); anything else is
rejected at construction time, so operator objects smuggled in through
request parameters never reach the planner.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Any, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from docindex_server.domain.model import Document, GeoPoint
from docindex_server.search.geo import haversine_distance


Scalar = Union[str, int, float, bool, None]


def _check_field_path(path: str) -> str:
    if not path or not path.strip():
        raise ValueError("field path must not be empty")
    if "$" in path:
        raise ValueError(f"field path {path!r} must not contain '$'")
    if any(not part for part in path.split(".")):
        raise ValueError(f"field path {path!r} has an empty segment")
    return path


FieldPath = Annotated[str, AfterValidator(_check_field_path)]


def value_matches(stored: Any, expected: Any) -> bool:
    """Equality with array membership: an array field matches if any element equals ``expected``."""

    if isinstance(stored, list):
        return stored == expected or any(_scalar_equal(item, expected) for item in stored)
    return _scalar_equal(stored, expected)


def _scalar_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


class Equals(BaseModel):
    """``field == value``; for array fields, any element equal to ``value``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["eq"] = "eq"
    field: FieldPath
    value: Scalar

    def matches(self, doc: Document) -> bool:
        return value_matches(doc.get(self.field), self.value)


class In(BaseModel):
    """``field`` equal to any of ``values``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["in"] = "in"
    field: FieldPath
    values: tuple[Scalar, ...] = Field(min_length=1)

    def matches(self, doc: Document) -> bool:
        stored = doc.get(self.field)
        return any(value_matches(stored, value) for value in self.values)


class TextSearch(BaseModel):
    """Full-text search over the collection's text index."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["text"] = "text"
    query: str = Field(min_length=1)


class GeoNear(BaseModel):
    """Points within ``max_distance`` metres of (lng, lat), nearest first."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["geo_near"] = "geo_near"
    lng: float = Field(ge=-180.0, le=180.0)
    lat: float = Field(ge=-90.0, le=90.0)
    max_distance: float = Field(ge=0.0)
    field: FieldPath = "location"

    def distance_to(self, doc: Document) -> float | None:
        point: GeoPoint | None = doc.geo_point(self.field)
        if point is None:
            return None
        return haversine_distance(self.lng, self.lat, point.lng, point.lat)

    def matches(self, doc: Document) -> bool:
        distance = self.distance_to(doc)
        return distance is not None and distance <= self.max_distance


Clause = Annotated[Union[Equals, In, TextSearch, GeoNear], Field(discriminator="kind")]


class Filter(BaseModel):
    """Conjunction of clauses; at most one text clause and one geo clause."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    clauses: tuple[Clause, ...] = ()

    @model_validator(mode="after")
    def _single_ranking_clauses(self) -> Filter:
        if sum(isinstance(clause, TextSearch) for clause in self.clauses) > 1:
            raise ValueError("a filter may contain at most one text clause")
        if sum(isinstance(clause, GeoNear) for clause in self.clauses) > 1:
            raise ValueError("a filter may contain at most one geo-near clause")
        return self

    @classmethod
    def of(cls, *clauses: Equals | In | TextSearch | GeoNear) -> Filter:
        return cls(clauses=clauses)

    @property
    def text(self) -> TextSearch | None:
        return next((clause for clause in self.clauses if isinstance(clause, TextSearch)), None)

    @property
    def geo(self) -> GeoNear | None:
        return next((clause for clause in self.clauses if isinstance(clause, GeoNear)), None)

    @property
    def field_clauses(self) -> list[Equals | In]:
        return [clause for clause in self.clauses if isinstance(clause, (Equals, In))]

    def equality_values(self) -> dict[str, Scalar]:
        """Map of field -> value for plain equality clauses (first clause wins)."""

        values: dict[str, Scalar] = {}
        for clause in self.clauses:
            if isinstance(clause, Equals) and clause.field not in values:
                values[clause.field] = clause.value
        return values

    def fields(self) -> Sequence[str]:
        return [clause.field for clause in self.clauses if isinstance(clause, (Equals, In, GeoNear))]

    def describe(self) -> list[dict[str, Any]]:
        return [clause.model_dump() for clause in self.clauses]
