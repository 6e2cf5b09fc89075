"""Unit tests for filter clauses and their validation."""

from __future__ import annotations

from pydantic import ValidationError
import pytest

from docindex_server.domain.filters import Equals, Filter, GeoNear, In, TextSearch, value_matches
from docindex_server.domain.model import Document


def _doc(**fields) -> Document:
    return Document(doc_id="d1", seq=1, fields=fields)


@pytest.mark.unit
def test_equals_matches_any_array_element():
    doc = _doc(tags=["red", "blue"])

    assert Equals(field="tags", value="red").matches(doc)
    assert not Equals(field="tags", value="green").matches(doc)


@pytest.mark.unit
def test_equals_on_missing_field_matches_null_only():
    doc = _doc(username="ada")

    assert Equals(field="lastName", value=None).matches(doc)
    assert not Equals(field="lastName", value="Lovelace").matches(doc)


@pytest.mark.unit
def test_value_matches_keeps_booleans_and_numbers_apart():
    assert value_matches(1, 1)
    assert not value_matches(1, True)
    assert not value_matches([0], False)
    assert value_matches([True, "x"], True)


@pytest.mark.unit
@pytest.mark.parametrize("path", ["", "   ", "$where", "profile.$ne", "a..b", ".a"])
def test_field_paths_with_operator_syntax_are_rejected(path):
    with pytest.raises(ValidationError):
        Equals(field=path, value="x")


@pytest.mark.unit
def test_equals_rejects_operator_objects_as_values():
    with pytest.raises(ValidationError):
        Equals(field="status", value={"$ne": "active"})


@pytest.mark.unit
def test_in_requires_values_and_matches_any():
    with pytest.raises(ValidationError):
        In(field="status", values=())

    clause = In(field="status", values=("active", "inactive"))
    assert clause.matches(_doc(status="inactive"))
    assert not clause.matches(_doc(status="archived"))


@pytest.mark.unit
def test_text_query_must_not_be_empty():
    with pytest.raises(ValidationError):
        TextSearch(query="")


@pytest.mark.unit
@pytest.mark.parametrize(
    "kwargs",
    [
        {"lng": 181.0, "lat": 0.0, "max_distance": 10},
        {"lng": 0.0, "lat": -91.0, "max_distance": 10},
        {"lng": 0.0, "lat": 0.0, "max_distance": -1},
    ],
)
def test_geo_near_rejects_out_of_range_values(kwargs):
    with pytest.raises(ValidationError):
        GeoNear(**kwargs)


@pytest.mark.unit
def test_geo_near_radius_is_inclusive():
    doc = _doc(location={"type": "Point", "coordinates": [10.0, 20.0]})

    assert GeoNear(lng=10.0, lat=20.0, max_distance=0).matches(doc)
    assert not GeoNear(lng=10.0, lat=20.0, max_distance=0).matches(_doc())
    assert GeoNear(lng=10.0, lat=20.0, max_distance=0).distance_to(_doc()) is None


@pytest.mark.unit
def test_filter_allows_one_text_and_one_geo_clause():
    with pytest.raises(ValidationError):
        Filter.of(TextSearch(query="a"), TextSearch(query="b"))
    with pytest.raises(ValidationError):
        Filter.of(GeoNear(lng=0, lat=0, max_distance=1), GeoNear(lng=1, lat=1, max_distance=1))

    query = Filter.of(TextSearch(query="a"), GeoNear(lng=0, lat=0, max_distance=1))
    assert query.text.query == "a"
    assert query.geo.max_distance == 1


@pytest.mark.unit
def test_filter_parses_clauses_by_kind():
    query = Filter.model_validate(
        {
            "clauses": [
                {"kind": "eq", "field": "status", "value": "active"},
                {"kind": "in", "field": "tags", "values": ["red", "blue"]},
                {"kind": "geo_near", "lng": 10, "lat": 20, "max_distance": 100},
            ]
        }
    )

    assert isinstance(query.clauses[0], Equals)
    assert isinstance(query.clauses[1], In)
    assert query.geo.field == "location"
    assert [clause.field for clause in query.field_clauses] == ["status", "tags"]
    assert query.fields() == ["status", "tags", "location"]


@pytest.mark.unit
def test_filter_rejects_unknown_clause_kinds():
    with pytest.raises(ValidationError):
        Filter.model_validate({"clauses": [{"kind": "regex", "field": "username", "pattern": ".*"}]})


@pytest.mark.unit
def test_equality_values_keeps_first_clause_per_field():
    query = Filter.of(
        Equals(field="status", value="active"),
        Equals(field="status", value="inactive"),
        In(field="tags", values=("red",)),
    )

    assert query.equality_values() == {"status": "active"}
    assert query.describe()[0] == {"kind": "eq", "field": "status", "value": "active"}


@pytest.mark.unit
def test_filters_are_immutable():
    query = Filter.of(Equals(field="status", value="active"))

    with pytest.raises(ValidationError):
        query.clauses = ()
