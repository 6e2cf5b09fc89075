"""Unit tests for collection schema validation and index declarations."""

from __future__ import annotations

import pytest

from docindex_server.domain.schema import (
    CollectionSchema,
    GeoPointField,
    IndexDefinition,
    IndexKind,
    StringArrayField,
    StringField,
    TextField,
    create_index_demo_schema,
)
from docindex_server.engine.errors import SchemaValidationError


@pytest.fixture
def schema() -> CollectionSchema:
    return create_index_demo_schema()


@pytest.mark.unit
def test_demo_schema_declares_its_indexes(schema):
    declared = {definition.name: definition for definition in schema.indexes}

    assert list(declared) == [
        "username_1",
        "email_1",
        "firstName_1_lastName_1",
        "tags_1",
        "description_text",
        "location_2dsphere",
        "status_1",
    ]
    assert declared["username_1"].unique
    assert declared["email_1"].unique
    assert declared["firstName_1_lastName_1"].kind == IndexKind.COMPOUND
    assert declared["tags_1"].kind == IndexKind.MULTIKEY
    assert declared["description_text"].kind == IndexKind.TEXT
    assert declared["location_2dsphere"].kind == IndexKind.GEO
    assert declared["status_1"].partial_filter == (("status", "active"),)


@pytest.mark.unit
def test_validate_applies_defaults_and_drops_unknown_fields(schema):
    validated = schema.validate({"username": "ada", "email": "ada@example.com", "role": "admin"})

    assert validated == {"username": "ada", "email": "ada@example.com", "tags": [], "status": "inactive"}


@pytest.mark.unit
def test_validate_reports_every_missing_required_field(schema):
    with pytest.raises(SchemaValidationError) as exc_info:
        schema.validate({"firstName": "Ada"})

    assert [error["path"] for error in exc_info.value.errors] == ["username", "email"]
    assert exc_info.value.message.startswith("Index validation failed")
    assert exc_info.value.status_code == 400


@pytest.mark.unit
def test_validate_treats_empty_string_as_missing_for_required_fields(schema):
    with pytest.raises(SchemaValidationError):
        schema.validate({"username": "", "email": "ada@example.com"})


@pytest.mark.unit
def test_validate_casts_scalars_and_wraps_single_tags(schema):
    validated = schema.validate({"username": 42, "email": "x@example.com", "tags": "red"})

    assert validated["username"] == "42"
    assert validated["tags"] == ["red"]


@pytest.mark.unit
def test_validate_rejects_unknown_enum_value(schema):
    with pytest.raises(SchemaValidationError) as exc_info:
        schema.validate({"username": "ada", "email": "ada@example.com", "status": "archived"})

    assert exc_info.value.errors[0]["path"] == "status"


@pytest.mark.unit
def test_validate_rejects_non_object_documents(schema):
    with pytest.raises(SchemaValidationError):
        schema.validate(["not", "a", "document"])


@pytest.mark.unit
@pytest.mark.parametrize(
    "location",
    [
        "10,20",
        {"type": "Polygon", "coordinates": [10, 20]},
        {"type": "Point", "coordinates": [10]},
        {"type": "Point", "coordinates": [200, 20]},
        {"type": "Point", "coordinates": [10, -95]},
        {"type": "Point", "coordinates": ["east", 20]},
    ],
)
def test_validate_rejects_malformed_points(schema, location):
    with pytest.raises(SchemaValidationError):
        schema.validate({"username": "ada", "email": "ada@example.com", "location": location})


@pytest.mark.unit
def test_validate_normalizes_points(schema):
    validated = schema.validate(
        {"username": "ada", "email": "ada@example.com", "location": {"coordinates": ["10.5", 20]}}
    )

    assert validated["location"] == {"type": "Point", "coordinates": [10.5, 20]}


@pytest.mark.unit
def test_index_declaration_checks():
    schema = CollectionSchema(
        name="people",
        fields=[StringField("username"), StringArrayField("tags"), TextField("bio"), GeoPointField("home")],
    )

    with pytest.raises(ValueError, match="unknown field"):
        schema.index({"nickname": 1})
    with pytest.raises(ValueError, match="cannot include array field"):
        schema.index({"username": 1, "tags": 1})
    with pytest.raises(ValueError, match="cannot be unique"):
        schema.index({"bio": "text"}, unique=True)
    with pytest.raises(ValueError, match="Unsupported index key"):
        schema.index({"home": "2d"})

    schema.index({"username": 1})
    with pytest.raises(ValueError, match="already declared"):
        schema.index({"username": 1})


@pytest.mark.unit
def test_index_definition_validates_directions():
    with pytest.raises(ValueError):
        IndexDefinition(name="bad", kind=IndexKind.COMPOUND, fields=("a", "b"), directions=(1,))
    with pytest.raises(ValueError):
        IndexDefinition(name="bad", kind=IndexKind.SINGLE, fields=("a",), directions=(2,))
    with pytest.raises(ValueError):
        IndexDefinition(name="bad", kind=IndexKind.SINGLE, fields=())


@pytest.mark.unit
def test_partial_matches_uses_dotted_paths():
    definition = IndexDefinition(
        name="active_city",
        kind=IndexKind.SINGLE,
        fields=("city",),
        partial_filter=(("profile.active", True),),
    )

    assert definition.partial_matches({"profile": {"active": True}})
    assert not definition.partial_matches({"profile": {}})
    assert not definition.partial_matches({})


@pytest.mark.unit
def test_schema_to_dict_lists_partial_filter(schema):
    data = schema.to_dict()

    status_index = next(index for index in data["indexes"] if index["name"] == "status_1")
    assert status_index["partialFilterExpression"] == {"status": "active"}
    assert {field["name"] for field in data["fields"]} >= {"username", "location", "status"}
