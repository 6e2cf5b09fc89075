from __future__ import annotations

from datetime import datetime, timezone
import re

import pytest

from docindex_server.domain.model import Document, GeoPoint, ObjectIdGenerator, resolve_path


@pytest.mark.unit
def test_object_ids_are_unique_24_hex_strings():
    generator = ObjectIdGenerator()
    ids = [generator() for _ in range(500)]

    assert len(set(ids)) == 500
    assert all(re.fullmatch(r"[0-9a-f]{24}", doc_id) for doc_id in ids)


@pytest.mark.unit
def test_object_id_counter_uses_all_three_bytes():
    generator = ObjectIdGenerator()
    generator._counter = 0xFFFFFE

    assert [generator()[-6:] for _ in range(3)] == ["ffffff", "000000", "000001"]


@pytest.mark.unit
def test_to_dict_puts_id_first_and_timestamps_last():
    stamp = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    doc = Document(doc_id="abc", seq=1, fields={"username": "ada"}, created_at=stamp, updated_at=stamp)

    data = doc.to_dict()

    assert list(data) == ["_id", "username", "createdAt", "updatedAt"]
    assert data["createdAt"] == "2024-01-02T03:04:05.678Z"


@pytest.mark.unit
def test_to_dict_returns_a_copy_of_nested_fields():
    doc = Document(doc_id="abc", seq=1, fields={"tags": ["red"]})

    doc.to_dict()["tags"].append("blue")

    assert doc.fields["tags"] == ["red"]


@pytest.mark.unit
def test_with_fields_keeps_identity_and_creation_time():
    doc = Document(doc_id="abc", seq=7, fields={"username": "ada"})
    later = datetime(2030, 1, 1, tzinfo=timezone.utc)

    updated = doc.with_fields({"username": "grace"}, updated_at=later)

    assert (updated.doc_id, updated.seq, updated.created_at) == (doc.doc_id, doc.seq, doc.created_at)
    assert updated.updated_at == later
    assert doc.fields == {"username": "ada"}


@pytest.mark.unit
def test_resolve_path_and_geo_point():
    fields = {"profile": {"city": "Paris"}, "location": {"type": "Point", "coordinates": [2.35, 48.85]}}
    doc = Document(doc_id="abc", seq=1, fields=fields)

    assert resolve_path(fields, "profile.city") == "Paris"
    assert resolve_path(fields, "profile.zip", "n/a") == "n/a"
    assert doc.geo_point("location") == GeoPoint(lng=2.35, lat=48.85)
    assert doc.geo_point("profile") is None
    assert GeoPoint.from_geojson({"coordinates": [1]}) is None
