"""Unit tests for IndexManager write atomicity and auditing."""

from __future__ import annotations

from typing import Any

import pytest

from docindex_server.domain.model import Document
from docindex_server.domain.schema import IndexDefinition, create_index_demo_schema
from docindex_server.engine.errors import InternalIndexInconsistency, UniqueConstraintViolation
from docindex_server.indexes.base import SecondaryIndex
from docindex_server.indexes.geo import GeoIndex
from docindex_server.indexes.manager import IndexManager, build_index
from docindex_server.indexes.text import TextIndex


class ExplodingIndex(SecondaryIndex):
    """Index whose add fails for one poisoned username."""

    def __init__(self, definition: IndexDefinition, poisoned: str) -> None:
        super().__init__(definition)
        self.poisoned = poisoned

    def add(self, doc: Document) -> None:
        if doc.get("username") == self.poisoned:
            raise RuntimeError("disk on fire")

    def remove(self, doc: Document) -> None:
        return None

    def entries(self) -> frozenset[tuple[Any, ...]]:
        return frozenset()

    def entry_count(self) -> int:
        return 0


def _exploding_factory(broken: str, poisoned: str):
    def factory(definition: IndexDefinition, *, geo_cell_degrees: float = 1.0) -> SecondaryIndex:
        if definition.name == broken:
            return ExplodingIndex(definition, poisoned)
        return build_index(definition, geo_cell_degrees=geo_cell_degrees)

    return factory


def _doc(doc_id: str, username: str, **fields) -> Document:
    base = {
        "username": username,
        "email": f"{username}@example.com",
        "tags": ["red"],
        "description": "fast fox",
        "location": {"type": "Point", "coordinates": [10.0, 20.0]},
        "status": "active",
    }
    return Document(doc_id=doc_id, seq=1, fields={**base, **fields})


@pytest.fixture
def manager() -> IndexManager:
    return IndexManager(create_index_demo_schema().indexes)


@pytest.mark.unit
def test_manager_builds_one_structure_per_definition(manager):
    assert len(manager) == 7
    assert isinstance(manager.text_index(), TextIndex)
    assert isinstance(manager.geo_index("location"), GeoIndex)
    assert manager.geo_index("home") is None
    assert manager["status_1"].definition.is_partial


@pytest.mark.unit
def test_check_unique_names_the_violated_index(manager):
    manager.apply_insert(_doc("d1", "ada"))

    with pytest.raises(UniqueConstraintViolation) as exc_info:
        manager.check_unique(_doc("d2", "ada", email="other@example.com"))

    assert exc_info.value.index_name == "username_1"
    assert exc_info.value.key == ("ada",)
    assert "E11000 duplicate key error" in exc_info.value.message


@pytest.mark.unit
def test_failed_insert_rolls_back_every_index():
    factory = _exploding_factory("location_2dsphere", "ada")
    manager = IndexManager(create_index_demo_schema().indexes, index_factory=factory)

    with pytest.raises(InternalIndexInconsistency, match="disk on fire"):
        manager.apply_insert(_doc("d1", "ada"))

    assert all(index.entry_count() == 0 for index in manager)


@pytest.mark.unit
def test_failed_update_restores_the_old_entries():
    factory = _exploding_factory("status_1", "grace")
    manager = IndexManager(create_index_demo_schema().indexes, index_factory=factory)
    old = _doc("d1", "ada", status="inactive")
    manager.apply_insert(old)

    with pytest.raises(InternalIndexInconsistency):
        manager.apply_update(old, _doc("d1", "grace", status="active"))

    assert manager["username_1"].structure.lookup(("ada",)) == ["d1"]
    assert manager["username_1"].structure.lookup(("grace",)) == []


@pytest.mark.unit
def test_update_moves_partial_membership(manager):
    active = _doc("d1", "ada")
    manager.apply_insert(active)
    assert manager["status_1"].contains("d1")

    manager.apply_update(active, _doc("d1", "ada", status="inactive"))

    assert not manager["status_1"].contains("d1")
    assert manager.verify([_doc("d1", "ada", status="inactive")]) == []


@pytest.mark.unit
def test_delete_removes_every_entry(manager):
    doc = _doc("d1", "ada")
    manager.apply_insert(doc)

    manager.apply_delete(doc)

    assert all(not index.contains("d1") for index in manager)
    assert manager.verify([]) == []


@pytest.mark.unit
def test_verify_reports_drift(manager):
    doc = _doc("d1", "ada")
    manager.apply_insert(doc)
    manager["tags_1"].remove(doc)

    assert manager.verify([doc]) == ["tags_1: 1 missing and 0 unexpected entries"]


@pytest.mark.unit
def test_stats_cover_every_index(manager):
    manager.apply_insert(_doc("d1", "ada"))

    stats = {entry["name"]: entry for entry in manager.stats()}

    assert stats["username_1"]["entries"] == 1
    assert stats["description_text"]["documents"] == 1
    assert stats["status_1"]["partial"] is True
