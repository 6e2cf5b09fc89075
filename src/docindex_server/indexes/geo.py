"""Grid-partitioned geospatial index.

Points are bucketed into fixed-size latitude/longitude cells. A radius query
visits only the cells overlapping the query circle's bounding box and then
checks exact great-circle distances.
"""

from __future__ import annotations

from collections.abc import Iterator
import math
from typing import Any

from docindex_server.domain.model import Document, GeoPoint
from docindex_server.domain.schema import IndexDefinition
from docindex_server.indexes.base import SecondaryIndex
from docindex_server.search.geo import BoundingBox, bounding_box, haversine_distance


Cell = tuple[int, int]


class GeoIndex(SecondaryIndex):
    """Spatial index over a GeoJSON point field."""

    def __init__(self, definition: IndexDefinition, *, cell_degrees: float = 1.0) -> None:
        super().__init__(definition)
        if cell_degrees <= 0 or cell_degrees > 90:
            raise ValueError("cell_degrees must be in (0, 90]")
        self.cell_degrees = cell_degrees
        self._rows = math.ceil(180.0 / cell_degrees)
        self._cols = math.ceil(360.0 / cell_degrees)
        self._cells: dict[Cell, dict[str, GeoPoint]] = {}
        self._locations: dict[str, tuple[Cell, GeoPoint]] = {}

    @property
    def field(self) -> str:
        return self.definition.fields[0]

    def _row(self, lat: float) -> int:
        return min(int((lat + 90.0) // self.cell_degrees), self._rows - 1)

    def _col(self, lng: float) -> int:
        return min(int((lng + 180.0) // self.cell_degrees), self._cols - 1)

    def cell_for(self, point: GeoPoint) -> Cell:
        return (self._row(point.lat), self._col(point.lng))

    def add(self, doc: Document) -> None:
        point = doc.geo_point(self.field)
        if point is None:
            return
        self.remove(doc)
        cell = self.cell_for(point)
        self._cells.setdefault(cell, {})[doc.doc_id] = point
        self._locations[doc.doc_id] = (cell, point)

    def remove(self, doc: Document) -> None:
        located = self._locations.pop(doc.doc_id, None)
        if located is None:
            return
        cell, _point = located
        bucket = self._cells.get(cell)
        if bucket is None:
            return
        bucket.pop(doc.doc_id, None)
        if not bucket:
            del self._cells[cell]

    def _columns(self, box: BoundingBox) -> set[int] | None:
        """Columns overlapping ``box``; ``None`` when every column does.

        A box crossing the antimeridian is split into its two in-range
        longitude spans, so the result holds whatever the cell size.
        """

        if box.full_longitude:
            return None
        if box.min_lng < -180.0:
            spans = [(box.min_lng + 360.0, 180.0), (-180.0, box.max_lng)]
        elif box.max_lng > 180.0:
            spans = [(box.min_lng, 180.0), (-180.0, box.max_lng - 360.0)]
        else:
            spans = [(box.min_lng, box.max_lng)]
        columns: set[int] = set()
        for low, high in spans:
            columns.update(range(self._col(max(low, -180.0)), self._col(min(high, 180.0)) + 1))
        return None if len(columns) >= self._cols else columns

    def candidate_cells(self, box: BoundingBox) -> Iterator[Cell]:
        """Yield occupied cells that may contain points inside ``box``."""

        first_row = self._row(max(box.min_lat, -90.0))
        last_row = self._row(min(box.max_lat, 90.0))
        columns = self._columns(box)
        for cell in self._cells:
            row, col = cell
            if row < first_row or row > last_row:
                continue
            if columns is not None and col not in columns:
                continue
            yield cell

    def near(self, lng: float, lat: float, max_distance: float) -> Iterator[tuple[str, float]]:
        """Yield ``(doc_id, distance)`` for every point within ``max_distance`` metres (inclusive)."""

        box = bounding_box(lng, lat, max_distance)
        for cell in list(self.candidate_cells(box)):
            for doc_id, point in list(self._cells.get(cell, {}).items()):
                distance = haversine_distance(lng, lat, point.lng, point.lat)
                if distance <= max_distance:
                    yield doc_id, distance

    def location_of(self, doc_id: str) -> GeoPoint | None:
        located = self._locations.get(doc_id)
        return located[1] if located else None

    def contains(self, doc_id: str) -> bool:
        return doc_id in self._locations

    def entries(self) -> frozenset[tuple[Any, ...]]:
        return frozenset((point.lng, point.lat, doc_id) for doc_id, (_cell, point) in self._locations.items())

    def entry_count(self) -> int:
        return len(self._locations)

    def stats(self) -> dict[str, Any]:
        data = super().stats()
        data["cells"] = len(self._cells)
        data["cell_degrees"] = self.cell_degrees
        return data
