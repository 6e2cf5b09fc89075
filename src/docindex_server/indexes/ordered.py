"""Ordered single-field, compound and multikey indexes.

Keys are kept in a sorted list (``bisect``) next to a mapping from key to an
insertion-ordered set of document ids, so equality lookups are a dict hit
and prefix/range lookups are a contiguous slice of the sorted keys.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterator, Sequence
from typing import Any

from docindex_server.domain.model import Document
from docindex_server.domain.schema import IndexDefinition
from docindex_server.indexes.base import SecondaryIndex
from docindex_server.indexes.keys import encode_component, encode_value, unwrap_component


Key = tuple[Any, ...]


class OrderedIndex(SecondaryIndex):
    """Sorted mapping from field-value tuples to document ids.

    Compound indexes answer lookups on any leftmost prefix of their fields.
    Ids under one key are returned in insertion order.
    """

    def __init__(self, definition: IndexDefinition) -> None:
        super().__init__(definition)
        self._directions = definition.key_directions()
        self._keys: list[Key] = []
        self._postings: dict[Key, dict[str, None]] = {}
        self._entry_count = 0

    # -- key extraction -------------------------------------------------

    def raw_keys(self, doc: Document) -> list[tuple[Any, ...]]:
        """Return the raw field-value tuples ``doc`` is indexed under."""
        return [tuple(doc.get(path) for path in self.definition.fields)]

    def encode_key(self, raw: Sequence[Any]) -> Key:
        return tuple(encode_component(value, direction) for value, direction in zip(raw, self._directions))

    # -- mutation -------------------------------------------------------

    def add(self, doc: Document) -> None:
        for raw in self.raw_keys(doc):
            key = self.encode_key(raw)
            ids = self._postings.get(key)
            if ids is None:
                ids = {}
                self._postings[key] = ids
                bisect.insort(self._keys, key)
            if doc.doc_id not in ids:
                ids[doc.doc_id] = None
                self._entry_count += 1

    def remove(self, doc: Document) -> None:
        for raw in self.raw_keys(doc):
            key = self.encode_key(raw)
            ids = self._postings.get(key)
            if ids is None or doc.doc_id not in ids:
                continue
            del ids[doc.doc_id]
            self._entry_count -= 1
            if not ids:
                del self._postings[key]
                position = bisect.bisect_left(self._keys, key)
                if position < len(self._keys) and self._keys[position] == key:
                    del self._keys[position]

    # -- lookups --------------------------------------------------------

    def _prefix_block(self, prefix: Key) -> Iterator[Key]:
        start = bisect.bisect_left(self._keys, prefix)
        width = len(prefix)
        for key in self._keys[start:]:
            if key[:width] != prefix:
                break
            yield key

    def lookup(self, values: Sequence[Any]) -> list[str]:
        """Return ids whose leading fields equal ``values`` (a leftmost prefix)."""

        if len(values) > len(self.definition.fields):
            raise ValueError(f"Index '{self.name}' covers only {len(self.definition.fields)} fields")
        prefix = self.encode_key(values)
        if len(values) == len(self.definition.fields):
            return list(self._postings.get(prefix, ()))
        result: list[str] = []
        for key in self._prefix_block(prefix):
            result.extend(self._postings[key])
        return result

    def cardinality(self, values: Sequence[Any]) -> int:
        """Estimated candidate count for a prefix lookup."""

        prefix = self.encode_key(values)
        if len(values) == len(self.definition.fields):
            return len(self._postings.get(prefix, ()))
        return sum(len(self._postings[key]) for key in self._prefix_block(prefix))

    def range_lookup(
        self,
        *,
        prefix: Sequence[Any] = (),
        lower: Any = None,
        upper: Any = None,
        include_lower: bool = True,
        include_upper: bool = True,
    ) -> list[str]:
        """Return ids whose field after ``prefix`` lies between ``lower`` and ``upper``.

        ``None`` leaves that side of the range open.
        """

        position = len(prefix)
        if position >= len(self.definition.fields):
            raise ValueError(f"Index '{self.name}' has no field after a prefix of {position}")
        low = encode_value(lower) if lower is not None else None
        high = encode_value(upper) if upper is not None else None
        result: list[str] = []
        for key in self._prefix_block(self.encode_key(prefix)):
            component = unwrap_component(key[position])
            if low is not None and (component < low or (component == low and not include_lower)):
                continue
            if high is not None and (component > high or (component == high and not include_upper)):
                continue
            result.extend(self._postings[key])
        return result

    def iter_ordered(self) -> Iterator[tuple[Key, list[str]]]:
        for key in self._keys:
            yield key, list(self._postings[key])

    def contains(self, doc_id: str) -> bool:
        return any(doc_id in ids for ids in self._postings.values())

    def conflicts(self, doc: Document) -> tuple[Any, ...] | None:
        if not self.definition.unique:
            return None
        for raw in self.raw_keys(doc):
            ids = self._postings.get(self.encode_key(raw), {})
            if any(existing != doc.doc_id for existing in ids):
                return raw
        return None

    def entries(self) -> frozenset[tuple[Any, ...]]:
        return frozenset((key, doc_id) for key, ids in self._postings.items() for doc_id in ids)

    def entry_count(self) -> int:
        return self._entry_count

    def distinct_keys(self) -> int:
        return len(self._keys)

    def stats(self) -> dict[str, Any]:
        data = super().stats()
        data["distinct_keys"] = self.distinct_keys()
        return data


class MultikeyIndex(OrderedIndex):
    """Ordered index over an array field: one entry per distinct element."""

    def raw_keys(self, doc: Document) -> list[tuple[Any, ...]]:
        value = doc.get(self.definition.fields[0])
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            return [(value,)]
        seen: set[tuple[int, Any]] = set()
        keys: list[tuple[Any, ...]] = []
        for element in value:
            encoded = encode_value(element)
            if encoded in seen:
                continue
            seen.add(encoded)
            keys.append((element,))
        return keys
