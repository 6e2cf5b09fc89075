"""Total ordering for index keys.

Values of different types are ordered by type class first (null, numbers,
strings, objects, arrays, booleans), so mixed-type keys never raise
``TypeError`` when sorted and equal values always encode identically.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from functools import total_ordering
from typing import Any


_RANK_NULL = 1
_RANK_NUMBER = 2
_RANK_STRING = 3
_RANK_OBJECT = 4
_RANK_ARRAY = 5
_RANK_BOOL = 8


def encode_value(value: Any) -> tuple[int, Any]:
    """Return a sortable, hashable representation of ``value``."""

    if value is None:
        return (_RANK_NULL, 0)
    if isinstance(value, bool):
        return (_RANK_BOOL, value)
    if isinstance(value, (int, float)):
        return (_RANK_NUMBER, value)
    if isinstance(value, str):
        return (_RANK_STRING, value)
    if isinstance(value, Mapping):
        return (_RANK_OBJECT, tuple((str(k), encode_value(v)) for k, v in value.items()))
    if isinstance(value, Sequence):
        return (_RANK_ARRAY, tuple(encode_value(item) for item in value))
    return (_RANK_STRING, str(value))


@total_ordering
class Descending:
    """Wrapper that inverts the ordering of an encoded key component."""

    __slots__ = ("value",)

    def __init__(self, value: tuple[int, Any]) -> None:
        self.value = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Descending) and self.value == other.value

    def __lt__(self, other: Descending) -> bool:
        return other.value < self.value

    def __hash__(self) -> int:
        return hash(("desc", self.value))

    def __repr__(self) -> str:
        return f"Descending({self.value!r})"


def encode_component(value: Any, direction: int) -> Any:
    encoded = encode_value(value)
    return encoded if direction >= 0 else Descending(encoded)


def unwrap_component(component: Any) -> tuple[int, Any]:
    return component.value if isinstance(component, Descending) else component
