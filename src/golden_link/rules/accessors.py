"""Field accessors: pull the values at a dotted path out of a record.

A matcher is built with exactly one accessor for the record shape it will
see, so comparators never inspect record types per call.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any


def _split(path: str) -> list[str]:
    return [part for part in path.split(".") if part]


def _flatten(values: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for value in values:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            flat.extend(_flatten(value))
        else:
            flat.append(value)
    return flat


class FieldAccessor(ABC):
    """Resolves a dotted field path to the list of values it holds.

    Repeating elements are flattened, so ``name.given`` over
    ``{"name": [{"given": ["Jane", "J"]}]}`` yields ``["Jane", "J"]``.
    An absent field yields an empty list.
    """

    def get_field_values(self, record: Any, field_path: str) -> list[Any]:
        current = _flatten([record])
        for part in _split(field_path):
            current = _flatten(self._child(item, part) for item in current)
            if not current:
                return []
        return [v for v in current if v != ""]

    @abstractmethod
    def _child(self, item: Any, name: str) -> Any:
        """Return the member ``name`` of ``item`` or None."""


class MappingFieldAccessor(FieldAccessor):
    """For JSON-shaped records (nested dicts and lists)."""

    def _child(self, item: Any, name: str) -> Any:
        if isinstance(item, Mapping):
            return item.get(name)
        return None


class AttributeFieldAccessor(FieldAccessor):
    """For object records: dataclasses, pydantic models, plain objects."""

    def _child(self, item: Any, name: str) -> Any:
        return getattr(item, name, None)
