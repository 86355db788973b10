"""Field-selective projection of arguments onto dotted field paths."""
from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from enum import Enum
from types import ModuleType
from typing import Any

__all__ = ["MISSING", "ValueKind", "flatten_fields", "project", "value_kind"]


class _Missing:
    """Marker for a requested field that the projected object does not have."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "MISSING"


MISSING = _Missing()

_OPAQUE_TYPES = (str, bytes, bytearray, memoryview, int, float, complex, bool, type(None))


class ValueKind(str, Enum):
    MAPPING = "mapping"
    RECORD = "record"
    OPAQUE = "opaque"


def value_kind(value: Any) -> ValueKind:
    """Classify ``value`` as a mapping, an attribute record, or an opaque value."""
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    if isinstance(value, _OPAQUE_TYPES) or value is MISSING:
        return ValueKind.OPAQUE
    if isinstance(value, (type, ModuleType)) or callable(value):
        return ValueKind.OPAQUE
    if dataclasses.is_dataclass(value):
        return ValueKind.RECORD
    if hasattr(value, "__dict__") or getattr(type(value), "__slots__", None):
        return ValueKind.RECORD
    return ValueKind.OPAQUE


def _read(obj: Any, kind: ValueKind, key: str) -> Any:
    if kind is ValueKind.MAPPING:
        return obj.get(key, MISSING)
    return getattr(obj, key, MISSING)


def _group_paths(paths: Iterable[str]) -> dict[str, list[str] | None]:
    """Group dotted paths by first segment.

    A group is ``None`` when one of its paths ends at the first segment, in
    which case the whole value is kept and longer sibling paths are redundant.
    """
    groups: dict[str, list[str] | None] = {}
    for path in paths:
        head, _, rest = path.partition(".")
        if not rest:
            groups[head] = None
        elif head not in groups:
            groups[head] = [rest]
        elif groups[head] is not None:
            groups[head].append(rest)
    return groups


def project(obj: Any, paths: Iterable[str]) -> Any:
    """Return a new dict holding only the fields of ``obj`` selected by ``paths``.

    Non-structured values are returned unchanged. Paths sharing a prefix are
    merged, so ``["a.b", "a.c"]`` yields ``{"a": {"b": ..., "c": ...}}``.
    Requested fields that do not exist map to :data:`MISSING`.
    """
    kind = value_kind(obj)
    if kind is ValueKind.OPAQUE:
        return obj

    result: dict[str, Any] = {}
    for key, sub_paths in _group_paths(paths).items():
        value = _read(obj, kind, key)
        result[key] = value if sub_paths is None else project(value, sub_paths)
    return result


def flatten_fields(fields: Iterable[str | Iterable[str]]) -> tuple[str, ...]:
    """Accept ``("a", "b")`` or ``(["a", "b"],)`` and return a flat tuple of paths."""
    flat: list[str] = []
    for field in fields:
        if isinstance(field, str):
            flat.append(field)
        elif isinstance(field, Iterable):
            for item in field:
                if not isinstance(item, str):
                    raise TypeError(f"Field paths must be strings, got {type(item).__name__}.")
                flat.append(item)
        else:
            raise TypeError(f"Field paths must be strings, got {type(field).__name__}.")
    return tuple(flat)
