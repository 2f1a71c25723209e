"""Parsing of nested IGDB references.

A nested value is either a bare id (``42``) or an expanded document
(``{"id": 42, "name": ...}``). A mapping carrying nothing but its id is
treated as a bare id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from helpers import coerce_igdb_id


@dataclass(frozen=True)
class ParsedReference:
    id: int
    body: Mapping[str, Any] | None = None

    @property
    def is_stub(self) -> bool:
        return self.body is None


def parse_reference(value: Any) -> ParsedReference | None:
    """Return the parsed reference, or ``None`` when no usable id is present."""

    if isinstance(value, Mapping):
        entity_id = coerce_igdb_id(value.get("id"))
        if entity_id is None:
            return None
        if set(value) <= {"id"}:
            return ParsedReference(entity_id)
        return ParsedReference(entity_id, value)
    if isinstance(value, (list, tuple, set)):
        return None
    entity_id = coerce_igdb_id(value)
    if entity_id is None:
        return None
    return ParsedReference(entity_id)


def iter_reference_values(value: Any) -> list[Any]:
    """Return the items of a many-valued reference field."""

    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


__all__ = ["ParsedReference", "iter_reference_values", "parse_reference"]
