"""Field selections and query assembly for IGDB endpoints.

Every request issued by the catalog client takes its field list from here, so
a kind nested inside another document is expanded exactly as it would be when
fetched on its own.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable

from catalog.entities import get_kind

DEFAULT_LIMIT = 20
MAX_LIMIT = 500


def _expansions(kind: str, prefix: str = "") -> list[str]:
    fields = [f"{prefix}*"]
    for ref in get_kind(kind).references:
        fields.extend(_expansions(ref.kind, f"{prefix}{ref.field}."))
    return fields


@lru_cache(maxsize=None)
def field_list(kind: str) -> tuple[str, ...]:
    """Return the selection for ``kind``: ``*`` plus every nested reference."""

    return tuple(_expansions(kind))


def fields_for(kind: str) -> str:
    return ", ".join(field_list(kind))


def where_id(entity_id: Any) -> str:
    return f"where id = {int(entity_id)}"


def where_ids(entity_ids: Iterable[Any]) -> str:
    ids = ", ".join(str(int(value)) for value in entity_ids)
    if not ids:
        raise ValueError("where_ids requires at least one id")
    return f"where id = ({ids})"


def quote(term: str) -> str:
    """Return ``term`` as an IGDB string literal."""

    escaped = str(term).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def search_clause(term: str) -> str:
    return f"search {quote(term.strip())}"


def contains_clause(column: str, term: str) -> str:
    """Return a case-insensitive substring match such as ``name ~ *"zelda"*``."""

    return f"{column} ~ *{quote(term.strip())}*"


def _clamp_limit(limit: Any) -> int:
    try:
        size = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if size <= 0:
        return DEFAULT_LIMIT
    return min(size, MAX_LIMIT)


def build_query(kind: str, where: str | None = None, limit: Any = DEFAULT_LIMIT) -> str:
    """Assemble ``fields …; <where>; limit n;`` for ``kind``."""

    parts = [f"fields {fields_for(kind)};"]
    clause = (where or "").strip().rstrip(";").strip()
    if clause:
        parts.append(f"{clause};")
    parts.append(f"limit {_clamp_limit(limit)};")
    return " ".join(parts)


__all__ = [
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "build_query",
    "contains_clause",
    "field_list",
    "fields_for",
    "quote",
    "search_clause",
    "where_id",
    "where_ids",
]
