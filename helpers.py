"""General-purpose helper utilities shared across the application."""

from __future__ import annotations

import numbers
from datetime import datetime, timezone
from typing import Any, Iterable

import pandas as pd


__all__ = [
    "_coerce_bool",
    "_coerce_float",
    "_dedupe_preserve_order",
    "_normalize_lookup_name",
    "_release_year",
    "coerce_igdb_id",
    "has_text",
]


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def has_text(value: Any) -> bool:
    """Return ``True`` when ``value`` contains non-empty text."""

    if _is_missing(value):
        return False
    text = value.strip() if isinstance(value, str) else str(value).strip()
    if not text:
        return False
    return text.lower() != "nan"


def coerce_igdb_id(value: Any) -> int | None:
    """Normalize a potential IGDB identifier to a positive integer.

    Accepts integers, integral floats (as produced by spreadsheet imports) and
    numeric strings such as ``"42"`` or ``"42.0"``. Booleans, blanks, ``NaN``
    and non-positive values yield ``None``.
    """

    if isinstance(value, bool) or _is_missing(value):
        return None
    if isinstance(value, numbers.Integral):
        numeric = int(value)
    elif isinstance(value, numbers.Real):
        if not float(value).is_integer():
            return None
        numeric = int(value)
    else:
        text = str(value).strip()
        if not text or text.lower() == "nan":
            return None
        if text.endswith(".0") and text[:-2].isdigit():
            text = text[:-2]
        if not text.isdigit():
            return None
        numeric = int(text)
    return numeric if numeric > 0 else None


def _coerce_float(value: Any) -> float | None:
    if isinstance(value, bool) or _is_missing(value) or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if not text:
            return default
        return text in {"1", "true", "yes", "on"}
    return bool(value)


def _dedupe_preserve_order(values: Iterable[Any]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        text = _normalize_lookup_name(value)
        if not text:
            continue
        key = text.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append(text)
    return result


def _normalize_lookup_name(value: Any) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _release_year(value: Any) -> int | None:
    """Return the UTC year for an IGDB unix timestamp."""

    timestamp = _coerce_float(value)
    if timestamp is None or timestamp <= 0:
        return None
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).year
    except (OverflowError, OSError, ValueError):
        return None
