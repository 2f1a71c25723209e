#!/usr/bin/env python3
"""Normalize every IGDB id listed in a spreadsheet into the catalog database."""

from pathlib import Path
from typing import Any, Iterable
import logging
import sys

import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from catalog.entities import ROOT_KINDS
from catalog.normalizer import EntityNormalizer
from helpers import coerce_igdb_id
from igdb.errors import AuthError, CatalogError

logger = logging.getLogger(__name__)


def _normalize_column_name(name: Any) -> str:
    return "".join(ch.lower() for ch in str(name) if ch.isalnum())


def _id_column(frame: pd.DataFrame) -> Any:
    for column in frame.columns:
        normalized = _normalize_column_name(column)
        if "igdb" in normalized and "id" in normalized:
            return column
    for column in frame.columns:
        if _normalize_column_name(column) == "id":
            return column
    raise ValueError("no IGDB id column found (expected 'igdb_id' or 'id')")


def read_source_ids(path: str | Path) -> list[int]:
    """Return the distinct IGDB ids listed in an ``.xlsx`` or ``.csv`` file."""

    source = Path(path)
    if source.suffix.lower() in {".xlsx", ".xls"}:
        frame = pd.read_excel(source, dtype=str)
    else:
        frame = pd.read_csv(source, dtype=str)
    if frame.empty:
        return []
    column = _id_column(frame)
    ids: list[int] = []
    seen: set[int] = set()
    for value in frame[column]:
        igdb_id = coerce_igdb_id(value)
        if igdb_id is None:
            if isinstance(value, str) and value.strip():
                logger.warning("Skipping invalid IGDB id %r", value)
            continue
        if igdb_id in seen:
            continue
        seen.add(igdb_id)
        ids.append(igdb_id)
    return ids


def sync_ids(
    normalizer: EntityNormalizer, ids: Iterable[int], kind: str = "game"
) -> dict[str, Any]:
    """Fetch and normalize each id; failures of single ids are collected."""

    if kind not in ROOT_KINDS:
        raise ValueError(f"{kind} is not an aggregate root")
    synced: list[int] = []
    failed: dict[int, str] = {}
    skipped_refs = 0
    for igdb_id in ids:
        try:
            result = normalizer.sync(kind, igdb_id)
        except AuthError:
            raise
        except CatalogError as exc:
            logger.error("Failed to sync %s %s: %s", kind, igdb_id, exc)
            failed[igdb_id] = str(exc)
            continue
        synced.append(result.id)
        skipped_refs += len(result.skipped)
    return {"synced": synced, "failed": failed, "skipped_references": skipped_refs}


def main() -> None:
    if len(sys.argv) < 2:
        print("usage: sync_catalog.py IDS_FILE [game|platform|platform_version]")
        raise SystemExit(2)
    kind = sys.argv[2] if len(sys.argv) > 2 else "game"

    from app import services

    ids = read_source_ids(sys.argv[1])
    if not ids:
        print("No IGDB ids found; nothing to sync.")
        return

    try:
        summary = sync_ids(services["normalizer"], ids, kind)
    except AuthError as exc:
        print(f"IGDB authentication failed: {exc}")
        raise SystemExit(1)

    print(
        "Synced {synced} of {total} {kind} ids ({failed} failed, "
        "{skipped} nested references skipped).".format(
            synced=len(summary["synced"]),
            total=len(ids),
            kind=kind,
            failed=len(summary["failed"]),
            skipped=summary["skipped_references"],
        )
    )
    for igdb_id, reason in summary["failed"].items():
        print(f"  {igdb_id}: {reason}")


if __name__ == "__main__":  # pragma: no cover - manual execution path
    main()
