"""Local console records backed by normalized IGDB platforms."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import insert, select

from catalog.normalizer import EntityNormalizer
from catalog.schema import consoles
from catalog.store import CatalogStore
from helpers import coerce_igdb_id, has_text
from igdb.client import IGDBClient, cover_url_from_cover
from igdb.errors import NotFoundError

logger = logging.getLogger(__name__)


def _nested_name(value: Any) -> str | None:
    if isinstance(value, Mapping) and has_text(value.get("name")):
        return str(value["name"]).strip()
    return None


def _text_or(data: Mapping[str, Any], key: str, fallback: Any) -> str | None:
    value = data.get(key)
    if has_text(value):
        return str(value).strip()
    if has_text(fallback):
        return str(fallback).strip()
    return None


def _resolve_platform(
    data: Mapping[str, Any], name: str, client: IGDBClient
) -> Mapping[str, Any]:
    platform = data.get("platform")
    if isinstance(platform, Mapping):
        return platform
    platform_id = coerce_igdb_id(data.get("igdb_platform_id") or platform)
    if platform_id is not None:
        document = client.get_platform(platform_id)
        if document is None:
            raise NotFoundError("platform", platform_id)
        return document
    matches = client.search_platforms(name)
    if not matches:
        raise NotFoundError("platform", name)
    logger.info("Matched console %r to IGDB platform %s", name, matches[0].get("id"))
    return matches[0]


def _resolve_version(
    data: Mapping[str, Any], name: str, client: IGDBClient, *, search: bool
) -> Mapping[str, Any] | None:
    version = data.get("platform_version")
    if isinstance(version, Mapping):
        return version
    version_id = coerce_igdb_id(data.get("igdb_platform_version_id") or version)
    if version_id is not None:
        document = client.get_platform_version(version_id)
        if document is None:
            raise NotFoundError("platform_version", version_id)
        return document
    if not search:
        return None
    matches = client.search_platform_versions(name)
    return matches[0] if matches else None


def create_console_with_igdb_data(
    data: Mapping[str, Any],
    *,
    client: IGDBClient,
    normalizer: EntityNormalizer,
    search_versions: bool = False,
) -> dict[str, Any]:
    """Normalize the console's IGDB platform (and version) and create the console.

    ``data`` may carry pre-selected ``platform`` / ``platform_version`` documents
    or their ids. Without them the platform is looked up by ``name``.
    """

    name = str(data.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")

    platform = _resolve_platform(data, name, client)
    version = _resolve_version(data, name, client, search=search_versions)

    platform_id = normalizer.normalize_platform(platform).id
    version_id = None
    if version is not None:
        version_id = normalizer.normalize_platform_version(version).id

    store = normalizer.store
    photo = data.get("photo")
    if not has_text(photo):
        logo = platform.get("platform_logo")
        if not isinstance(logo, Mapping):
            logo_id = coerce_igdb_id(logo)
            logo = client.get_platform_logo(logo_id) if logo_id is not None else None
        photo = cover_url_from_cover(logo, "t_logo_med") or None

    values = {
        "name": name,
        "photo": photo,
        "abbreviation": _text_or(data, "abbreviation", platform.get("abbreviation")),
        "alternative_name": _text_or(
            data, "alternative_name", platform.get("alternative_name")
        ),
        "generation": coerce_igdb_id(data.get("generation"))
        or coerce_igdb_id(platform.get("generation")),
        "platform_family": _text_or(
            data, "platform_family", _nested_name(platform.get("platform_family"))
        ),
        "platform_type": _text_or(
            data, "platform_type", _nested_name(platform.get("platform_type"))
        ),
        "igdb_platform_id": platform_id,
        "igdb_platform_version_id": version_id,
        "created_at": datetime.now(timezone.utc),
    }

    with store.transaction() as conn:
        if version_id is not None:
            store.link_platform_version(conn, platform_id, version_id)
        result = conn.execute(insert(consoles).values(**values))
        console_id = result.inserted_primary_key[0]
        row = conn.execute(select(consoles).where(consoles.c.id == console_id)).mappings().one()

    logger.info("Created console %s (%s) for platform %s", console_id, name, platform_id)
    return dict(row)


def get_console(store: CatalogStore, console_id: int) -> dict[str, Any] | None:
    with store.db.sa_connection() as conn:
        row = conn.execute(
            select(consoles).where(consoles.c.id == int(console_id))
        ).mappings().first()
    return dict(row) if row is not None else None


__all__ = ["create_console_with_igdb_data", "get_console"]
