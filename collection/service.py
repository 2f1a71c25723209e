"""User-owned collection entries snapshotted from the normalized catalog."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Mapping, Protocol

import pandas as pd
from sqlalchemy import delete, insert, select, update

from catalog.consoles import get_console
from catalog.normalizer import EntityNormalizer
from catalog.schema import collection_entries
from catalog.store import CatalogStore
from helpers import (
    _coerce_bool,
    _coerce_float,
    _dedupe_preserve_order,
    _release_year,
    coerce_igdb_id,
    has_text,
)
from igdb.client import cover_url_from_cover
from igdb.errors import NotFoundError

logger = logging.getLogger(__name__)

CONDITIONS = ("MINT", "NEAR_MINT", "VERY_GOOD", "GOOD", "FAIR", "POOR")
COMPLETENESS = ("CIB", "GAME_BOX", "GAME_MANUAL", "LOOSE")
REGIONS = ("REGION_FREE", "NTSC_U", "NTSC_J", "PAL")

DEFAULT_CONDITION = "GOOD"
DEFAULT_COMPLETENESS = "CIB"
DEFAULT_REGION = "REGION_FREE"

FLAG_DEFAULTS: dict[str, bool] = {
    "label_damage": False,
    "discoloration": False,
    "rental_sticker": False,
    "tested_working": True,
    "reproduction": False,
    "steelbook": False,
}


class ImageStore(Protocol):
    """Blob storage for user photos; returns a retrievable URL."""

    def store(self, blob: bytes, owner_id: str, entry_id: str) -> str:
        ...


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    if not has_text(value):
        return default
    text = str(value).strip().upper()
    return text if text in allowed else default


def _purchase_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not has_text(value):
        return None
    parsed = pd.to_datetime(str(value).strip(), errors="coerce")
    if pd.isna(parsed):
        logger.warning("Ignoring unparseable purchase date %r", value)
        return None
    return parsed.date()


def _photos(fields: Mapping[str, Any]) -> list[str]:
    photos: list[str] = []
    raw = fields.get("photos")
    if isinstance(raw, (list, tuple)):
        photos.extend(str(item).strip() for item in raw if has_text(item))
    if has_text(fields.get("photo")):
        photos.append(str(fields["photo"]).strip())
    return list(dict.fromkeys(photos))


def owner_values(fields: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return the owner-supplied columns of a collection entry with defaults applied."""

    fields = fields or {}
    values: dict[str, Any] = {
        "condition": _choice(fields.get("condition"), CONDITIONS, DEFAULT_CONDITION),
        "completeness": _choice(
            fields.get("completeness"), COMPLETENESS, DEFAULT_COMPLETENESS
        ),
        "region": _choice(fields.get("region"), REGIONS, DEFAULT_REGION),
        "price": _coerce_float(fields.get("price")),
        "purchase_date": _purchase_date(fields.get("purchase_date")),
        "notes": str(fields["notes"]).strip() if has_text(fields.get("notes")) else None,
        "photos": _photos(fields),
        "location_id": (
            str(fields["location_id"]).strip()
            if has_text(fields.get("location_id"))
            else None
        ),
        "console_id": coerce_igdb_id(fields.get("console_id")),
    }
    for flag, default in FLAG_DEFAULTS.items():
        values[flag] = _coerce_bool(fields.get(flag), default)
    return values


def multiplayer_label(mode: Mapping[str, Any]) -> str:
    """Return a human-readable summary of a multiplayer mode row."""

    labels = []
    if mode.get("offline_coop"):
        labels.append(f"Offline Co-op ({mode.get('offline_coop_max') or 'N/A'} players)")
    if mode.get("online_coop"):
        labels.append(f"Online Co-op ({mode.get('online_coop_max') or 'N/A'} players)")
    if mode.get("splitscreen"):
        labels.append("Splitscreen")
    if mode.get("campaign_coop"):
        labels.append("Campaign Co-op")
    return ", ".join(labels) if labels else "Multiplayer"


def preferred_rating(game: Mapping[str, Any]) -> float | None:
    for column in ("total_rating", "aggregated_rating", "rating"):
        value = _coerce_float(game.get(column))
        if value:
            return value
    return None


def _ids(value: Any) -> list[int]:
    if not isinstance(value, (list, tuple)):
        return []
    ids = []
    for item in value:
        entity_id = coerce_igdb_id(item)
        if entity_id is not None:
            ids.append(entity_id)
    return ids


class CollectionMaterializer:
    """Copy display fields of a stored game into a new collection entry.

    Entries are snapshots: later catalog syncs never touch them, and
    materializing the same game twice creates two entries.
    """

    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    def _names(self, kind: str, ids: list[int]) -> list[str]:
        return _dedupe_preserve_order(
            row.get("name") for row in self._store.get_rows(kind, ids)
        )

    def display_fields(self, game: Mapping[str, Any]) -> dict[str, Any]:
        """Return the catalog-derived columns for ``game``."""

        store = self._store
        cover = None
        if game.get("cover_id") is not None:
            cover = store.get_row("cover", game["cover_id"])
        screenshots = store.get_rows("screenshot", _ids(game.get("screenshots")))

        involved = store.get_rows("involved_company", _ids(game.get("involved_companies")))
        company_ids = [row["company_id"] for row in involved if row.get("company_id")]
        company_names = {
            row["id"]: row.get("name") for row in store.get_rows("company", company_ids)
        }

        def _company_names(flag: str | None) -> list[str]:
            return _dedupe_preserve_order(
                company_names.get(row.get("company_id"))
                for row in involved
                if flag is None or row.get(flag)
            )

        modes = store.get_rows("multiplayer_mode", _ids(game.get("multiplayer_modes")))

        return {
            "title": game.get("name"),
            "alternative_names": self._names(
                "alternative_name", _ids(game.get("alternative_names"))
            ),
            "cover": cover_url_from_cover(cover, "t_cover_big") or None,
            "screenshot": (
                cover_url_from_cover(screenshots[0], "t_screenshot_med") or None
                if screenshots
                else None
            ),
            "summary": game.get("summary"),
            "genres": self._names("genre", _ids(game.get("genres"))),
            "franchises": self._names("franchise", _ids(game.get("franchises"))),
            "companies": _company_names(None),
            "developers": _company_names("developer"),
            "publishers": _company_names("publisher"),
            "platforms": _ids(game.get("platforms")),
            "rating": preferred_rating(game),
            "multiplayer_modes": [multiplayer_label(mode) for mode in modes],
            "release_year": _release_year(game.get("first_release_date")),
        }

    def materialize(
        self,
        actor_id: str,
        game_id: int,
        owner_fields: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create and return a collection entry for ``actor_id``."""

        if not has_text(actor_id):
            raise ValueError("actor id is required")
        game = self._store.get_row("game", game_id)
        if game is None:
            raise NotFoundError("game", game_id)

        values = {
            "id": str(uuid.uuid4()),
            "user_id": str(actor_id).strip(),
            "igdb_game_id": int(game["id"]),
            **self.display_fields(game),
            **owner_values(owner_fields),
            "created_at": datetime.now(timezone.utc),
        }
        with self._store.transaction() as conn:
            conn.execute(insert(collection_entries).values(**values))
        logger.info(
            "Added game %s to collection of %s as entry %s",
            game_id,
            values["user_id"],
            values["id"],
        )
        return get_entry(self._store, values["id"])


def get_entry(store: CatalogStore, entry_id: str) -> dict[str, Any] | None:
    with store.db.sa_connection() as conn:
        row = conn.execute(
            select(collection_entries).where(collection_entries.c.id == str(entry_id))
        ).mappings().first()
    return dict(row) if row is not None else None


def list_entries(store: CatalogStore, actor_id: str) -> list[dict[str, Any]]:
    with store.db.sa_connection() as conn:
        rows = conn.execute(
            select(collection_entries)
            .where(collection_entries.c.user_id == str(actor_id))
            .order_by(collection_entries.c.created_at, collection_entries.c.id)
        ).mappings().all()
    return [dict(row) for row in rows]


def add_game_to_collection(
    actor_id: str,
    game_id: Any,
    console_id: Any,
    owner_fields: Mapping[str, Any] | None = None,
    *,
    normalizer: EntityNormalizer,
    materializer: CollectionMaterializer,
) -> dict[str, Any]:
    """Fetch and normalize ``game_id`` then snapshot it into the actor's collection."""

    igdb_id = coerce_igdb_id(game_id)
    if igdb_id is None:
        raise ValueError("a valid IGDB game id is required")
    local_console = coerce_igdb_id(console_id)
    if local_console is None:
        raise ValueError("a valid console id is required")
    if get_console(normalizer.store, local_console) is None:
        raise NotFoundError("console", local_console)

    result = normalizer.sync("game", igdb_id)
    fields = dict(owner_fields or {})
    fields["console_id"] = local_console
    return materializer.materialize(actor_id, result.id, fields)


def remove_entry(store: CatalogStore, actor_id: str, entry_id: str) -> bool:
    """Delete ``entry_id`` when it belongs to ``actor_id``; nothing else is touched."""

    with store.transaction() as conn:
        result = conn.execute(
            delete(collection_entries).where(
                collection_entries.c.id == str(entry_id),
                collection_entries.c.user_id == str(actor_id),
            )
        )
    removed = bool(result.rowcount)
    if removed:
        logger.info("Removed collection entry %s for %s", entry_id, actor_id)
    return removed


def add_photo(
    store: CatalogStore,
    image_store: ImageStore,
    actor_id: str,
    entry_id: str,
    blob: bytes,
) -> dict[str, Any]:
    """Upload ``blob`` through ``image_store`` and append its URL to the entry."""

    entry = get_entry(store, entry_id)
    if entry is None or entry["user_id"] != str(actor_id):
        raise NotFoundError("collection entry", entry_id)
    if not blob:
        raise ValueError("photo is empty")
    url = image_store.store(blob, str(actor_id), str(entry_id))
    photos = list(entry.get("photos") or [])
    photos.append(url)
    with store.transaction() as conn:
        conn.execute(
            update(collection_entries)
            .where(collection_entries.c.id == str(entry_id))
            .values(photos=photos)
        )
    entry["photos"] = photos
    return entry


__all__ = [
    "COMPLETENESS",
    "CONDITIONS",
    "CollectionMaterializer",
    "ImageStore",
    "REGIONS",
    "add_game_to_collection",
    "add_photo",
    "get_entry",
    "list_entries",
    "multiplayer_label",
    "owner_values",
    "preferred_rating",
    "remove_entry",
]
