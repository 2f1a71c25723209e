"""Registry of IGDB entity kinds and their column mappings.

Every kind is declared once: the IGDB endpoint it is fetched from, the columns
copied out of its documents, the nested references it owns and which of its
columns are mandatory. The schema, the query builder and the normalizer all
derive their behaviour from these declarations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy import JSON, BigInteger, Boolean, Float, Integer, String, Text
from sqlalchemy.dialects.mysql import LONGTEXT
from sqlalchemy.types import TypeEngine

NAME = String(255)
TEXT = Text()
LONG_TEXT = Text().with_variant(LONGTEXT(), "mysql", "mariadb")
INT = Integer()
BIG = BigInteger()
FLOAT = Float()
BOOL = Boolean()
IDS = JSON()


def _reference_id(value: Any) -> Any:
    if isinstance(value, Mapping):
        return value.get("id")
    return value


@dataclass(frozen=True)
class Field:
    """A column copied from the IGDB document key ``source`` (or ``column``)."""

    column: str
    type: TypeEngine = TEXT
    source: str | None = None

    @property
    def key(self) -> str:
        return self.source or self.column

    def coerce(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(self.type, JSON):
            if isinstance(value, (list, tuple)):
                return [_reference_id(item) for item in value]
            return value
        value = _reference_id(value)
        if isinstance(self.type, Boolean):
            return bool(value)
        if isinstance(value, (list, tuple, dict)):
            return None
        return value


@dataclass(frozen=True)
class Reference:
    """A nested sub-entity reachable through ``field`` of the parent document.

    Single references are stored in ``column`` on the parent row. Many-valued
    references on aggregate roots are linked through the ``relation`` join
    table and mirrored as an id array in a JSON column named after ``field``.
    """

    field: str
    kind: str
    many: bool = False
    column: str | None = None
    relation: str | None = None


def map_declared(fields: Iterable[Field], body: Mapping[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for spec in fields:
        if spec.key in body:
            row[spec.column] = spec.coerce(body[spec.key])
    return row


@dataclass(frozen=True)
class EntityKind:
    name: str
    table: str
    endpoint: str
    fields: tuple[Field, ...]
    references: tuple[Reference, ...] = ()
    required: tuple[str, ...] = ()
    root: bool = False
    mapper: Callable[[Mapping[str, Any], dict[str, Any]], dict[str, Any]] | None = None

    def map_fields(self, body: Mapping[str, Any]) -> dict[str, Any]:
        """Return the columns present in ``body``; absent keys are left out."""

        row = map_declared(self.fields, body)
        if self.mapper is not None:
            row = self.mapper(body, row)
        return row

    def is_complete(self, body: Mapping[str, Any] | None) -> bool:
        """Return ``True`` when ``body`` satisfies every required column."""

        if not self.required:
            return True
        if not body:
            return False
        mapped = self.map_fields(body)
        return all(mapped.get(column) not in (None, "") for column in self.required)

    @property
    def relations(self) -> tuple[Reference, ...]:
        return tuple(ref for ref in self.references if ref.many)

    @property
    def single_references(self) -> tuple[Reference, ...]:
        return tuple(ref for ref in self.references if not ref.many)


KINDS: dict[str, EntityKind] = {}


def register(kind: EntityKind) -> EntityKind:
    """Add ``kind`` to the registry, filling in derived relation names."""

    if kind.name in KINDS:
        raise ValueError(f"entity kind already registered: {kind.name}")
    references = []
    for ref in kind.references:
        if ref.many and ref.relation is None:
            ref = Reference(
                field=ref.field,
                kind=ref.kind,
                many=True,
                relation=f"{kind.name}_{ref.kind}_relations",
            )
        elif not ref.many and ref.column is None:
            ref = Reference(
                field=ref.field,
                kind=ref.kind,
                column=f"{ref.field}_id",
            )
        references.append(ref)
    kind = EntityKind(
        name=kind.name,
        table=kind.table,
        endpoint=kind.endpoint,
        fields=kind.fields,
        references=tuple(references),
        required=kind.required,
        root=kind.root,
        mapper=kind.mapper,
    )
    KINDS[kind.name] = kind
    return kind


def get_kind(name: str) -> EntityKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"unknown entity kind: {name}") from None


def iter_kinds() -> Iterable[EntityKind]:
    return KINDS.values()


def dependency_order(root: str) -> tuple[str, ...]:
    """Return the kinds reachable from ``root``, dependencies before dependents."""

    ordered: list[str] = []
    visiting: set[str] = set()

    def visit(name: str) -> None:
        if name in ordered:
            return
        if name in visiting:
            raise ValueError(f"reference cycle through entity kind {name}")
        visiting.add(name)
        for ref in get_kind(name).references:
            visit(ref.kind)
        visiting.discard(name)
        ordered.append(name)

    visit(root)
    return tuple(ordered)


IMAGE_FIELDS = (
    Field("alpha_channel", BOOL),
    Field("animated", BOOL),
    Field("checksum", NAME),
    Field("height", INT),
    Field("image_id", NAME),
    Field("url", TEXT),
    Field("width", INT),
)

TAXONOMY_FIELDS = (
    Field("name", NAME),
    Field("slug", NAME),
    Field("url", TEXT),
    Field("checksum", NAME),
    Field("created_at", BIG),
    Field("updated_at", BIG),
)

TIMESTAMPS = (Field("created_at", BIG), Field("updated_at", BIG))


def _image(name: str, table: str, endpoint: str) -> EntityKind:
    return EntityKind(name, table, endpoint, IMAGE_FIELDS)


def _taxonomy(name: str, table: str, endpoint: str, *extra: Field) -> EntityKind:
    return EntityKind(
        name, table, endpoint, TAXONOMY_FIELDS + tuple(extra), required=("name",)
    )


for _kind in (
    _image("cover", "covers", "covers"),
    _image("screenshot", "screenshots", "screenshots"),
    _image("artwork", "artworks", "artworks"),
    _image("platform_logo", "platform_logos", "platform_logos"),
    _image("company_logo", "company_logos", "company_logos"),
    _taxonomy("genre", "genres", "genres"),
    _taxonomy("theme", "themes", "themes"),
    _taxonomy("keyword", "keywords", "keywords"),
    _taxonomy("franchise", "franchises", "franchises"),
    _taxonomy("collection", "collections", "collections"),
    _taxonomy("game_mode", "game_modes", "game_modes"),
    _taxonomy("player_perspective", "player_perspectives", "player_perspectives"),
    _taxonomy(
        "game_engine",
        "game_engines",
        "game_engines",
        Field("description", TEXT),
        Field("companies", IDS),
        Field("platforms", IDS),
    ),
    EntityKind(
        "platform_family",
        "platform_families",
        "platform_families",
        (Field("name", NAME), Field("slug", NAME), Field("checksum", NAME)),
        required=("name",),
    ),
    EntityKind(
        "platform_type",
        "platform_types",
        "platform_types",
        (Field("name", NAME), Field("checksum", NAME)) + TIMESTAMPS,
        required=("name",),
    ),
):
    register(_kind)


register(
    EntityKind(
        "company",
        "companies",
        "companies",
        TAXONOMY_FIELDS
        + (
            Field("description", TEXT),
            Field("country", INT),
            Field("start_date", BIG),
            Field("start_date_format_id", INT, source="start_date_format"),
            Field("change_date", BIG),
            Field("change_date_format_id", INT, source="change_date_format"),
            Field("changed_company_id", BIG),
            Field("parent_id", BIG, source="parent"),
            Field("status_id", INT, source="status"),
        ),
        references=(Reference("logo", "company_logo"),),
        required=("name",),
    )
)

register(
    EntityKind(
        "involved_company",
        "involved_companies",
        "involved_companies",
        (
            Field("developer", BOOL),
            Field("publisher", BOOL),
            Field("porting", BOOL),
            Field("supporting", BOOL),
            Field("game_id", BIG, source="game"),
            Field("checksum", NAME),
        )
        + TIMESTAMPS,
        references=(Reference("company", "company"),),
    )
)

register(
    EntityKind(
        "multiplayer_mode",
        "multiplayer_modes",
        "multiplayer_modes",
        (
            Field("campaign_coop", BOOL, source="campaigncoop"),
            Field("dropin", BOOL),
            Field("lan_coop", BOOL, source="lancoop"),
            Field("offline_coop", BOOL, source="offlinecoop"),
            Field("offline_coop_max", INT, source="offlinecoopmax"),
            Field("offline_max", INT, source="offlinemax"),
            Field("online_coop", BOOL, source="onlinecoop"),
            Field("online_coop_max", INT, source="onlinecoopmax"),
            Field("online_max", INT, source="onlinemax"),
            Field("splitscreen", BOOL),
            Field("splitscreen_online", BOOL, source="splitscreenonline"),
            Field("platform_id", BIG, source="platform"),
            Field("game_id", BIG, source="game"),
            Field("checksum", NAME),
        ),
    )
)

def _age_rating_fields(body: Mapping[str, Any], row: dict[str, Any]) -> dict[str, Any]:
    # Older documents only carry the deprecated numeric `rating`.
    if row.get("rating_category") is None and row.get("rating") is not None:
        row["rating_category"] = row["rating"]
    return row


def _game_fields(body: Mapping[str, Any], row: dict[str, Any]) -> dict[str, Any]:
    if row.get("game_type") is None and row.get("category") is not None:
        row["game_type"] = row["category"]
    return row


_DATE_FIELDS = (
    Field("date", BIG),
    Field("human", NAME),
    Field("m", INT),
    Field("y", INT),
    Field("region", INT),
    Field("release_region", INT),
    Field("status_id", INT, source="status"),
    Field("checksum", NAME),
) + TIMESTAMPS

register(
    EntityKind(
        "release_date",
        "release_dates",
        "release_dates",
        _DATE_FIELDS
        + (
            Field("platform_id", BIG, source="platform"),
            Field("game_id", BIG, source="game"),
        ),
    )
)

register(
    EntityKind(
        "platform_version_release_date",
        "platform_version_release_dates",
        "platform_version_release_dates",
        _DATE_FIELDS + (Field("platform_version_id", BIG, source="platform_version"),),
    )
)

register(
    EntityKind(
        "age_rating",
        "age_ratings",
        "age_ratings",
        (
            Field("organization", INT),
            Field("rating_category", INT),
            Field("rating", INT),
            Field("content_descriptions", IDS),
            Field("rating_content_descriptions", IDS),
            Field("rating_cover_url", TEXT),
            Field("synopsis", TEXT),
            Field("checksum", NAME),
        ),
        mapper=_age_rating_fields,
    )
)

_LINK_FIELDS = (
    Field("url", TEXT),
    Field("trusted", BOOL),
    Field("category", INT),
    Field("type_id", INT, source="type"),
    Field("checksum", NAME),
)

register(
    EntityKind(
        "website",
        "websites",
        "websites",
        _LINK_FIELDS + (Field("game_id", BIG, source="game"),),
    )
)

register(EntityKind("platform_website", "platform_websites", "platform_websites", _LINK_FIELDS))

register(
    EntityKind(
        "external_game",
        "external_games",
        "external_games",
        (
            Field("uid", NAME),
            Field("name", NAME),
            Field("url", TEXT),
            Field("category", INT),
            Field("external_game_source", INT),
            Field("media", INT),
            Field("platform_id", BIG, source="platform"),
            Field("year", INT),
            Field("countries", IDS),
            Field("game_id", BIG, source="game"),
            Field("checksum", NAME),
        )
        + TIMESTAMPS,
    )
)

register(
    EntityKind(
        "game_video",
        "game_videos",
        "game_videos",
        (
            Field("name", NAME),
            Field("video_id", NAME),
            Field("game_id", BIG, source="game"),
            Field("checksum", NAME),
        ),
    )
)

register(
    EntityKind(
        "language_support",
        "language_supports",
        "language_supports",
        (
            Field("language_id", INT, source="language"),
            Field("language_support_type_id", INT, source="language_support_type"),
            Field("game_id", BIG, source="game"),
            Field("checksum", NAME),
        )
        + TIMESTAMPS,
    )
)

register(
    EntityKind(
        "alternative_name",
        "alternative_names",
        "alternative_names",
        (
            Field("name", NAME),
            Field("comment", TEXT),
            Field("game_id", BIG, source="game"),
            Field("checksum", NAME),
        ),
    )
)

register(
    EntityKind(
        "platform_version_company",
        "platform_version_companies",
        "platform_version_companies",
        (
            Field("comment", TEXT),
            Field("developer", BOOL),
            Field("manufacturer", BOOL),
            Field("checksum", NAME),
        ),
        references=(Reference("company", "company"),),
    )
)

register(
    EntityKind(
        "game",
        "games",
        "games",
        (
            Field("name", NAME),
            Field("slug", NAME),
            Field("url", TEXT),
            Field("summary", TEXT),
            Field("storyline", TEXT),
            Field("checksum", NAME),
            Field("first_release_date", BIG),
            Field("rating", FLOAT),
            Field("rating_count", INT),
            Field("aggregated_rating", FLOAT),
            Field("aggregated_rating_count", INT),
            Field("total_rating", FLOAT),
            Field("total_rating_count", INT),
            Field("game_type", INT),
            Field("category", INT),
            Field("version_title", NAME),
            Field("franchise_id", BIG, source="franchise"),
            Field("parent_game_id", BIG, source="parent_game"),
            Field("version_parent_id", BIG, source="version_parent"),
            Field("platforms", IDS),
            Field("remakes", IDS),
            Field("remasters", IDS),
            Field("dlcs", IDS),
            Field("expansions", IDS),
            Field("similar_games", IDS),
        )
        + TIMESTAMPS,
        references=(
            Reference("cover", "cover"),
            Reference("screenshots", "screenshot", many=True),
            Reference("artworks", "artwork", many=True),
            Reference("genres", "genre", many=True),
            Reference("themes", "theme", many=True),
            Reference("keywords", "keyword", many=True),
            Reference("franchises", "franchise", many=True),
            Reference("collections", "collection", many=True),
            Reference("game_modes", "game_mode", many=True),
            Reference("player_perspectives", "player_perspective", many=True),
            Reference("game_engines", "game_engine", many=True),
            Reference("involved_companies", "involved_company", many=True),
            Reference("multiplayer_modes", "multiplayer_mode", many=True),
            Reference("release_dates", "release_date", many=True),
            Reference("age_ratings", "age_rating", many=True),
            Reference("websites", "website", many=True),
            Reference("videos", "game_video", many=True),
            Reference("external_games", "external_game", many=True),
            Reference("language_supports", "language_support", many=True),
            Reference("alternative_names", "alternative_name", many=True),
        ),
        required=("name",),
        root=True,
        mapper=_game_fields,
    )
)

register(
    EntityKind(
        "platform",
        "platforms",
        "platforms",
        (
            Field("name", NAME),
            Field("abbreviation", NAME),
            Field("alternative_name", NAME),
            Field("slug", NAME),
            Field("url", TEXT),
            Field("summary", TEXT),
            Field("checksum", NAME),
            Field("generation", INT),
            Field("category", INT),
            Field("versions", IDS),
        )
        + TIMESTAMPS,
        references=(
            Reference("platform_logo", "platform_logo"),
            Reference("platform_family", "platform_family"),
            Reference("platform_type", "platform_type"),
            Reference(
                "websites",
                "platform_website",
                many=True,
                relation="platform_website_relations",
            ),
        ),
        required=("name",),
        root=True,
    )
)

register(
    EntityKind(
        "platform_version",
        "platform_versions",
        "platform_versions",
        (
            Field("name", NAME),
            Field("slug", NAME),
            Field("url", TEXT),
            Field("summary", TEXT),
            Field("checksum", NAME),
            Field("connectivity", TEXT),
            Field("cpu", TEXT),
            Field("graphics", TEXT),
            Field("media", TEXT),
            Field("memory", TEXT),
            Field("os", TEXT),
            Field("output", TEXT),
            Field("resolutions", TEXT),
            Field("sound", TEXT),
            Field("storage", TEXT),
        ),
        references=(
            Reference("platform_logo", "platform_logo"),
            Reference("main_manufacturer", "platform_version_company"),
            Reference(
                "companies",
                "platform_version_company",
                many=True,
                relation="platform_version_company_relations",
            ),
            Reference(
                "platform_version_release_dates",
                "platform_version_release_date",
                many=True,
                relation="platform_version_release_date_relations",
            ),
        ),
        required=("name",),
        root=True,
    )
)


ROOT_KINDS: tuple[str, ...] = tuple(kind.name for kind in KINDS.values() if kind.root)


__all__ = [
    "EntityKind",
    "Field",
    "KINDS",
    "ROOT_KINDS",
    "Reference",
    "dependency_order",
    "get_kind",
    "iter_kinds",
    "register",
]
