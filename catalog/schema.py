"""SQLAlchemy table definitions derived from the entity registry."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Engine

from catalog.entities import LONG_TEXT, EntityKind, Reference, get_kind, iter_kinds

metadata = MetaData()

RAW_DATA_COLUMN = "raw_data"


def relation_columns(root: EntityKind, ref: Reference) -> tuple[str, str]:
    """Return ``(root_column, sub_column)`` for the join table of ``ref``."""

    return f"{root.name}_id", f"{ref.kind}_id"


def _entity_table(kind: EntityKind) -> Table:
    columns: list[Column] = [
        Column("id", BigInteger, primary_key=True, autoincrement=False)
    ]
    declared = set()
    for spec in kind.fields:
        columns.append(
            Column(spec.column, spec.type, nullable=spec.column not in kind.required)
        )
        declared.add(spec.column)
    for ref in kind.single_references:
        target = get_kind(ref.kind)
        columns.append(
            Column(ref.column, BigInteger, ForeignKey(f"{target.table}.id"), nullable=True)
        )
    if kind.root:
        for ref in kind.relations:
            if ref.field not in declared:
                columns.append(Column(ref.field, JSON, nullable=True))
        columns.append(Column(RAW_DATA_COLUMN, LONG_TEXT, nullable=True))
    return Table(kind.table, metadata, *columns)


def _relation_table(root: EntityKind, ref: Reference) -> Table:
    target = get_kind(ref.kind)
    root_column, sub_column = relation_columns(root, ref)
    return Table(
        ref.relation,
        metadata,
        Column(
            root_column,
            BigInteger,
            ForeignKey(f"{root.table}.id", ondelete="CASCADE"),
            primary_key=True,
            autoincrement=False,
        ),
        Column(
            sub_column,
            BigInteger,
            ForeignKey(f"{target.table}.id"),
            primary_key=True,
            autoincrement=False,
        ),
    )


ENTITY_TABLES: dict[str, Table] = {}
RELATION_TABLES: dict[str, Table] = {}

# Referenced kinds first so ForeignKey targets already exist in ``metadata``.
for _kind in sorted(iter_kinds(), key=lambda kind: kind.root):
    ENTITY_TABLES[_kind.name] = _entity_table(_kind)

for _kind in iter_kinds():
    for _ref in _kind.relations:
        RELATION_TABLES[_ref.relation] = _relation_table(_kind, _ref)


platform_version_relations = Table(
    "platform_version_relations",
    metadata,
    Column(
        "platform_id",
        BigInteger,
        ForeignKey("platforms.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    ),
    Column(
        "platform_version_id",
        BigInteger,
        ForeignKey("platform_versions.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    ),
)

consoles = Table(
    "consoles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("photo", Text),
    Column("abbreviation", String(255)),
    Column("alternative_name", String(255)),
    Column("generation", Integer),
    Column("platform_family", String(255)),
    Column("platform_type", String(255)),
    Column("igdb_platform_id", BigInteger, ForeignKey("platforms.id"), nullable=False),
    Column(
        "igdb_platform_version_id",
        BigInteger,
        ForeignKey("platform_versions.id"),
        nullable=True,
    ),
    Column("created_at", DateTime(timezone=True)),
)

collection_entries = Table(
    "collection_entries",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("igdb_game_id", BigInteger, nullable=False, index=True),
    Column("console_id", Integer, ForeignKey("consoles.id"), nullable=True),
    Column("title", String(255), nullable=False),
    Column("alternative_names", JSON),
    Column("cover", Text),
    Column("screenshot", Text),
    Column("summary", Text),
    Column("genres", JSON),
    Column("franchises", JSON),
    Column("companies", JSON),
    Column("developers", JSON),
    Column("publishers", JSON),
    Column("platforms", JSON),
    Column("multiplayer_modes", JSON),
    Column("rating", Float),
    Column("release_year", Integer),
    Column("condition", String(32), nullable=False),
    Column("completeness", String(32), nullable=False),
    Column("region", String(32), nullable=False),
    Column("price", Float),
    Column("purchase_date", Date),
    Column("notes", Text),
    Column("label_damage", Boolean, nullable=False, default=False),
    Column("discoloration", Boolean, nullable=False, default=False),
    Column("rental_sticker", Boolean, nullable=False, default=False),
    Column("tested_working", Boolean, nullable=False, default=True),
    Column("reproduction", Boolean, nullable=False, default=False),
    Column("steelbook", Boolean, nullable=False, default=False),
    Column("photos", JSON),
    Column("location_id", String(64)),
    Column("created_at", DateTime(timezone=True)),
)


def entity_table(kind: str) -> Table:
    try:
        return ENTITY_TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown entity kind: {kind}") from None


def relation_table(name: str) -> Table:
    try:
        return RELATION_TABLES[name]
    except KeyError:
        raise ValueError(f"unknown relation table: {name}") from None


def create_schema(engine: Engine) -> None:
    """Create every catalog table that does not exist yet."""

    metadata.create_all(engine)


__all__ = [
    "ENTITY_TABLES",
    "RAW_DATA_COLUMN",
    "RELATION_TABLES",
    "collection_entries",
    "consoles",
    "create_schema",
    "entity_table",
    "metadata",
    "platform_version_relations",
    "relation_columns",
    "relation_table",
]
