"""Relational storage for normalized IGDB entities."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection
from sqlalchemy.sql.schema import Table

from catalog.entities import get_kind
from catalog.schema import (
    collection_entries,
    entity_table,
    platform_version_relations,
    relation_columns,
    relation_table,
)
from db.utils import DatabaseEngine

logger = logging.getLogger(__name__)


class CatalogStore:
    """Idempotent writes and simple reads over the catalog tables.

    Writes take an explicit connection so a caller can group them inside one
    transaction obtained from :meth:`transaction`.
    """

    def __init__(self, db: DatabaseEngine):
        self._db = db

    @property
    def db(self) -> DatabaseEngine:
        return self._db

    @property
    def dialect(self) -> str:
        return self._db.dialect

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        with self._db.transaction() as conn:
            yield conn

    def _insert(self, table: Table):
        name = self.dialect
        if name == "sqlite":
            return sqlite.insert(table)
        if name == "postgresql":
            return postgresql.insert(table)
        if name in {"mysql", "mariadb"}:
            return mysql.insert(table)
        raise NotImplementedError(f"upserts are not supported for dialect {name}")

    def _upsert(
        self,
        conn: Connection,
        table: Table,
        values: Mapping[str, Any],
        keys: tuple[str, ...],
    ) -> None:
        """Insert ``values`` or update the non-key columns it carries."""

        stmt = self._insert(table).values(**values)
        updates = [column for column in values if column not in keys]
        if self.dialect in {"mysql", "mariadb"}:
            if updates:
                stmt = stmt.on_duplicate_key_update(
                    {column: stmt.inserted[column] for column in updates}
                )
            else:
                stmt = stmt.prefix_with("IGNORE")
        elif updates:
            stmt = stmt.on_conflict_do_update(
                index_elements=list(keys),
                set_={column: stmt.excluded[column] for column in updates},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(keys))
        conn.execute(stmt)

    def upsert(
        self,
        conn: Connection,
        kind: str,
        entity_id: int,
        fields: Mapping[str, Any],
    ) -> None:
        """Write ``fields`` for ``kind``/``entity_id``; absent columns keep their value."""

        table = entity_table(kind)
        values = {"id": int(entity_id)}
        for column, value in fields.items():
            if column == "id":
                continue
            if column not in table.c:
                raise KeyError(f"{table.name} has no column {column}")
            values[column] = value
        self._upsert(conn, table, values, ("id",))

    def link(self, conn: Connection, relation: str, root_id: int, sub_id: int) -> None:
        """Insert a join row unless it already exists."""

        table = relation_table(relation)
        root_column, sub_column = (column.name for column in table.primary_key.columns)
        self._upsert(
            conn,
            table,
            {root_column: int(root_id), sub_column: int(sub_id)},
            (root_column, sub_column),
        )

    def link_platform_version(
        self, conn: Connection, platform_id: int, version_id: int
    ) -> None:
        self._upsert(
            conn,
            platform_version_relations,
            {"platform_id": int(platform_id), "platform_version_id": int(version_id)},
            ("platform_id", "platform_version_id"),
        )

    def get_row(self, kind: str, entity_id: int) -> dict[str, Any] | None:
        table = entity_table(kind)
        with self._db.sa_connection() as conn:
            row = conn.execute(
                select(table).where(table.c.id == int(entity_id))
            ).mappings().first()
        return dict(row) if row is not None else None

    def get_rows(self, kind: str, entity_ids: list[int]) -> list[dict[str, Any]]:
        """Return rows for ``entity_ids`` in the given order, skipping missing ids."""

        if not entity_ids:
            return []
        table = entity_table(kind)
        with self._db.sa_connection() as conn:
            rows = conn.execute(
                select(table).where(table.c.id.in_([int(i) for i in entity_ids]))
            ).mappings().all()
        by_id = {row["id"]: dict(row) for row in rows}
        return [by_id[int(i)] for i in entity_ids if int(i) in by_id]

    def required_values(self, kind: str, entity_id: int) -> dict[str, Any] | None:
        """Return the stored required columns, or ``None`` unless all are filled."""

        row = self.get_row(kind, entity_id)
        if row is None:
            return None
        values = {column: row.get(column) for column in get_kind(kind).required}
        if any(value in (None, "") for value in values.values()):
            return None
        return values

    def has_complete(self, kind: str, entity_id: int) -> bool:
        """Return ``True`` when the stored row satisfies every required column."""

        return self.required_values(kind, entity_id) is not None

    def related_ids(self, relation: str, root_id: int) -> list[int]:
        table = relation_table(relation)
        root_column, sub_column = (column.name for column in table.primary_key.columns)
        with self._db.sa_connection() as conn:
            result = conn.execute(
                select(table.c[sub_column])
                .where(table.c[root_column] == int(root_id))
                .order_by(table.c[sub_column])
            )
            return [int(value) for value in result.scalars()]

    def platform_version_ids(self, platform_id: int) -> list[int]:
        table = platform_version_relations
        with self._db.sa_connection() as conn:
            result = conn.execute(
                select(table.c.platform_version_id)
                .where(table.c.platform_id == int(platform_id))
                .order_by(table.c.platform_version_id)
            )
            return [int(value) for value in result.scalars()]

    def count(self, kind: str) -> int:
        table = entity_table(kind)
        with self._db.sa_connection() as conn:
            return int(conn.execute(select(func.count()).select_from(table)).scalar_one())

    def count_relation(self, relation: str) -> int:
        table = relation_table(relation)
        with self._db.sa_connection() as conn:
            return int(conn.execute(select(func.count()).select_from(table)).scalar_one())

    def delete_root(self, kind: str, entity_id: int) -> bool:
        """Delete a root row and its join rows; sub-entities are kept.

        Deleting a game also removes the collection entries made from it.
        """

        spec = get_kind(kind)
        if not spec.root:
            raise ValueError(f"{kind} is not an aggregate root")
        table = entity_table(kind)
        with self.transaction() as conn:
            for ref in spec.relations:
                join = relation_table(ref.relation)
                root_column, _ = relation_columns(spec, ref)
                conn.execute(delete(join).where(join.c[root_column] == int(entity_id)))
            if kind == "platform":
                conn.execute(
                    delete(platform_version_relations).where(
                        platform_version_relations.c.platform_id == int(entity_id)
                    )
                )
            elif kind == "platform_version":
                conn.execute(
                    delete(platform_version_relations).where(
                        platform_version_relations.c.platform_version_id == int(entity_id)
                    )
                )
            elif kind == "game":
                conn.execute(
                    delete(collection_entries).where(
                        collection_entries.c.igdb_game_id == int(entity_id)
                    )
                )
            result = conn.execute(delete(table).where(table.c.id == int(entity_id)))
        deleted = bool(result.rowcount)
        if deleted:
            logger.info("Deleted %s %s", kind, entity_id)
        return deleted


__all__ = ["CatalogStore"]
