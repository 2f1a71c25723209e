"""Decomposition of IGDB documents into the relational catalog.

Normalizing a top-level document happens in two phases. The collect phase
walks every declared reference, completing bare stubs through the
:class:`~igdb.stubs.StubResolver` where the local schema needs more than an
id. The write phase then upserts the collected nodes in dependency order,
the root with its ``raw_data`` and finally the join rows, all inside a single
transaction.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError

from catalog.entities import EntityKind, Reference, dependency_order, get_kind
from catalog.refs import iter_reference_values, parse_reference
from catalog.schema import RAW_DATA_COLUMN
from catalog.store import CatalogStore
from helpers import coerce_igdb_id
from igdb.errors import (
    InvalidDocumentError,
    NormalizationTransactionError,
    StubResolutionError,
)
from igdb.stubs import StubResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizationPlan:
    """Write order for one aggregate root: dependencies first, root last."""

    root: str
    order: tuple[str, ...]
    relations: tuple[Reference, ...]

    @property
    def kinds(self) -> tuple[str, ...]:
        return self.order + (self.root,)


@lru_cache(maxsize=None)
def plan_for(kind: str) -> NormalizationPlan:
    spec = get_kind(kind)
    if not spec.root:
        raise ValueError(f"{kind} is not an aggregate root")
    ordered = dependency_order(kind)
    return NormalizationPlan(
        root=kind,
        order=tuple(name for name in ordered if name != kind),
        relations=spec.relations,
    )


@dataclass(frozen=True)
class SkippedReference:
    kind: str
    entity_id: int | None
    reason: str


@dataclass
class NormalizationResult:
    kind: str
    id: int
    nodes: dict[str, int] = field(default_factory=dict)
    links: int = 0
    skipped: list[SkippedReference] = field(default_factory=list)


@dataclass
class _Collected:
    nodes: dict[tuple[str, int], dict[str, Any]] = field(default_factory=dict)
    # Already stored with every required column; referenced but not rewritten.
    present: set[tuple[str, int]] = field(default_factory=set)
    unresolved: set[tuple[str, int]] = field(default_factory=set)
    skipped: list[SkippedReference] = field(default_factory=list)


def _filled(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value not in (None, "")}


class EntityNormalizer:
    """Upsert IGDB games, platforms and platform versions with their sub-entities."""

    def __init__(self, store: CatalogStore, resolver: StubResolver) -> None:
        self._store = store
        self._resolver = resolver

    @property
    def store(self) -> CatalogStore:
        return self._store

    def normalize(
        self, document: Mapping[str, Any], kind: str = "game"
    ) -> NormalizationResult:
        plan = plan_for(kind)
        spec = get_kind(kind)

        if not isinstance(document, Mapping):
            raise InvalidDocumentError(f"{kind} document must be a mapping")
        root_id = coerce_igdb_id(document.get("id"))
        if root_id is None:
            raise InvalidDocumentError(f"{kind} document has no usable id")
        if not spec.is_complete(document):
            missing = ", ".join(spec.required)
            raise InvalidDocumentError(f"{kind} {root_id} is missing required fields: {missing}")

        collected = _Collected()
        root_fields, links = self._collect(spec, document, collected)
        root_fields[RAW_DATA_COLUMN] = json.dumps(
            document, sort_keys=True, ensure_ascii=False, default=str
        )

        result = NormalizationResult(kind=kind, id=root_id, skipped=collected.skipped)
        try:
            with self._store.transaction() as conn:
                for node_kind in plan.order:
                    for (entry_kind, entity_id), fields in collected.nodes.items():
                        if entry_kind != node_kind:
                            continue
                        self._store.upsert(conn, node_kind, entity_id, fields)
                        result.nodes[node_kind] = result.nodes.get(node_kind, 0) + 1
                self._store.upsert(conn, kind, root_id, root_fields)
                for relation, sub_ids in links.items():
                    for sub_id in sub_ids:
                        self._store.link(conn, relation, root_id, sub_id)
                        result.links += 1
        except SQLAlchemyError as exc:
            logger.exception("Rolled back normalization of %s %s", kind, root_id)
            raise NormalizationTransactionError(
                f"failed to store {kind} {root_id}: {exc}"
            ) from exc
        except Exception as exc:
            logger.exception("Rolled back normalization of %s %s", kind, root_id)
            raise NormalizationTransactionError(
                f"unexpected error storing {kind} {root_id}: {exc}"
            ) from exc

        logger.info(
            "Normalized %s %s: %d nodes, %d links, %d skipped",
            kind,
            root_id,
            sum(result.nodes.values()),
            result.links,
            len(result.skipped),
        )
        return result

    def normalize_game(self, document: Mapping[str, Any]) -> NormalizationResult:
        return self.normalize(document, "game")

    def normalize_platform(self, document: Mapping[str, Any]) -> NormalizationResult:
        return self.normalize(document, "platform")

    def normalize_platform_version(
        self, document: Mapping[str, Any]
    ) -> NormalizationResult:
        return self.normalize(document, "platform_version")

    def sync(self, kind: str, entity_id: int) -> NormalizationResult:
        """Fetch ``kind``/``entity_id`` from IGDB and normalize it.

        Catalog errors raised while fetching the root propagate unchanged.
        """

        document = self._resolver.resolve(kind, entity_id)
        return self.normalize(document, kind)

    def _collect(
        self,
        spec: EntityKind,
        body: Mapping[str, Any],
        collected: _Collected,
    ) -> tuple[dict[str, Any], dict[str, list[int]]]:
        """Return the row for ``body`` and the join ids of its many references."""

        row = spec.map_fields(body)
        links: dict[str, list[int]] = {}
        for ref in spec.references:
            if ref.field not in body:
                continue
            value = body[ref.field]
            if ref.many:
                mirrored: list[int] = []
                linked: list[int] = []
                for item in iter_reference_values(value):
                    parsed = parse_reference(item)
                    if parsed is not None and parsed.id not in mirrored:
                        mirrored.append(parsed.id)
                    sub_id = self._visit(ref.kind, item, collected)
                    if sub_id is not None and sub_id not in linked:
                        linked.append(sub_id)
                if spec.root:
                    row[ref.field] = mirrored
                links[ref.relation] = linked
            else:
                if value is None:
                    row[ref.column] = None
                    continue
                sub_id = self._visit(ref.kind, value, collected)
                if sub_id is not None:
                    row[ref.column] = sub_id
        return row, links

    def _visit(self, kind: str, value: Any, collected: _Collected) -> int | None:
        """Collect one referenced node, returning its id or ``None`` when skipped."""

        parsed = parse_reference(value)
        if parsed is None:
            logger.warning("Skipping malformed %s reference: %r", kind, value)
            collected.skipped.append(SkippedReference(kind, None, "malformed reference"))
            return None

        spec = get_kind(kind)
        key = (kind, parsed.id)
        body = parsed.body

        if body is None:
            if key in collected.nodes or key in collected.present:
                return parsed.id
            if key not in collected.unresolved and self._store.has_complete(kind, parsed.id):
                collected.present.add(key)
                return parsed.id
            body = {"id": parsed.id}

        known: dict[str, Any] = {}
        if not spec.is_complete(body):
            known = self._known_required(spec, key, collected) or {}
            if not known:
                if key in collected.unresolved:
                    return None
                try:
                    resolved = self._resolver.complete(kind, parsed.id)
                except StubResolutionError as exc:
                    logger.warning("Skipping %s %s: %s", kind, parsed.id, exc.reason)
                    collected.unresolved.add(key)
                    collected.skipped.append(SkippedReference(kind, parsed.id, exc.reason))
                    return None
                body = {**resolved, **_filled(body)}

        fields, _ = self._collect(spec, body, collected)
        for column in spec.required:
            if fields.get(column) in (None, ""):
                fields.pop(column, None)
                if column in known:
                    fields[column] = known[column]
        existing = collected.nodes.get(key)
        if existing is None:
            collected.nodes[key] = fields
        else:
            existing.update(fields)
        return parsed.id

    def _known_required(
        self, spec: EntityKind, key: tuple[str, int], collected: _Collected
    ) -> dict[str, Any] | None:
        """Required columns already collected or stored for ``key``, if all are filled."""

        existing = collected.nodes.get(key)
        if existing is not None:
            values = {column: existing.get(column) for column in spec.required}
            if all(value not in (None, "") for value in values.values()):
                return values
        return self._store.required_values(spec.name, key[1])


__all__ = [
    "EntityNormalizer",
    "NormalizationPlan",
    "NormalizationResult",
    "SkippedReference",
    "plan_for",
]
