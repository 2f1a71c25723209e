"""Completion of bare IGDB references."""

from __future__ import annotations

import logging
from typing import Any

from catalog.entities import get_kind
from igdb.client import IGDBClient
from igdb.errors import AuthError, CatalogError, NotFoundError, StubResolutionError
from igdb.fields import build_query, where_id

logger = logging.getLogger(__name__)


class StubResolver:
    """Fetch the full document behind a bare ``(kind, id)`` reference."""

    def __init__(self, client: IGDBClient) -> None:
        self._client = client

    def resolve(self, kind: str, entity_id: int) -> dict[str, Any]:
        """Return the document for ``entity_id`` or raise :class:`NotFoundError`."""

        spec = get_kind(kind)
        results = self._client.request(
            spec.endpoint, build_query(kind, where_id(entity_id), limit=1)
        )
        if not results:
            raise NotFoundError(kind, entity_id)
        return results[0]

    def complete(self, kind: str, entity_id: int) -> dict[str, Any]:
        """Resolve a stub found inside a document being normalized.

        Every catalog failure except authentication is reported as
        :class:`StubResolutionError` so the caller can skip the reference.
        """

        try:
            document = self.resolve(kind, entity_id)
        except AuthError:
            raise
        except CatalogError as exc:
            raise StubResolutionError(kind, entity_id, str(exc)) from exc
        if not get_kind(kind).is_complete(document):
            raise StubResolutionError(
                kind, entity_id, "resolved document lacks required fields"
            )
        logger.debug("Resolved %s stub %s", kind, entity_id)
        return document


__all__ = ["StubResolver"]
