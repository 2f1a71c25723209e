"""IGDB client and external API integration helpers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping

from urllib.error import HTTPError

import config
from igdb.context import ClientContext, get_default_context
from igdb.errors import ClientError, NotFoundError, RateLimitError, ServerError
from igdb.fields import build_query, contains_clause, search_clause, where_id
from igdb.transport import (
    Opener,
    RequestFactory,
    decode_json,
    format_http_error,
    resolve_opener,
    resolve_request_factory,
    retry_after_seconds,
)

logger = logging.getLogger(__name__)


__all__ = [
    "IGDBClient",
    "IMAGE_BASE_URL",
    "cover_url_from_cover",
]


IMAGE_BASE_URL = "https://images.igdb.com/igdb/image/upload"


def cover_url_from_cover(value: Any, size: str = "t_cover_big") -> str:
    """Return the IGDB image URL for a cover payload or identifier."""

    image_id: str | None = None
    if isinstance(value, Mapping):
        raw_id = value.get("image_id")
        if isinstance(raw_id, str):
            image_id = raw_id.strip()
        elif raw_id is not None:
            image_id = str(raw_id).strip()
    elif isinstance(value, str):
        image_id = value.strip()
    elif value is not None:
        image_id = str(value).strip()
    if not image_id:
        return ""
    size_key = str(size).strip() if size else "t_cover_big"
    if not size_key:
        size_key = "t_cover_big"
    return f"{IMAGE_BASE_URL}/{size_key}/{image_id}.jpg"


class IGDBClient:
    """Authenticated, rate-limited access to the IGDB v4 endpoints.

    The token cache and rate limiter come from the shared
    :class:`~igdb.context.ClientContext`; every client in the process spaces
    its requests against the same clock.
    """

    BASE_URL = "https://api.igdb.com/v4"

    def __init__(
        self,
        context: ClientContext | None = None,
        *,
        user_agent: str | None = None,
        max_retries: int | None = None,
        backoff: float = 1.0,
        timeout: float | None = None,
        request_factory: RequestFactory | None = None,
        opener: Opener | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._context = context
        self._user_agent = (user_agent or "").strip()
        retries = config.IGDB_MAX_RETRIES if max_retries is None else max_retries
        self._max_retries = max(1, int(retries))
        self._backoff = backoff if backoff and backoff > 0 else 0.0
        self._timeout = (
            config.IGDB_REQUEST_TIMEOUT_SECONDS if timeout is None else timeout
        )
        self._request_factory = request_factory
        self._opener = opener
        self._sleep = sleep or time.sleep

    @property
    def context(self) -> ClientContext:
        if self._context is None:
            self._context = get_default_context()
        return self._context

    @property
    def user_agent(self) -> str:
        return self._user_agent or config.IGDB_USER_AGENT

    def request(self, endpoint: str, query: str) -> list[dict[str, Any]]:
        """POST ``query`` to ``endpoint`` and return the decoded result list."""

        endpoint = endpoint.strip().strip("/")
        url = f"{self.BASE_URL}/{endpoint}"
        build_request = resolve_request_factory(self._request_factory)
        open_request = resolve_opener(self._opener, timeout=self._timeout)
        context = self.context

        for attempt in range(1, self._max_retries + 1):
            token = context.tokens.get_token()
            context.limiter.await_slot()

            request = build_request(url, data=query.encode("utf-8"), method="POST")
            self._apply_headers(request, context.client_id, token)

            logger.debug("IGDB %s attempt %d/%d", endpoint, attempt, self._max_retries)
            try:
                with open_request(request) as response:
                    body = response.read()
            except HTTPError as exc:
                if exc.code == 429:
                    if attempt >= self._max_retries:
                        raise RateLimitError(
                            f"IGDB {endpoint} still rate limited after "
                            f"{self._max_retries} attempts"
                        ) from exc
                    delay = float(2**attempt)
                    requested = retry_after_seconds(exc)
                    if requested is not None and requested > delay:
                        delay = requested
                    logger.warning(
                        "IGDB %s rate limited, waiting %.1fs (attempt %d/%d)",
                        endpoint,
                        delay,
                        attempt,
                        self._max_retries,
                    )
                    self._sleep(delay)
                    continue
                message = format_http_error(f"IGDB {endpoint} failed", exc)
                if 400 <= exc.code < 500:
                    if exc.code == 401:
                        context.tokens.invalidate()
                    logger.error(message)
                    raise ClientError(message, status=exc.code) from exc
                if attempt >= self._max_retries:
                    logger.error("Final attempt failed: %s", message)
                    raise ServerError(message) from exc
                logger.warning("%s, retrying", message)
                self._wait_before_retry(attempt)
                continue
            except OSError as exc:
                message = f"IGDB {endpoint} request failed: {exc}"
                if attempt >= self._max_retries:
                    logger.error("Final attempt failed: %s", message)
                    raise ServerError(message) from exc
                logger.warning("%s, retrying", message)
                self._wait_before_retry(attempt)
                continue

            try:
                payload = decode_json(body)
            except ValueError as exc:
                raise ServerError(f"invalid JSON response from IGDB {endpoint}") from exc
            if isinstance(payload, Mapping):
                return [dict(payload)]
            if isinstance(payload, list):
                logger.debug("IGDB %s returned %d results", endpoint, len(payload))
                return payload
            raise ServerError(f"unexpected payload type from IGDB {endpoint}")

        raise ServerError(
            f"failed to complete IGDB {endpoint} request after {self._max_retries} attempts"
        )

    def fetch_by_id(self, endpoint: str, kind: str, entity_id: int) -> dict[str, Any] | None:
        results = self.request(endpoint, build_query(kind, where_id(entity_id), limit=1))
        return results[0] if results else None

    def search_games(self, term: str, *, limit: int = 20) -> list[dict[str, Any]]:
        return self.request("games", build_query("game", search_clause(term), limit))

    def get_game(self, game_id: int) -> dict[str, Any]:
        game = self.fetch_by_id("games", "game", game_id)
        if game is None:
            raise NotFoundError("game", game_id)
        return game

    def search_platforms(self, term: str, *, limit: int = 50) -> list[dict[str, Any]]:
        where = (
            f"where {contains_clause('name', term)}"
            f" | {contains_clause('alternative_name', term)}"
        )
        return self.request("platforms", build_query("platform", where, limit))

    def search_platform_versions(
        self, term: str, *, limit: int = 50
    ) -> list[dict[str, Any]]:
        where = f"where {contains_clause('name', term)}"
        return self.request(
            "platform_versions", build_query("platform_version", where, limit)
        )

    def get_platform(self, platform_id: int) -> dict[str, Any] | None:
        return self.fetch_by_id("platforms", "platform", platform_id)

    def get_platform_version(self, version_id: int) -> dict[str, Any] | None:
        return self.fetch_by_id("platform_versions", "platform_version", version_id)

    def get_platform_logo(self, logo_id: int) -> dict[str, Any] | None:
        return self.fetch_by_id("platform_logos", "platform_logo", logo_id)

    def get_company(self, company_id: int) -> dict[str, Any] | None:
        return self.fetch_by_id("companies", "company", company_id)

    def get_parent_platform(self, version_id: int) -> dict[str, Any] | None:
        """Return the platform whose ``versions`` include ``version_id``."""

        where = f"where versions = ({int(version_id)})"
        results = self.request("platforms", build_query("platform", where, limit=1))
        return results[0] if results else None

    def _apply_headers(self, request: Any, client_id: str, access_token: str) -> None:
        request.add_header("Client-ID", client_id)
        request.add_header("Authorization", f"Bearer {access_token}")
        request.add_header("Accept", "application/json")
        request.add_header("Content-Type", "text/plain")
        request.add_header("User-Agent", self.user_agent.strip())

    def _wait_before_retry(self, attempt: int) -> None:
        delay = attempt * self._backoff
        if delay > 0:
            self._sleep(delay)
