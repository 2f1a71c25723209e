"""Twitch client-credentials token management for IGDB."""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import Future
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Mapping
from urllib.error import HTTPError
from urllib.parse import urlencode

from igdb.errors import AuthError
from igdb.transport import (
    Opener,
    RequestFactory,
    decode_json,
    format_http_error,
    resolve_opener,
    resolve_request_factory,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: float
    token_type: str = "bearer"


class TokenManager:
    """Acquire and cache a bearer token via the client-credentials grant.

    A single refresh is in flight at any time: the first caller that finds the
    cache stale performs the exchange, every concurrent caller waits on the same
    :class:`~concurrent.futures.Future` and receives its result or its error.
    """

    TOKEN_URL = "https://id.twitch.tv/oauth2/token"

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        safety_margin: float = 300.0,
        timeout: float | None = 30.0,
        request_factory: RequestFactory | None = None,
        opener: Opener | None = None,
        clock: Callable[[], float] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._env = env if env is not None else os.environ
        self._client_id = (client_id or self._env.get("IGDB_CLIENT_ID") or "").strip()
        self._client_secret = (
            client_secret or self._env.get("IGDB_CLIENT_SECRET") or ""
        ).strip()
        self._safety_margin = max(0.0, float(safety_margin))
        self._timeout = timeout
        self._request_factory = request_factory
        self._opener = opener
        self._clock = clock or time.time
        self._lock = Lock()
        self._cached: CachedToken | None = None
        self._inflight: Future[str] | None = None

    @property
    def client_id(self) -> str:
        return self._client_id

    def get_token(self) -> str:
        """Return a bearer token valid for at least the safety margin."""

        with self._lock:
            cached = self._cached
            if cached is not None and self._clock() < cached.expires_at:
                return cached.access_token
            future = self._inflight
            owner = future is None
            if owner:
                future = Future()
                self._inflight = future

        if not owner:
            logger.debug("Waiting for in-flight IGDB token refresh")
            return future.result()

        try:
            token = self._fetch_token()
        except BaseException as exc:
            with self._lock:
                self._cached = None
                self._inflight = None
            future.set_exception(exc)
            raise

        with self._lock:
            self._cached = token
            self._inflight = None
        future.set_result(token.access_token)
        return token.access_token

    def invalidate(self) -> None:
        """Forget the cached token so the next call performs a fresh exchange."""

        with self._lock:
            self._cached = None

    def _fetch_token(self) -> CachedToken:
        if not self._client_id or not self._client_secret:
            raise AuthError("IGDB_CLIENT_ID and IGDB_CLIENT_SECRET must be set")

        payload = urlencode(
            {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "grant_type": "client_credentials",
            }
        ).encode("utf-8")

        build_request = resolve_request_factory(self._request_factory)
        open_request = resolve_opener(self._opener, timeout=self._timeout)

        request = build_request(self.TOKEN_URL, data=payload, method="POST")
        request.add_header("Content-Type", "application/x-www-form-urlencoded")

        logger.info("Requesting new IGDB access token")
        try:
            with open_request(request) as response:
                body = response.read()
        except HTTPError as exc:
            raise AuthError(format_http_error("IGDB auth failed", exc)) from exc
        except OSError as exc:
            raise AuthError(f"IGDB auth request failed: {exc}") from exc

        try:
            data: Any = decode_json(body)
        except ValueError as exc:
            raise AuthError("invalid JSON in IGDB auth response") from exc

        token = data.get("access_token") if isinstance(data, Mapping) else None
        if not token:
            raise AuthError("missing access token in IGDB auth response")
        try:
            expires_in = float(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0
        expires_at = self._clock() + expires_in - self._safety_margin
        logger.info("IGDB token acquired, expires in %.0f seconds", expires_in)
        return CachedToken(
            access_token=str(token),
            expires_at=expires_at,
            token_type=str(data.get("token_type") or "bearer"),
        )


__all__ = ["CachedToken", "TokenManager"]
