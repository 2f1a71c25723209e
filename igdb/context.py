"""Process-wide client state shared by every IGDB client instance."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

import config
from igdb.auth import TokenManager
from igdb.throttle import RateLimiter


@dataclass
class ClientContext:
    """Token cache and rate limiter owned by the process, injected into clients."""

    tokens: TokenManager
    limiter: RateLimiter

    @property
    def client_id(self) -> str:
        return self.tokens.client_id


_default_context: ClientContext | None = None
_default_lock = Lock()


def build_context() -> ClientContext:
    """Return a new context configured from :mod:`config`."""

    return ClientContext(
        tokens=TokenManager(
            client_id=config.IGDB_CLIENT_ID,
            client_secret=config.IGDB_CLIENT_SECRET,
            safety_margin=config.IGDB_TOKEN_SAFETY_MARGIN_SECONDS,
            timeout=config.IGDB_REQUEST_TIMEOUT_SECONDS,
        ),
        limiter=RateLimiter(config.IGDB_RATE_LIMIT_INTERVAL),
    )


def get_default_context() -> ClientContext:
    """Return the lazily created process-wide context."""

    global _default_context

    with _default_lock:
        if _default_context is None:
            _default_context = build_context()
        return _default_context


def set_default_context(context: ClientContext | None) -> None:
    """Replace the process-wide context (``None`` recreates it lazily)."""

    global _default_context

    with _default_lock:
        _default_context = context


__all__ = [
    "ClientContext",
    "build_context",
    "get_default_context",
    "set_default_context",
]
