"""urllib plumbing shared by the token manager and the catalog client."""

from __future__ import annotations

import json
from functools import partial
from typing import Any, Callable
from urllib.error import HTTPError
from urllib.request import Request, urlopen

RequestFactory = Callable[..., Any]
Opener = Callable[[Any], Any]


def resolve_request_factory(request_factory: RequestFactory | None) -> RequestFactory:
    return request_factory or Request


def resolve_opener(opener: Opener | None, *, timeout: float | None = None) -> Opener:
    if opener is not None:
        return opener
    if timeout is None:
        return urlopen
    return partial(urlopen, timeout=timeout)


def decode_json(body: bytes | None) -> Any:
    """Decode a response body, treating an empty body as an empty list."""

    text = body.decode("utf-8") if body else ""
    if not text.strip():
        return []
    return json.loads(text)


def format_http_error(prefix: str, error: HTTPError) -> str:
    message = f"{prefix}: {error.code}"
    error_message = ""
    try:
        error_body = error.read()
    except Exception:  # pragma: no cover - best effort to capture error body
        error_body = b""
    if error_body:
        error_message = error_body.decode("utf-8", errors="replace").strip()
    if not error_message and error.reason:
        error_message = str(error.reason)
    if error_message:
        message = f"{message} {error_message}"
    return message


def retry_after_seconds(error: HTTPError) -> float | None:
    headers = getattr(error, "headers", None)
    if headers is None:
        return None
    for key in ("Retry-After", "retry-after"):
        value = headers.get(key)
        if not value:
            continue
        try:
            delay = float(value)
        except (TypeError, ValueError):
            continue
        if delay > 0:
            return delay
    return None


__all__ = [
    "Opener",
    "RequestFactory",
    "decode_json",
    "format_http_error",
    "resolve_opener",
    "resolve_request_factory",
    "retry_after_seconds",
]
