"""Error translation for the collection and catalog API routes.

Handlers raise :class:`APIError` subclasses, or let catalog errors escape;
:func:`handle_api_errors` turns both into ``{"error": ...}`` JSON responses
and logs them with a summary of the request.
"""

from __future__ import annotations

import json
from functools import wraps
from typing import Any, Callable, ParamSpec, TypeVar

from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from igdb import errors as catalog_errors

P = ParamSpec("P")
R = TypeVar("R")


class APIError(Exception):
    """An error with a fixed HTTP status and a client-facing message."""

    status_code: int = 500
    message: str = "Internal server error."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or type(self).message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class BadRequestError(APIError):
    status_code = 400
    message = "Invalid request."


class UnauthorizedError(APIError):
    status_code = 401
    message = "Unauthorized."


class ForbiddenError(APIError):
    status_code = 403
    message = "Forbidden."


class NotFoundError(APIError):
    status_code = 404
    message = "Resource not found."


class UpstreamServiceError(APIError):
    status_code = 502
    message = "IGDB request failed."


# First match wins, so subclasses come before CatalogError.
_CATALOG_ERRORS: tuple[tuple[type[catalog_errors.CatalogError], type[APIError]], ...] = (
    (catalog_errors.ClientError, BadRequestError),
    (catalog_errors.NotFoundError, NotFoundError),
    (catalog_errors.CatalogError, UpstreamServiceError),
)


def from_catalog_error(exc: catalog_errors.CatalogError) -> APIError:
    """Return the API error reported to clients for a catalog failure."""

    for error_type, api_type in _CATALOG_ERRORS:
        if isinstance(exc, error_type):
            return api_type(str(exc))
    return UpstreamServiceError(str(exc))


def _request_summary() -> str:
    summary: dict[str, Any] = {
        "method": request.method,
        "path": request.path,
        "endpoint": request.endpoint,
        "view_args": dict(request.view_args or {}),
    }
    if request.args:
        summary["args"] = request.args.to_dict(flat=False)
    payload = request.get_json(silent=True)
    if payload is not None:
        summary["json"] = payload
    try:
        return json.dumps(summary, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(summary)


def _log_failure(exc: BaseException, status_code: int) -> None:
    log = current_app.logger
    if status_code < 500:
        log.warning("API %s: %s | request=%s", status_code, exc, _request_summary())
    elif isinstance(exc, (APIError, catalog_errors.CatalogError, HTTPException)):
        log.error(
            "API %s: %s | request=%s",
            status_code,
            exc,
            _request_summary(),
            exc_info=exc,
        )
    else:
        log.exception("Unhandled API error: %s | request=%s", exc, _request_summary())


def handle_api_errors(func: Callable[P, R]) -> Callable[P, R]:
    """Wrap a view so every failure becomes a JSON error response."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs):  # type: ignore[misc]
        try:
            return func(*args, **kwargs)
        except APIError as exc:
            error = exc
        except catalog_errors.CatalogError as exc:
            error = from_catalog_error(exc)
            _log_failure(exc, error.status_code)
            return jsonify(error.to_dict()), error.status_code
        except HTTPException as exc:
            error = APIError(exc.description or str(exc), status_code=exc.code or 500)
        except Exception as exc:
            _log_failure(exc, 500)
            return jsonify(APIError().to_dict()), 500
        _log_failure(error, error.status_code)
        return jsonify(error.to_dict()), error.status_code

    return wrapper


__all__ = [
    "APIError",
    "BadRequestError",
    "ForbiddenError",
    "NotFoundError",
    "UnauthorizedError",
    "UpstreamServiceError",
    "from_catalog_error",
    "handle_api_errors",
]
