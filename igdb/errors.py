"""Exception hierarchy for catalog access and normalization."""

from __future__ import annotations


class CatalogError(RuntimeError):
    """Base class for IGDB catalog errors."""


class AuthError(CatalogError):
    """Raised when the client-credentials exchange fails."""


class RateLimitError(CatalogError):
    """Raised when IGDB keeps answering 429 after every retry."""


class ClientError(CatalogError):
    """Raised for 4xx responses other than 429; never retried."""

    def __init__(self, message: str, *, status: int) -> None:
        super().__init__(message)
        self.status = status


class ServerError(CatalogError):
    """Raised after 5xx responses or network failures exhaust the retries."""


class NotFoundError(CatalogError):
    """Raised when a lookup by id returns an empty result."""

    def __init__(self, kind: str, entity_id: int | str) -> None:
        super().__init__(f"{kind} {entity_id} not found on IGDB")
        self.kind = kind
        self.entity_id = entity_id


class StubResolutionError(CatalogError):
    """Raised when a bare reference cannot be completed from the catalog."""

    def __init__(self, kind: str, entity_id: int, reason: str) -> None:
        super().__init__(f"could not resolve {kind} {entity_id}: {reason}")
        self.kind = kind
        self.entity_id = entity_id
        self.reason = reason


class InvalidDocumentError(CatalogError):
    """Raised when a top-level document lacks its id or required fields."""


class NormalizationTransactionError(CatalogError):
    """Raised when the write phase fails and the batch was rolled back."""


__all__ = [
    "AuthError",
    "CatalogError",
    "ClientError",
    "InvalidDocumentError",
    "NormalizationTransactionError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "StubResolutionError",
]
