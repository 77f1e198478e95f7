"""Domain-level exception hierarchy for service and repository layers."""

from __future__ import annotations


class DomainError(Exception):
    """Base class for domain-specific failures."""


class NotFoundError(DomainError):
    """Raised when a requested entity does not exist."""


class ConflictError(DomainError):
    """Raised when a state conflict occurs (e.g. a stale version token)."""


class ValidationError(DomainError):
    """Raised when input validation fails at the domain/service layer."""


class InfrastructureError(DomainError):
    """Raised when infrastructure (DB or external service) is unavailable."""


class LocationUnavailableError(InfrastructureError):
    """Raised when no position fix can be obtained for the user."""


class ShopQueryError(InfrastructureError):
    """Raised when the Overpass query fails or returns a non-success status."""


class NetworkFetchError(InfrastructureError):
    """Raised when a shell asset cannot be fetched on a cache miss."""


class StorageCorruptedError(DomainError):
    """Raised when a stored value cannot be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"stored value for {key!r} is corrupted: {reason}")
        self.key = key
