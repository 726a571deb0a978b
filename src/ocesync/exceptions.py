"""Custom exception hierarchy for ocesync.

These exceptions allow callers to discriminate error categories
and handle them appropriately while preserving the original context.
"""

from __future__ import annotations


class OceSyncError(Exception):
    """Base class for all ocesync exceptions."""


class ConfigError(OceSyncError):
    """Raised when configuration loading or validation fails."""


class AuthenticationError(OceSyncError):
    """Raised when a bearer token cannot be obtained from the identity provider."""


class TransportError(OceSyncError):
    """Raised when a request to the content server fails."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class ListingError(TransportError):
    """Raised for a failed listing page when strict listing is enabled."""


class ItemFetchError(TransportError):
    """Raised when a single item cannot be fetched; aborts the whole sync."""


class MediaDownloadError(TransportError):
    """Raised when a binary cannot be downloaded. Isolated per media entry."""


class ShapeError(OceSyncError):
    """Raised when a record does not have the shape a normalization pass expects."""


class FieldCollisionError(ShapeError):
    """Raised when a flattened field name collides with a record attribute."""

    def __init__(self, record_id: str, field: str) -> None:
        super().__init__(f"Field '{field}' of item {record_id} collides with a record attribute")
        self.record_id = record_id
        self.field = field


class StorageError(OceSyncError):
    """Raised when the storage layer encounters an error (DB, filesystem, etc.)."""
