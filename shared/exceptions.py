"""
Error taxonomy for the ingestion pipeline.

Only StoreUnavailable raised while listing the bucket is fatal to a scan.
Everything else is raised for a single object and handled at the item
boundary by the scan orchestrator.
"""

from typing import Optional


class IngestError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, object_key: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.object_key = object_key


class ConfigurationError(IngestError):
    """Required settings are missing or invalid."""


class StoreUnavailable(IngestError):
    """Credentials are absent or the object store cannot be reached."""


class ObjectNotFound(IngestError):
    """The requested key does not exist in the bucket."""


class MetadataParseFailure(IngestError):
    """Audio bytes could not be parsed for tags."""


class CoverPersistFailure(IngestError):
    """A cover image could not be fetched or written to cover storage."""


class CatalogWriteFailure(IngestError):
    """The catalog database rejected a write."""


class ScanInProgress(IngestError):
    """Another scan currently holds the scan lock."""
