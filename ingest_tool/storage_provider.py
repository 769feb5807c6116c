"""
Abstract base class for object stores the scanner can read from.

This module defines the interface that all store backends must implement,
allowing the pipeline to scan Cloudflare R2, any other S3-compatible
service, or a plain directory tree.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from shared.models import StoredObject


def normalize_key(key: str) -> str:
    """
    Strip leading separators from an object key.

    Raises:
        ValueError: If the key is empty after normalization
    """
    if key is None:
        raise ValueError("Object key is required")
    clean_key = key.lstrip("/")
    if not clean_key:
        raise ValueError("Object key is required")
    return clean_key


class ObjectStore(ABC):
    """
    Read-side capability wrapper over a bucket.

    Implementations raise StoreUnavailable when credentials are missing or
    the backend cannot be reached, and ObjectNotFound for a missing key.
    """

    bucket_name: Optional[str] = None

    @abstractmethod
    def list_objects(self, prefix: str = "") -> List[StoredObject]:
        """
        List every object under a prefix.

        Pagination is handled internally; the caller always receives the
        complete listing.

        Args:
            prefix: Optional key prefix to filter objects

        Returns:
            List of StoredObject in backend order
        """
        pass

    @abstractmethod
    def fetch_bytes(self, key: str) -> bytes:
        """
        Read a whole object into memory.

        Tag parsers need random access, so objects are buffered fully
        rather than streamed.

        Args:
            key: Object key

        Returns:
            Object content
        """
        pass

    @abstractmethod
    def head_object(self, key: str) -> Optional[StoredObject]:
        """
        Get object information without downloading it.

        Returns:
            StoredObject, or None if the key does not exist
        """
        pass

    @abstractmethod
    def access_url(self, key: str, presigned: bool = False) -> str:
        """
        Get a URL for accessing an object.

        Args:
            key: Object key
            presigned: Return a time-limited signed URL instead of the
                       stable public/endpoint URL

        Returns:
            URL string
        """
        pass

    def object_exists(self, key: str) -> bool:
        """Check if an object exists."""
        return self.head_object(key) is not None
