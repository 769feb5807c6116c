"""
Local filesystem object store.
Implements the ObjectStore interface over a directory tree, so a mounted
music folder can be scanned exactly like a bucket.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from shared.exceptions import ObjectNotFound, StoreUnavailable
from shared.models import StoredObject
from .storage_provider import ObjectStore, normalize_key


class LocalDirectoryStore(ObjectStore):
    """
    Store that reads objects from the local filesystem.
    Keys are paths relative to the base directory, always '/'-separated.
    """

    def __init__(self, base_path: str, logger: Optional[logging.Logger] = None):
        self.base_path = Path(base_path).expanduser().absolute()
        self.logger = logger or logging.getLogger(__name__)

    def _get_path(self, key: str) -> Path:
        """Get absolute local path for a key, refusing to leave the base directory."""
        clean_key = normalize_key(key)
        path = (self.base_path / clean_key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ObjectNotFound(f"Key escapes store root: {clean_key}", object_key=clean_key)
        return path

    def _ensure_root(self):
        if not self.base_path.is_dir():
            raise StoreUnavailable(f"Music directory not found: {self.base_path}")

    def list_objects(self, prefix: str = "") -> List[StoredObject]:
        self._ensure_root()

        clean_prefix = prefix.lstrip("/")
        objects = []
        for root, dirs, filenames in os.walk(self.base_path):
            dirs.sort()
            for filename in sorted(filenames):
                full_path = Path(root) / filename
                key = full_path.relative_to(self.base_path).as_posix()
                if clean_prefix and not key.startswith(clean_prefix):
                    continue
                try:
                    st = full_path.stat()
                except OSError:
                    # File may have been deleted during the walk
                    continue
                objects.append(StoredObject(
                    key=key,
                    size=st.st_size,
                    last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                ))

        self.logger.debug(f"Listed {len(objects)} files under {self.base_path}")
        return objects

    def fetch_bytes(self, key: str) -> bytes:
        self._ensure_root()
        path = self._get_path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFound(f"Object not found: {key}", object_key=normalize_key(key))
        except OSError as e:
            raise StoreUnavailable(f"Failed to read {key}: {e}", object_key=normalize_key(key))

    def head_object(self, key: str) -> Optional[StoredObject]:
        self._ensure_root()
        try:
            path = self._get_path(key)
        except ObjectNotFound:
            return None
        if not path.is_file():
            return None
        st = path.stat()
        return StoredObject(
            key=normalize_key(key),
            size=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def access_url(self, key: str, presigned: bool = False) -> str:
        """Return a file:// URL. There is nothing to sign locally."""
        return self._get_path(key).as_uri()
