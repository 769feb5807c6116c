"""
Cover art resolution.

A track's cover comes from the first source that yields an image:
the picture embedded in the audio file, then a cover file sitting next to
it in the album folder, then the placeholder. Images are stored once per
distinct content under <sha256>.<ext>.
"""

import hashlib
import logging
import os
import tempfile
import threading
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, Optional

from shared.constants import (
    COVER_BASENAMES,
    COVER_EXTENSIONS,
    COVER_URL_PREFIX,
    PLACEHOLDER_COVER,
)
from shared.exceptions import CoverPersistFailure, IngestError
from shared.models import AlbumEntry, AudioMetadata
from .storage_provider import ObjectStore

COVER_FILENAMES = {
    f"{name}.{ext}" for name in COVER_BASENAMES for ext in COVER_EXTENSIONS
}


def content_hash(data: bytes) -> str:
    """SHA256 hex digest of the given bytes."""
    return hashlib.sha256(data).hexdigest()


def extension_for_mime(mime: Optional[str]) -> str:
    return '.png' if (mime or '').lower() == 'image/png' else '.jpg'


def extension_for_filename(file_name: str) -> str:
    return '.png' if PurePosixPath(file_name).suffix.lower() == '.png' else '.jpg'


def is_cover_filename(file_name: str) -> bool:
    return file_name.lower() in COVER_FILENAMES


def find_sibling_cover(entries: Iterable[AlbumEntry],
                       object_key: Optional[str] = None) -> Optional[AlbumEntry]:
    """
    Find the first allow-listed cover image among an album's members.

    Albums are keyed by folder name only, so ArtistA/Greatest Hits and
    ArtistB/Greatest Hits share one entry list. When object_key is given,
    only entries in the same folder as that key count. Covers in nested
    folders (e.g. art/cover.jpg) are never considered.
    """
    folder = PurePosixPath(object_key).parent if object_key else None
    for entry in entries:
        if folder is not None and PurePosixPath(entry.key).parent != folder:
            continue
        if is_cover_filename(entry.file_name):
            return entry
    return None


class CoverStorage:
    """Content-addressed directory of cover images."""

    def __init__(self, covers_dir: str, url_prefix: str = COVER_URL_PREFIX,
                 logger: Optional[logging.Logger] = None):
        self.covers_dir = Path(covers_dir).expanduser()
        self.covers_dir.mkdir(parents=True, exist_ok=True)
        self.url_prefix = url_prefix.rstrip('/')
        self.logger = logger or logging.getLogger(__name__)
        self._known: Dict[str, str] = {}
        self.lock = threading.Lock()

    def store(self, data: bytes, extension: str) -> str:
        """
        Persist image bytes unless already present.

        Concurrent writers of the same hash race harmlessly: the file name
        is derived from the content, so whichever rename lands last leaves
        identical bytes behind.

        Returns:
            Cover reference, e.g. /covers/<hash>.jpg

        Raises:
            CoverPersistFailure: If the image cannot be written
        """
        if not data:
            raise CoverPersistFailure("Empty image data")

        file_name = f"{content_hash(data)}{extension}"
        with self.lock:
            cached = self._known.get(file_name)
        if cached:
            return cached

        dest_path = self.covers_dir / file_name
        if not dest_path.exists():
            try:
                fd, tmp_path = tempfile.mkstemp(dir=self.covers_dir, suffix='.part')
                try:
                    with os.fdopen(fd, 'wb') as f:
                        f.write(data)
                    os.replace(tmp_path, dest_path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.remove(tmp_path)
                    raise
            except OSError as e:
                raise CoverPersistFailure(f"Failed to write cover {file_name}: {e}")
            self.logger.debug(f"Stored cover {file_name} ({len(data)} bytes)")

        reference = f"{self.url_prefix}/{file_name}"
        with self.lock:
            self._known[file_name] = reference
        return reference


class CoverResolver:
    """Chooses and persists one cover per audio item."""

    def __init__(self, store: ObjectStore, storage: CoverStorage,
                 placeholder: str = PLACEHOLDER_COVER,
                 logger: Optional[logging.Logger] = None):
        self.store = store
        self.storage = storage
        self.placeholder = placeholder
        self.logger = logger or logging.getLogger(__name__)
        self._sibling_cache: Dict[str, Optional[str]] = {}
        self._sibling_locks: Dict[str, threading.Lock] = {}
        self.lock = threading.Lock()

    def resolve(self, metadata: AudioMetadata, album_entries: Iterable[AlbumEntry],
                object_key: Optional[str] = None) -> str:
        """
        Resolve the cover reference for one item.

        Args:
            metadata: Extracted metadata, possibly carrying an embedded picture
            album_entries: Every listed object of the item's album folder
            object_key: Key of the audio object; sibling covers must share its folder

        Returns:
            Stored cover reference, or the placeholder
        """
        if metadata.has_picture:
            try:
                return self.storage.store(
                    metadata.picture.data, extension_for_mime(metadata.picture.mime)
                )
            except CoverPersistFailure as e:
                self.logger.warning(f"Embedded cover for {object_key} not stored: {e.message}")

        sibling = self._resolve_sibling(list(album_entries), object_key)
        if sibling:
            return sibling

        return self.placeholder

    def _resolve_sibling(self, entries, object_key: Optional[str] = None) -> Optional[str]:
        sibling = find_sibling_cover(entries, object_key)
        if sibling is None:
            return None

        # Keyed by the folder holding the cover; one fetch per folder
        folder = str(PurePosixPath(sibling.key).parent)
        with self.lock:
            if folder in self._sibling_cache:
                return self._sibling_cache[folder]
            key_lock = self._sibling_locks.setdefault(folder, threading.Lock())

        with key_lock:
            with self.lock:
                if folder in self._sibling_cache:
                    return self._sibling_cache[folder]

            reference = None
            try:
                data = self.store.fetch_bytes(sibling.key)
                reference = self.storage.store(data, extension_for_filename(sibling.file_name))
            except IngestError as e:
                self.logger.warning(f"Sibling cover {sibling.key} not usable: {e.message}")

            with self.lock:
                self._sibling_cache[folder] = reference
            return reference
