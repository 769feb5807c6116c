"""
Catalog synchronization.
Writes one processed audio item into the songs and song_metadata tables.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional

from shared.database import CatalogDatabase
from shared.exceptions import CatalogWriteFailure
from shared.models import AudioMetadata, ExtendedMetadata


@dataclass
class SyncOutcome:
    song_id: int
    created: bool


class CatalogSynchronizer:
    """
    Upserts catalog items keyed by their access URL.

    Existing rows keep their id and play_count; every derivable field is
    overwritten and the extended metadata row is replaced wholesale, so a
    tag removed since the last scan ends up NULL.
    """

    def __init__(self, database: CatalogDatabase, logger: Optional[logging.Logger] = None):
        self.database = database
        self.logger = logger or logging.getLogger(__name__)

    def sync(self, identity: str, metadata: AudioMetadata, cover_path: str) -> SyncOutcome:
        """
        Insert or update one item.

        Args:
            identity: Stable access URL of the object
            metadata: Normalized metadata
            cover_path: Resolved cover reference

        Returns:
            SyncOutcome with the generated song id

        Raises:
            CatalogWriteFailure: If the database rejects the write
        """
        try:
            song_id, created = self.database.upsert_song(
                file_path=identity,
                title=metadata.title,
                artist=metadata.artist,
                album=metadata.album,
                duration=metadata.duration,
                cover_path=cover_path,
                genre=metadata.genre,
                extended=ExtendedMetadata.from_audio(None, metadata),
            )
        except sqlite3.Error as e:
            raise CatalogWriteFailure(f"Catalog write failed: {e}", object_key=identity)

        self.logger.debug(f"{'Created' if created else 'Updated'} song {song_id}: {identity}")
        return SyncOutcome(song_id=song_id, created=created)

    def total_catalog_size(self) -> int:
        try:
            return self.database.count_songs()
        except sqlite3.Error as e:
            raise CatalogWriteFailure(f"Catalog count failed: {e}")
