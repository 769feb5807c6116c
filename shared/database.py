"""
SQLite catalog for the ingestion pipeline.
Holds the songs table and its one-to-one song_metadata side table.
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from shared.constants import DEFAULT_DATA_DIR, DEFAULT_DB_FILENAME
from shared.models import CatalogItem, ExtendedMetadata

EXTENDED_COLUMNS = [
    "track_number", "disc_number", "bpm", "isrc", "lyrics", "composer",
    "copyright", "label", "comment", "bitrate", "sample_rate", "channels",
    "codec", "file_size", "last_scanned",
]


class CatalogDatabase:
    def __init__(self, db_path: Optional[str] = None, timeout: float = 30.0):
        if db_path is None:
            db_dir = Path(DEFAULT_DATA_DIR).expanduser()
            db_dir.mkdir(parents=True, exist_ok=True)
            self.db_path = db_dir / DEFAULT_DB_FILENAME
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.timeout = timeout
        # SQLite allows one writer; serialize our own writers instead of
        # bouncing off "database is locked".
        self._write_lock = threading.Lock()
        self._init_db()

    def _get_connection(self):
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_db(self):
        """Initialize the database schema."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN TRANSACTION")
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS songs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        title TEXT NOT NULL,
                        artist TEXT,
                        album TEXT,
                        file_path TEXT UNIQUE NOT NULL,
                        cover_path TEXT,
                        duration INTEGER DEFAULT 0,
                        genre TEXT,
                        play_count INTEGER DEFAULT 0,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS song_metadata (
                        song_id INTEGER PRIMARY KEY,
                        track_number INTEGER,
                        disc_number INTEGER,
                        bpm INTEGER,
                        isrc TEXT,
                        lyrics TEXT,
                        composer TEXT,
                        copyright TEXT,
                        label TEXT,
                        comment TEXT,
                        bitrate INTEGER,
                        sample_rate INTEGER,
                        channels INTEGER,
                        codec TEXT,
                        file_size INTEGER,
                        last_scanned TIMESTAMP,
                        FOREIGN KEY (song_id) REFERENCES songs(id) ON DELETE CASCADE
                    )
                """)

                conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_album ON songs(album)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_artist ON songs(artist)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_play_count ON songs(play_count DESC)")

                # Schema migrations (ensure columns exist on older databases)
                cursor = conn.execute("PRAGMA table_info(songs)")
                columns = [row[1] for row in cursor.fetchall()]
                if 'cover_path' not in columns:
                    conn.execute("ALTER TABLE songs ADD COLUMN cover_path TEXT")
                if 'genre' not in columns:
                    conn.execute("ALTER TABLE songs ADD COLUMN genre TEXT")

                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def upsert_song(self, file_path: str, title: str, artist: Optional[str], album: Optional[str],
                    duration: int, cover_path: Optional[str], genre: Optional[str],
                    extended: ExtendedMetadata) -> Tuple[int, bool]:
        """
        Insert or update one catalog item and replace its extended metadata.

        Both writes share one transaction. play_count is never touched.

        Returns:
            (song_id, created) where created is True for a new row
        """
        with self._write_lock:
            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute("SELECT id FROM songs WHERE file_path = ?", (file_path,)).fetchone()
                    if row is None:
                        cursor = conn.execute("""
                            INSERT INTO songs (title, artist, album, file_path, duration, cover_path, genre)
                            VALUES (?, ?, ?, ?, ?, ?, ?)
                        """, (title, artist, album, file_path, duration, cover_path, genre))
                        song_id = cursor.lastrowid
                        created = True
                    else:
                        song_id = row[0]
                        conn.execute("""
                            UPDATE songs SET
                                title = ?,
                                artist = ?,
                                album = ?,
                                duration = ?,
                                cover_path = ?,
                                genre = ?,
                                updated_at = ?
                            WHERE id = ?
                        """, (title, artist, album, duration, cover_path, genre,
                              datetime.now(timezone.utc).isoformat(), song_id))
                        created = False

                    placeholders = ", ".join(["?"] * (len(EXTENDED_COLUMNS) + 1))
                    conn.execute(
                        f"INSERT OR REPLACE INTO song_metadata (song_id, {', '.join(EXTENDED_COLUMNS)}) "
                        f"VALUES ({placeholders})",
                        (song_id, *[getattr(extended, col) for col in EXTENDED_COLUMNS])
                    )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
            finally:
                conn.close()

        return song_id, created

    def get_song_by_path(self, file_path: str) -> Optional[CatalogItem]:
        conn = self._get_connection()
        try:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM songs WHERE file_path = ?", (file_path,)).fetchone()
            return CatalogItem.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def get_all_songs(self) -> List[CatalogItem]:
        conn = self._get_connection()
        try:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute("SELECT * FROM songs ORDER BY album, title")
            return [CatalogItem.from_dict(dict(row)) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_extended_metadata(self, song_id: int) -> Optional[ExtendedMetadata]:
        conn = self._get_connection()
        try:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM song_metadata WHERE song_id = ?", (song_id,)).fetchone()
            return ExtendedMetadata.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def count_songs(self) -> int:
        conn = self._get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0]
        finally:
            conn.close()
