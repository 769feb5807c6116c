"""
Data models for bucket objects, extracted metadata, and scan results.

This module defines the core data structures passed between the store
client, the album grouper, the metadata extractor, the cover resolver and
the catalog synchronizer.
"""

from dataclasses import dataclass, asdict, field
from typing import List, Dict, Optional, Any
from enum import Enum
from datetime import datetime, timezone


class StorageProvider(Enum):
    """Supported object store backends."""
    CLOUDFLARE_R2 = "r2"
    LOCAL = "local"


class ScanState(Enum):
    """Lifecycle of a single orchestrator run."""
    IDLE = "idle"
    LISTING = "listing"
    PER_ALBUM = "per_album"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StoredObject:
    """
    One object as reported by a bucket listing.

    Attributes:
        key: Object key (path in bucket, no leading slash)
        size: Size in bytes
        last_modified: Last modification time, if the backend reports it
        etag: Entity tag without quotes (optional)
    """
    key: str
    size: int
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


@dataclass
class AlbumEntry:
    """A listed object annotated with the album it was grouped into."""
    object: StoredObject
    file_name: str
    album_name: str

    @property
    def key(self) -> str:
        return self.object.key


@dataclass
class EmbeddedPicture:
    """Raw picture bytes found inside an audio file."""
    data: bytes
    mime: str = "image/jpeg"


@dataclass
class AudioMetadata:
    """
    Normalized metadata for one audio object.

    Catalog fields (title, artist, album, genre, duration) are already
    resolved through the fallback chain. Everything else feeds the
    extended metadata record.
    """
    title: str
    album: Optional[str]
    file_size: int
    artist: Optional[str] = None
    genre: Optional[str] = None
    duration: int = 0
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    bpm: Optional[int] = None
    isrc: Optional[str] = None
    lyrics: Optional[str] = None
    composer: Optional[str] = None
    copyright: Optional[str] = None
    label: Optional[str] = None
    comment: Optional[str] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    codec: Optional[str] = None
    picture: Optional[EmbeddedPicture] = None
    parse_error: Optional[str] = None

    @property
    def has_picture(self) -> bool:
        return self.picture is not None and bool(self.picture.data)


@dataclass
class CatalogItem:
    """A row of the songs table."""
    id: int
    file_path: str
    title: str
    artist: Optional[str]
    album: Optional[str]
    duration: int
    cover_path: Optional[str]
    genre: Optional[str]
    play_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CatalogItem':
        """Create CatalogItem from a row dict, filtering unknown keys."""
        import dataclasses
        field_names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in field_names})


@dataclass
class ExtendedMetadata:
    """A row of the song_metadata table, keyed by the catalog item id."""
    song_id: Optional[int]
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    bpm: Optional[int] = None
    isrc: Optional[str] = None
    lyrics: Optional[str] = None
    composer: Optional[str] = None
    copyright: Optional[str] = None
    label: Optional[str] = None
    comment: Optional[str] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    codec: Optional[str] = None
    file_size: Optional[int] = None
    last_scanned: Optional[str] = None

    @classmethod
    def from_audio(cls, song_id: Optional[int], meta: AudioMetadata) -> 'ExtendedMetadata':
        return cls(
            song_id=song_id,
            track_number=meta.track_number,
            disc_number=meta.disc_number,
            bpm=meta.bpm,
            isrc=meta.isrc,
            lyrics=meta.lyrics,
            composer=meta.composer,
            copyright=meta.copyright,
            label=meta.label,
            comment=meta.comment,
            bitrate=meta.bitrate,
            sample_rate=meta.sample_rate,
            channels=meta.channels,
            codec=meta.codec,
            file_size=meta.file_size,
            last_scanned=datetime.now(timezone.utc).isoformat(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtendedMetadata':
        import dataclasses
        field_names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in field_names})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScanError:
    """A per-object failure recorded during a scan."""
    object_key: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"objectKey": self.object_key, "message": self.message}


@dataclass
class ScanResult:
    """
    Aggregate outcome of one scan. Never persisted.

    Attributes:
        scanned_count: Audio objects written to the catalog
        new_count: Catalog rows created
        updated_count: Catalog rows updated in place
        total_catalog_size: Row count of the catalog after the scan
        duration_seconds: Wall-clock duration of the scan
        albums: Album names seen in the listing, in listing order
        cancelled: Whether the scan stopped early on request
        errors: Per-object failures
    """
    scanned_count: int = 0
    new_count: int = 0
    updated_count: int = 0
    total_catalog_size: int = 0
    duration_seconds: float = 0.0
    albums: List[str] = field(default_factory=list)
    cancelled: bool = False
    errors: List[ScanError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the shape returned by every trigger surface."""
        data = {
            "scannedCount": self.scanned_count,
            "newCount": self.new_count,
            "updatedCount": self.updated_count,
            "totalCatalogSize": self.total_catalog_size,
            "durationSeconds": round(self.duration_seconds, 2),
            "albums": list(self.albums),
            "cancelled": self.cancelled,
        }
        if self.errors:
            data["errors"] = [e.to_dict() for e in self.errors]
        return data
