"""
Album grouping for flat bucket listings.

The folder directly containing a file is its album; files at the bucket
root are collected under "Singles". Deeper nesting is not interpreted,
so Artist/Album/Disc1/track.mp3 lands in "Disc1".
"""

from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Tuple

from shared.constants import SINGLES_ALBUM, SUPPORTED_AUDIO_FORMATS
from shared.models import AlbumEntry, StoredObject


def split_key(key: str, bucket_name: Optional[str] = None) -> List[str]:
    """Split a key into non-empty path segments, dropping a bucket-name segment."""
    parts = [p for p in key.split("/") if p]
    if bucket_name and bucket_name in parts:
        parts.remove(bucket_name)
    return parts


def resolve_album(key: str, bucket_name: Optional[str] = None) -> Optional[Tuple[str, str]]:
    """
    Work out album name and file name for one key.

    Returns:
        (album_name, file_name), or None for directory markers
    """
    if key.endswith("/"):
        return None

    parts = split_key(key, bucket_name)
    if not parts:
        return None

    if len(parts) > 1:
        return parts[-2], parts[-1]
    return SINGLES_ALBUM, parts[0]


def group_by_album(objects: Iterable[StoredObject],
                   bucket_name: Optional[str] = None) -> Dict[str, List[AlbumEntry]]:
    """
    Partition a listing into albums.

    Args:
        objects: Flat listing from the object store
        bucket_name: Segment to ignore when keys carry the bucket name

    Returns:
        Mapping album name -> entries, both in listing order
    """
    albums: Dict[str, List[AlbumEntry]] = {}

    for obj in objects:
        resolved = resolve_album(obj.key, bucket_name)
        if resolved is None:
            continue
        album_name, file_name = resolved
        albums.setdefault(album_name, []).append(
            AlbumEntry(object=obj, file_name=file_name, album_name=album_name)
        )

    return albums


def is_audio_file(file_name: str) -> bool:
    """Check if a file name has a supported audio extension."""
    return PurePosixPath(file_name).suffix.lower() in SUPPORTED_AUDIO_FORMATS


def audio_entries(entries: Iterable[AlbumEntry]) -> List[AlbumEntry]:
    return [e for e in entries if is_audio_file(e.file_name)]
