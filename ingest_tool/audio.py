"""
Audio metadata extraction.

This module parses in-memory audio content with mutagen and normalizes the
tags into an AudioMetadata record. Tag values arrive as scalars, lists or
frame objects depending on the container, so every raw value goes through
TagValue before it is used.
"""

import base64
import io
import logging
import re
import struct
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError
from mutagen.flac import Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Cover, MP4Tags

from shared.exceptions import MetadataParseFailure
from shared.models import AudioMetadata, EmbeddedPicture

FRONT_COVER = 3

ID3_FRAMES = {
    'title': 'TIT2',
    'artist': 'TPE1',
    'album': 'TALB',
    'genre': 'TCON',
    'track_number': 'TRCK',
    'disc_number': 'TPOS',
    'bpm': 'TBPM',
    'isrc': 'TSRC',
    'composer': 'TCOM',
    'copyright': 'TCOP',
    'label': 'TPUB',
    'lyrics': 'USLT',
    'comment': 'COMM',
}

VORBIS_KEYS = {
    'title': ['title'],
    'artist': ['artist'],
    'album': ['album'],
    'genre': ['genre'],
    'track_number': ['tracknumber'],
    'disc_number': ['discnumber'],
    'bpm': ['bpm'],
    'isrc': ['isrc'],
    'composer': ['composer'],
    'copyright': ['copyright'],
    'label': ['label', 'organization', 'publisher'],
    'lyrics': ['lyrics', 'unsyncedlyrics'],
    'comment': ['comment', 'description'],
}

MP4_KEYS = {
    'title': ['\xa9nam'],
    'artist': ['\xa9ART', 'aART'],
    'album': ['\xa9alb'],
    'genre': ['\xa9gen'],
    'track_number': ['trkn'],
    'disc_number': ['disk'],
    'bpm': ['tmpo'],
    'isrc': ['----:com.apple.iTunes:ISRC'],
    'composer': ['\xa9wrt'],
    'copyright': ['cprt'],
    'label': ['----:com.apple.iTunes:LABEL', '----:com.apple.iTunes:publisher'],
    'lyrics': ['\xa9lyr'],
    'comment': ['\xa9cmt'],
}


class TagValue:
    """
    A raw tag value of unknown shape.

    first_string() unwraps in a fixed order: a list or tuple yields its
    first element, an object with a ``text`` field yields that field, and
    the result is unwrapped again until a scalar remains. Bytes are decoded
    as UTF-8 and blank strings count as missing.
    """

    def __init__(self, raw: Any = None):
        self.raw = raw

    def first(self) -> Any:
        value = self.raw
        while value is not None:
            if isinstance(value, (list, tuple)):
                value = value[0] if value else None
            elif not isinstance(value, (str, bytes)) and hasattr(value, 'text'):
                value = value.text
            else:
                break
        return value

    def first_string(self) -> Optional[str]:
        value = self.first()
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode('utf-8', errors='replace')
        text = str(value).strip()
        return text or None

    def first_int(self) -> Optional[int]:
        """Leading integer of the first value ("3/12" -> 3, "120.5" -> 120)."""
        text = self.first_string()
        if text is None:
            return None
        match = re.match(r'\d+', text)
        return int(match.group(0)) if match else None

    def __bool__(self) -> bool:
        return self.first_string() is not None

    def __repr__(self) -> str:
        return f"TagValue({self.raw!r})"


class _NamedBuffer(io.BytesIO):
    """BytesIO with a name, so mutagen can use the extension when scoring formats."""

    def __init__(self, data: bytes, name: str):
        super().__init__(data)
        self.name = name


def _read_id3(tags: ID3) -> Dict[str, TagValue]:
    fields = {}
    for field_name, frame_id in ID3_FRAMES.items():
        frames = tags.getall(frame_id)
        if frame_id == 'COMM':
            # iTunes stores normalization data as comments
            frames = [f for f in frames if not f.desc.startswith('iTun')]
        if frame_id == 'TCON' and frames:
            # genres resolves ID3v1 numeric references like "(17)"
            fields[field_name] = TagValue(frames[0].genres)
            continue
        fields[field_name] = TagValue(frames)
    return fields


def _read_keyed(tags: Any, key_map: Dict[str, List[str]]) -> Dict[str, TagValue]:
    fields = {}
    for field_name, keys in key_map.items():
        value = TagValue()
        for key in keys:
            candidate = TagValue(tags.get(key))
            if candidate:
                value = candidate
                break
        fields[field_name] = value
    return fields


def read_tags(audio: Any) -> Dict[str, TagValue]:
    """Map a parsed mutagen file to field name -> TagValue."""
    tags = audio.tags
    if tags is None:
        return {}
    if isinstance(tags, ID3):
        return _read_id3(tags)
    if isinstance(tags, MP4Tags):
        return _read_keyed(tags, MP4_KEYS)
    if hasattr(tags, 'get'):
        return _read_keyed(tags, VORBIS_KEYS)
    return {}


def _normalize_mime(mime: Optional[str]) -> str:
    if not mime:
        return 'image/jpeg'
    mime = mime.lower()
    if '/' not in mime:
        mime = f"image/{mime}"
    return mime


def _pick_front(pictures: List[Any]) -> Optional[Any]:
    if not pictures:
        return None
    for picture in pictures:
        if getattr(picture, 'type', None) == FRONT_COVER:
            return picture
    return pictures[0]


def read_picture(audio: Any, logger: Optional[logging.Logger] = None) -> Optional[EmbeddedPicture]:
    """
    Find the embedded cover picture, preferring the front cover.

    Supports ID3 APIC frames, FLAC picture blocks, Ogg
    METADATA_BLOCK_PICTURE comments and MP4 covr atoms.
    """
    logger = logger or logging.getLogger(__name__)
    tags = audio.tags

    if isinstance(tags, ID3):
        frame = _pick_front(tags.getall('APIC'))
        if frame is not None and frame.data:
            return EmbeddedPicture(data=frame.data, mime=_normalize_mime(frame.mime))
        return None

    # FLAC keeps pictures outside the Vorbis comment block
    flac_picture = _pick_front(getattr(audio, 'pictures', None) or [])
    if flac_picture is not None and flac_picture.data:
        return EmbeddedPicture(data=flac_picture.data, mime=_normalize_mime(flac_picture.mime))

    if isinstance(tags, MP4Tags):
        covers = tags.get('covr') or []
        if covers:
            cover = covers[0]
            mime = 'image/png' if cover.imageformat == MP4Cover.FORMAT_PNG else 'image/jpeg'
            return EmbeddedPicture(data=bytes(cover), mime=mime)
        return None

    if tags is not None and hasattr(tags, 'get'):
        pictures = []
        for encoded in tags.get('metadata_block_picture') or []:
            try:
                pictures.append(Picture(base64.b64decode(encoded)))
            except (ValueError, TypeError, struct.error, MutagenError) as e:
                logger.debug(f"Skipping unreadable METADATA_BLOCK_PICTURE: {e}")
        picture = _pick_front(pictures)
        if picture is not None and picture.data:
            return EmbeddedPicture(data=picture.data, mime=_normalize_mime(picture.mime))

    return None


def codec_name(audio: Any) -> str:
    info = audio.info
    codec = getattr(info, 'codec', None)
    if codec:
        return str(codec)
    if hasattr(info, 'layer') and hasattr(info, 'version'):
        return f"MPEG {info.version:g} Layer {info.layer}"
    return type(audio).__name__.lower()


class MetadataExtractor:
    """Turns raw audio bytes into normalized metadata."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def parse(self, data: bytes, file_name: str) -> Any:
        """
        Parse audio content with mutagen.

        Raises:
            MetadataParseFailure: If the content is not a readable audio file
        """
        try:
            audio = MutagenFile(_NamedBuffer(data, file_name))
        except MutagenError as e:
            raise MetadataParseFailure(f"Failed to parse metadata: {e}", object_key=file_name)
        except (ValueError, IndexError, EOFError, struct.error) as e:
            # Truncated files can break parsers below the MutagenError layer
            raise MetadataParseFailure(f"Failed to parse metadata: {e}", object_key=file_name)

        if audio is None:
            raise MetadataParseFailure("Unrecognized audio format", object_key=file_name)
        return audio

    @staticmethod
    def minimal_metadata(size: int, file_name: str, album_name: Optional[str],
                         parse_error: Optional[str] = None) -> AudioMetadata:
        """Metadata derived from the file name and folder alone."""
        return AudioMetadata(
            title=PurePosixPath(file_name).stem or file_name,
            album=album_name,
            file_size=size,
            parse_error=parse_error,
        )

    def extract(self, data: bytes, size: int, file_name: str,
                album_name: Optional[str] = None) -> AudioMetadata:
        """
        Extract and normalize metadata for one audio object.

        Never raises for bad content: parse failures produce a minimal
        record with parse_error set.

        Args:
            data: Whole object content
            size: Object size as reported by the listing
            file_name: File name used for title fallback
            album_name: Album from grouping, used for album fallback

        Returns:
            AudioMetadata with the fallback chain applied
        """
        try:
            audio = self.parse(data, file_name)
        except MetadataParseFailure as e:
            self.logger.warning(f"Failed to parse metadata for {file_name}: {e.message}")
            return self.minimal_metadata(size, file_name, album_name, parse_error=e.message)

        fields = read_tags(audio)
        empty = TagValue()

        def tag(name: str) -> TagValue:
            return fields.get(name, empty)

        metadata = self.minimal_metadata(size, file_name, album_name)
        metadata.title = tag('title').first_string() or metadata.title
        metadata.artist = tag('artist').first_string()
        metadata.album = tag('album').first_string() or album_name
        metadata.genre = tag('genre').first_string()

        metadata.track_number = tag('track_number').first_int()
        metadata.disc_number = tag('disc_number').first_int()
        metadata.bpm = tag('bpm').first_int()
        metadata.isrc = tag('isrc').first_string()
        metadata.lyrics = tag('lyrics').first_string()
        metadata.composer = tag('composer').first_string()
        metadata.copyright = tag('copyright').first_string()
        metadata.label = tag('label').first_string()
        metadata.comment = tag('comment').first_string()

        info = audio.info
        length = getattr(info, 'length', None)
        # half-up, so a 2.5s track lasts 3s
        metadata.duration = int(length + 0.5) if length else 0
        bitrate = getattr(info, 'bitrate', None)
        metadata.bitrate = int(round(bitrate / 1000)) if bitrate else None
        metadata.sample_rate = getattr(info, 'sample_rate', None) or None
        metadata.channels = getattr(info, 'channels', None) or None
        metadata.codec = codec_name(audio)

        metadata.picture = read_picture(audio, self.logger)

        self.logger.debug(
            f"Extracted {file_name}: title='{metadata.title}', artist='{metadata.artist}', "
            f"album='{metadata.album}', picture={metadata.has_picture}"
        )
        return metadata
