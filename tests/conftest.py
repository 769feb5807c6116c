import struct
import threading
from collections import Counter

import pytest
from mutagen.flac import FLAC, Picture
from mutagen.id3 import APIC, COMM, ID3, TALB, TCOM, TCON, TIT2, TPE1, TRCK, USLT

from ingest_tool.covers import CoverStorage
from ingest_tool.scanner import ScanOrchestrator
from ingest_tool.storage_provider import ObjectStore, normalize_key
from shared.database import CatalogDatabase
from shared.exceptions import ObjectNotFound
from shared.models import StoredObject

# MPEG-1 Layer III, 128 kbps, 44.1 kHz, stereo, no CRC: 417-byte frames
MP3_FRAME = b"\xff\xfb\x90\x00" + b"\x00" * 413

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"fake-png-cover" * 8
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"fake-jpeg-cover" * 8


def _build_mp3(path, frames=40, title=None, artist=None, album=None, genre=None,
               composer=None, track=None, comment=None, lyrics=None, picture=None):
    path.write_bytes(MP3_FRAME * frames)

    tags = ID3()
    if title:
        tags.add(TIT2(encoding=3, text=[title]))
    if artist:
        tags.add(TPE1(encoding=3, text=[artist]))
    if album:
        tags.add(TALB(encoding=3, text=[album]))
    if genre:
        tags.add(TCON(encoding=3, text=[genre]))
    if composer:
        tags.add(TCOM(encoding=3, text=[composer]))
    if track:
        tags.add(TRCK(encoding=3, text=[track]))
    if comment:
        tags.add(COMM(encoding=3, lang='eng', desc='', text=[comment]))
    if lyrics:
        tags.add(USLT(encoding=3, lang='eng', desc='', text=lyrics))
    if picture:
        data, mime = picture
        tags.add(APIC(encoding=3, mime=mime, type=3, desc='Cover', data=data))

    if len(tags):
        tags.save(str(path))
    return path.read_bytes()


def _streaminfo(sample_rate=44100, channels=2, bits=16, total_samples=44100):
    info = struct.pack(">HH", 4096, 4096) + b"\x00" * 6
    packed = (sample_rate << 44) | ((channels - 1) << 41) | ((bits - 1) << 36) | total_samples
    info += struct.pack(">Q", packed) + b"\x00" * 16
    # last-block flag set, block type 0 (STREAMINFO)
    return b"\x80" + len(info).to_bytes(3, "big") + info


def _build_flac(path, picture=None, **comments):
    path.write_bytes(b"fLaC" + _streaminfo())
    if not comments and not picture:
        return path.read_bytes()

    audio = FLAC(str(path))
    if audio.tags is None:
        audio.add_tags()
    for key, value in comments.items():
        audio.tags[key] = [value]
    if picture:
        pic = Picture()
        pic.type = 3
        pic.data, pic.mime = picture
        audio.add_picture(pic)
    audio.save()
    return path.read_bytes()


@pytest.fixture
def make_mp3(tmp_path_factory):
    """Build MP3 bytes with the given ID3 tags; no tags means an untagged file."""
    counter = {'n': 0}

    def _make(**tags):
        counter['n'] += 1
        path = tmp_path_factory.mktemp("mp3") / f"track{counter['n']}.mp3"
        return _build_mp3(path, **tags)

    return _make


@pytest.fixture
def make_flac(tmp_path_factory):
    """Build a one-second FLAC header with Vorbis comments and an optional picture."""
    counter = {'n': 0}

    def _make(**comments):
        counter['n'] += 1
        path = tmp_path_factory.mktemp("flac") / f"track{counter['n']}.flac"
        return _build_flac(path, **comments)

    return _make


class InMemoryStore(ObjectStore):
    """ObjectStore over a dict of key -> bytes."""

    def __init__(self, objects=None, bucket_name="music"):
        self.objects = dict(objects or {})
        self.bucket_name = bucket_name
        self.fetch_counts = Counter()
        self.listing_error = None
        self.fetch_errors = {}
        self.on_fetch = None
        self.lock = threading.Lock()

    def list_objects(self, prefix=""):
        if self.listing_error:
            raise self.listing_error
        return [
            StoredObject(key=key, size=len(data))
            for key, data in self.objects.items()
            if key.startswith(prefix)
        ]

    def fetch_bytes(self, key):
        key = normalize_key(key)
        with self.lock:
            self.fetch_counts[key] += 1
        if self.on_fetch:
            self.on_fetch(key)
        if key in self.fetch_errors:
            raise self.fetch_errors[key]
        if key not in self.objects:
            raise ObjectNotFound(f"Object not found: {key}", object_key=key)
        return self.objects[key]

    def head_object(self, key):
        key = normalize_key(key)
        if key not in self.objects:
            return None
        return StoredObject(key=key, size=len(self.objects[key]))

    def access_url(self, key, presigned=False):
        url = f"https://cdn.example.com/{normalize_key(key)}"
        return url + "?signature=abc" if presigned else url


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def database(tmp_path):
    return CatalogDatabase(str(tmp_path / "catalog.db"))


@pytest.fixture
def cover_storage(tmp_path):
    return CoverStorage(str(tmp_path / "covers"))


@pytest.fixture
def orchestrator(memory_store, database, cover_storage):
    return ScanOrchestrator(memory_store, database, cover_storage, workers=1)
