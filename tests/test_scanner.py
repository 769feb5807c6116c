import sqlite3
import threading

import pytest

from conftest import JPEG_BYTES, PNG_BYTES
from ingest_tool.covers import content_hash
from ingest_tool.scanner import CATALOG_ERROR_KEY, ScanOrchestrator
from shared.exceptions import ObjectNotFound, ScanInProgress, StoreUnavailable
from shared.models import ScanState

URL = "https://cdn.example.com/"


def _rows(database):
    return {song.file_path: song for song in database.get_all_songs()}


def test_album_and_singles_scenario(orchestrator, memory_store, database, make_mp3):
    memory_store.objects.update({
        "Anthem/track1.mp3": make_mp3(title="Anthem", artist="Rau", picture=(JPEG_BYTES, "image/jpeg")),
        "Anthem/cover.jpg": PNG_BYTES,
        "loose.mp3": make_mp3(),
    })

    result = orchestrator.run_scan()

    assert result.albums == ["Anthem", "Singles"]
    assert result.scanned_count == 2
    assert result.new_count == 2
    assert result.updated_count == 0
    assert result.total_catalog_size == 2
    assert result.errors == []
    assert orchestrator.state == ScanState.COMPLETED

    rows = _rows(database)
    track = rows[URL + "Anthem/track1.mp3"]
    assert track.title == "Anthem"
    assert track.artist == "Rau"
    assert track.album == "Anthem"
    assert track.cover_path == f"/covers/{content_hash(JPEG_BYTES)}.jpg"

    loose = rows[URL + "loose.mp3"]
    assert loose.title == "loose"
    assert loose.album == "Singles"
    assert loose.cover_path == "/placeholder-album.png"


def test_rescan_is_idempotent(orchestrator, memory_store, database, make_mp3):
    memory_store.objects.update({
        "A/1.mp3": make_mp3(title="One"),
        "A/2.mp3": make_mp3(title="Two"),
        "A/cover.jpg": JPEG_BYTES,
    })

    first = orchestrator.run_scan()
    before = _rows(database)
    second = orchestrator.run_scan()

    assert first.new_count == 2
    assert second.new_count == 0
    assert second.updated_count == 2
    assert second.total_catalog_size == 2
    assert _rows(database) == before


def test_rescan_preserves_play_count(orchestrator, memory_store, database, make_mp3):
    memory_store.objects["A/1.mp3"] = make_mp3(title="One")
    orchestrator.run_scan()

    conn = sqlite3.connect(database.db_path)
    conn.execute("UPDATE songs SET play_count = 5")
    conn.commit()
    conn.close()

    orchestrator.run_scan()
    assert database.get_song_by_path(URL + "A/1.mp3").play_count == 5


def test_removed_tag_is_cleared_on_rescan(orchestrator, memory_store, database, make_mp3):
    memory_store.objects["A/1.mp3"] = make_mp3(title="One", composer="J. Doe")
    orchestrator.run_scan()
    song = database.get_song_by_path(URL + "A/1.mp3")
    assert database.get_extended_metadata(song.id).composer == "J. Doe"

    memory_store.objects["A/1.mp3"] = make_mp3(title="One")
    orchestrator.run_scan()

    assert database.get_song_by_path(URL + "A/1.mp3").id == song.id
    assert database.get_extended_metadata(song.id).composer is None


def test_unparseable_object_is_cataloged_with_fallbacks(orchestrator, memory_store, database, make_mp3):
    memory_store.objects.update({
        "A/1.mp3": make_mp3(title="One"),
        "A/2.mp3": make_mp3(title="Two"),
        "A/3.mp3": b"this is not audio at all",
    })

    result = orchestrator.run_scan()

    assert len(result.errors) == 1
    assert result.errors[0].object_key == "A/3.mp3"
    rows = _rows(database)
    assert rows[URL + "A/1.mp3"].title == "One"
    assert rows[URL + "A/2.mp3"].title == "Two"
    assert rows[URL + "A/3.mp3"].title == "3"


def test_fetch_failure_skips_only_that_object(memory_store, database, cover_storage, make_mp3):
    memory_store.objects.update({
        "A/1.mp3": make_mp3(title="One"),
        "A/2.mp3": make_mp3(title="Two"),
        "A/3.mp3": make_mp3(title="Three"),
    })
    memory_store.fetch_errors["A/2.mp3"] = ObjectNotFound("Object not found: A/2.mp3")
    orchestrator = ScanOrchestrator(memory_store, database, cover_storage, workers=4)

    result = orchestrator.run_scan()

    assert result.scanned_count == 2
    assert [e.object_key for e in result.errors] == ["A/2.mp3"]
    assert set(_rows(database)) == {URL + "A/1.mp3", URL + "A/3.mp3"}


def test_each_object_yields_one_row(memory_store, database, cover_storage, make_mp3):
    for i in range(8):
        memory_store.objects[f"Album{i % 2}/{i}.mp3"] = make_mp3(title=f"Song {i}")
    orchestrator = ScanOrchestrator(memory_store, database, cover_storage, workers=4)

    orchestrator.run_scan()
    orchestrator.run_scan()

    assert database.count_songs() == 8


def test_listing_failure_is_fatal(orchestrator, memory_store):
    memory_store.listing_error = StoreUnavailable("R2 unreachable")

    with pytest.raises(StoreUnavailable):
        orchestrator.run_scan()
    assert orchestrator.state == ScanState.FAILED
    assert not orchestrator.is_running


def test_unexpected_listing_error_is_wrapped(orchestrator, memory_store):
    memory_store.listing_error = RuntimeError("boom")

    with pytest.raises(StoreUnavailable) as exc:
        orchestrator.run_scan()
    assert "boom" in exc.value.message


def test_empty_bucket(orchestrator):
    result = orchestrator.run_scan()
    assert result.scanned_count == 0
    assert result.albums == []
    assert result.total_catalog_size == 0


def test_cancel_before_start(orchestrator, memory_store, database, make_mp3):
    memory_store.objects["A/1.mp3"] = make_mp3(title="One")
    cancel = threading.Event()
    cancel.set()

    result = orchestrator.run_scan(cancel_event=cancel)

    assert result.cancelled
    assert result.scanned_count == 0
    assert database.count_songs() == 0


def test_cancel_mid_scan_keeps_completed_items(orchestrator, memory_store, database, make_mp3):
    for i in range(3):
        memory_store.objects[f"A/{i}.mp3"] = make_mp3(title=f"Song {i}")
    cancel = threading.Event()
    memory_store.on_fetch = lambda key: cancel.set()

    result = orchestrator.run_scan(cancel_event=cancel)

    assert result.cancelled
    assert result.scanned_count == 1
    assert database.count_songs() == 1


def test_concurrent_scan_is_rejected(orchestrator, memory_store):
    listing_started = threading.Event()
    release = threading.Event()
    original = memory_store.list_objects

    def slow_listing(prefix=""):
        listing_started.set()
        release.wait(5)
        return original(prefix)

    memory_store.list_objects = slow_listing
    worker = threading.Thread(target=orchestrator.run_scan)
    worker.start()
    try:
        assert listing_started.wait(5)
        assert orchestrator.is_running
        with pytest.raises(ScanInProgress):
            orchestrator.run_scan()
    finally:
        release.set()
        worker.join(5)

    assert not orchestrator.is_running
    assert orchestrator.last_result is not None


def test_same_named_folders_do_not_share_covers(orchestrator, memory_store, database, make_mp3):
    memory_store.objects.update({
        "ArtistA/Greatest Hits/cover.jpg": JPEG_BYTES,
        "ArtistA/Greatest Hits/a.mp3": make_mp3(title="A"),
        "ArtistB/Greatest Hits/b.mp3": make_mp3(title="B"),
    })

    result = orchestrator.run_scan()

    assert result.albums == ["Greatest Hits"]
    rows = _rows(database)
    assert rows[URL + "ArtistA/Greatest Hits/a.mp3"].cover_path == f"/covers/{content_hash(JPEG_BYTES)}.jpg"
    assert rows[URL + "ArtistB/Greatest Hits/b.mp3"].cover_path == "/placeholder-album.png"


def test_identical_embedded_covers_share_one_file(orchestrator, memory_store, database,
                                                   cover_storage, make_mp3):
    picture = (PNG_BYTES, "image/png")
    memory_store.objects.update({
        "First/1.mp3": make_mp3(title="One", picture=picture),
        "Second/2.mp3": make_mp3(title="Two", picture=picture),
    })

    orchestrator.run_scan()

    rows = _rows(database)
    expected = f"/covers/{content_hash(PNG_BYTES)}.png"
    assert rows[URL + "First/1.mp3"].cover_path == expected
    assert rows[URL + "Second/2.mp3"].cover_path == expected
    assert len(list(cover_storage.covers_dir.iterdir())) == 1


def test_failed_catalog_count_does_not_fail_scan(orchestrator, memory_store, database,
                                                 make_mp3, monkeypatch):
    memory_store.objects["A/1.mp3"] = make_mp3(title="One")

    def locked():
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(database, "count_songs", locked)

    result = orchestrator.run_scan()

    assert orchestrator.state == ScanState.COMPLETED
    assert result.scanned_count == 1
    assert result.total_catalog_size == 0
    assert [e.object_key for e in result.errors] == [CATALOG_ERROR_KEY]
    assert orchestrator.last_result is result

    monkeypatch.undo()
    assert database.count_songs() == 1
