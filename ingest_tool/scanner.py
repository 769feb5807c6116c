"""
Bucket scanner.
Lists the object store, groups objects into albums, and pushes every audio
object through metadata extraction, cover resolution and catalog sync.
"""

import concurrent.futures
import logging
import threading
import time
from typing import List, Optional

from shared.config import ScanConfig
from shared.constants import DEFAULT_SCAN_WORKERS
from shared.database import CatalogDatabase
from shared.exceptions import CatalogWriteFailure, IngestError, ScanInProgress, StoreUnavailable
from shared.models import AlbumEntry, ScanError, ScanResult, ScanState
from .audio import MetadataExtractor
from .catalog import CatalogSynchronizer
from .covers import CoverResolver, CoverStorage
from .grouping import audio_entries, group_by_album
from .storage_provider import ObjectStore

# Error key for failures that belong to the catalog, not to one object
CATALOG_ERROR_KEY = "(catalog)"


class ScanAccumulator:
    """Thread-safe collector for the counters and errors of one scan."""

    def __init__(self):
        self.lock = threading.Lock()
        self.result = ScanResult()

    def record_outcome(self, created: bool):
        with self.lock:
            self.result.scanned_count += 1
            if created:
                self.result.new_count += 1
            else:
                self.result.updated_count += 1

    def record_error(self, object_key: str, message: str):
        with self.lock:
            self.result.errors.append(ScanError(object_key=object_key, message=message))

    def mark_cancelled(self):
        with self.lock:
            self.result.cancelled = True


class ScanOrchestrator:
    """
    Runs full scans of one bucket into one catalog.

    Only one scan runs at a time per orchestrator; a second caller gets
    ScanInProgress instead of interleaving writes with the first.
    """

    def __init__(self, store: ObjectStore, database: CatalogDatabase, cover_storage: CoverStorage,
                 workers: int = DEFAULT_SCAN_WORKERS,
                 extractor: Optional[MetadataExtractor] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.store = store
        self.database = database
        self.cover_storage = cover_storage
        self.workers = max(1, workers)
        self.extractor = extractor or MetadataExtractor(logger=self.logger)
        self.catalog = CatalogSynchronizer(database, logger=self.logger)

        self._scan_lock = threading.Lock()
        self._state = ScanState.IDLE
        self._state_lock = threading.Lock()
        self.last_result: Optional[ScanResult] = None

    @classmethod
    def from_config(cls, config: ScanConfig, store: ObjectStore,
                    logger: Optional[logging.Logger] = None) -> 'ScanOrchestrator':
        database = CatalogDatabase(config.db_path)
        cover_storage = CoverStorage(config.covers_dir, logger=logger)
        return cls(store, database, cover_storage, workers=config.scan_workers, logger=logger)

    @property
    def state(self) -> ScanState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: ScanState):
        with self._state_lock:
            self._state = state
        self.logger.debug(f"Scan state -> {state.value}")

    @property
    def is_running(self) -> bool:
        return self._scan_lock.locked()

    def run_scan(self, cancel_event: Optional[threading.Event] = None) -> ScanResult:
        """
        Run one full pass over the bucket.

        Args:
            cancel_event: Checked before every item; when set, the scan
                          stops and returns what it completed so far

        Returns:
            ScanResult, including per-object errors

        Raises:
            ScanInProgress: If another scan is running
            StoreUnavailable: If the bucket cannot be listed
        """
        if not self._scan_lock.acquire(blocking=False):
            raise ScanInProgress("A scan is already in progress")
        try:
            result = self._run(cancel_event or threading.Event())
            self.last_result = result
            return result
        finally:
            self._scan_lock.release()

    def _run(self, cancel_event: threading.Event) -> ScanResult:
        started = time.monotonic()
        accumulator = ScanAccumulator()

        self._set_state(ScanState.LISTING)
        self.logger.info("Starting bucket scan...")
        try:
            objects = self.store.list_objects()
        except Exception as e:
            self._set_state(ScanState.FAILED)
            self.logger.error(f"Bucket listing failed: {e}")
            if isinstance(e, StoreUnavailable):
                raise
            raise StoreUnavailable(f"Bucket listing failed: {e}") from e

        albums = group_by_album(objects, bucket_name=self.store.bucket_name)
        accumulator.result.albums = list(albums.keys())

        tasks = [
            (entry, entries)
            for entries in albums.values()
            for entry in audio_entries(entries)
        ]
        self.logger.info(f"Found {len(tasks)} audio files in {len(albums)} albums")

        self._set_state(ScanState.PER_ALBUM)
        resolver = CoverResolver(self.store, self.cover_storage, logger=self.logger)

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers,
                                                   thread_name_prefix="ScanWorker") as executor:
            futures = [
                executor.submit(self._process_item, entry, entries, resolver, accumulator, cancel_event)
                for entry, entries in tasks
            ]
            for future in concurrent.futures.as_completed(futures):
                future.result()

        result = accumulator.result
        try:
            result.total_catalog_size = self.catalog.total_catalog_size()
        except CatalogWriteFailure as e:
            # Items are already written; fall back to the last known size
            self.logger.error(f"Could not count catalog rows: {e.message}")
            accumulator.record_error(CATALOG_ERROR_KEY, e.message)
            result.total_catalog_size = self.last_result.total_catalog_size if self.last_result else 0
        result.duration_seconds = time.monotonic() - started
        self._set_state(ScanState.COMPLETED)

        self.logger.info(
            f"Scan complete: {result.scanned_count} scanned, {result.new_count} new, "
            f"{result.updated_count} updated, {result.total_catalog_size} total, "
            f"{len(result.errors)} errors in {result.duration_seconds:.1f}s"
            + (" (cancelled)" if result.cancelled else "")
        )
        return result

    def _process_item(self, entry: AlbumEntry, album_entries: List[AlbumEntry],
                      resolver: CoverResolver, accumulator: ScanAccumulator,
                      cancel_event: threading.Event):
        """Fetch -> extract -> cover -> catalog for one object. Never raises."""
        key = entry.key
        if cancel_event.is_set():
            accumulator.mark_cancelled()
            return

        try:
            data = self.store.fetch_bytes(key)
            size = entry.object.size or len(data)
            metadata = self.extractor.extract(data, size, entry.file_name, entry.album_name)
            if metadata.parse_error:
                accumulator.record_error(key, metadata.parse_error)

            cover_path = resolver.resolve(metadata, album_entries, object_key=key)
            identity = self.store.access_url(key)
            outcome = self.catalog.sync(identity, metadata, cover_path)
            accumulator.record_outcome(outcome.created)
        except IngestError as e:
            self.logger.error(f"Error processing {key}: {e.message}")
            accumulator.record_error(key, e.message)
        except Exception as e:
            self.logger.exception(f"Unexpected error processing {key}")
            accumulator.record_error(key, str(e) or type(e).__name__)
