"""
Scheduled scans.
Runs the orchestrator on a fixed interval, retrying a failed run a bounded
number of times before waiting for the next tick.
"""

import logging
import threading
from typing import Optional

from shared.config import ScanConfig
from shared.constants import (
    DEFAULT_SCAN_INITIAL_DELAY_SECONDS,
    DEFAULT_SCAN_INTERVAL_HOURS,
    DEFAULT_SCAN_MAX_RETRIES,
    DEFAULT_SCAN_RETRY_DELAY_SECONDS,
)
from shared.exceptions import IngestError, ScanInProgress
from shared.models import ScanResult
from .scanner import ScanOrchestrator


class ScanScheduler:
    """
    Periodic driver for a ScanOrchestrator.

    The first scan starts after a short initial delay, later ones every
    interval. Failures never escape the scheduler thread.
    """

    def __init__(self, orchestrator: ScanOrchestrator,
                 interval_seconds: float = DEFAULT_SCAN_INTERVAL_HOURS * 3600,
                 max_retries: int = DEFAULT_SCAN_MAX_RETRIES,
                 retry_delay: float = DEFAULT_SCAN_RETRY_DELAY_SECONDS,
                 initial_delay: float = DEFAULT_SCAN_INITIAL_DELAY_SECONDS,
                 logger: Optional[logging.Logger] = None):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.initial_delay = initial_delay
        self.logger = logger or logging.getLogger(__name__)

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config: ScanConfig, orchestrator: ScanOrchestrator,
                    logger: Optional[logging.Logger] = None) -> 'ScanScheduler':
        return cls(
            orchestrator,
            interval_seconds=config.scan_interval_hours * 3600,
            max_retries=config.scan_max_retries,
            retry_delay=config.scan_retry_delay,
            initial_delay=config.scan_initial_delay,
            logger=logger,
        )

    def run_once(self) -> Optional[ScanResult]:
        """
        Run one scheduled scan with retries.

        Returns:
            The ScanResult, or None if the scan was skipped or every
            attempt failed
        """
        total_attempts = self.max_retries + 1
        for attempt in range(1, total_attempts + 1):
            if self._stop_event.is_set():
                return None

            self.logger.info(f"Starting scheduled music scan (Attempt {attempt}/{total_attempts})...")
            try:
                result = self.orchestrator.run_scan(cancel_event=self._stop_event)
                self.logger.info(f"Scheduled scan complete: {result.to_dict()}")
                return result
            except ScanInProgress:
                self.logger.info("Scan already in progress, skipping...")
                return None
            except IngestError as e:
                self.logger.error(f"Scheduled scan failed (Attempt {attempt}): {e.message}")
            except Exception as e:
                self.logger.exception(f"Scheduled scan crashed (Attempt {attempt}): {e}")

            if attempt < total_attempts:
                self.logger.info(f"Retrying in {self.retry_delay} seconds...")
                if self._stop_event.wait(self.retry_delay):
                    return None

        self.logger.error("Max retries reached. Giving up until next schedule.")
        return None

    def _loop(self):
        if self._stop_event.wait(self.initial_delay):
            return
        while not self._stop_event.is_set():
            self.run_once()
            if self._stop_event.wait(self.interval_seconds):
                break
        self.logger.info("Scan scheduler stopped")

    def start(self) -> threading.Thread:
        """Start the scheduler in a daemon thread."""
        if self._thread and self._thread.is_alive():
            return self._thread
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="ScanScheduler", daemon=True)
        self._thread.start()
        self.logger.info(f"Scheduling music scan (every {self.interval_seconds / 3600:g} hours)...")
        return self._thread

    def stop(self, timeout: Optional[float] = None):
        """Stop the loop; a running scan is cancelled between items."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)

    def run_forever(self):
        """Run the loop in the calling thread until stop() or KeyboardInterrupt."""
        self._stop_event.clear()
        try:
            self._loop()
        except KeyboardInterrupt:
            self._stop_event.set()
