# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Telemetry Collector contributors

"""Scheduler driving the sync cycle on a fixed timer."""

import threading
import time
from typing import Any, Callable

from collector_logging import Logger

from .exceptions import AuthenticationError


class SyncScheduler:
    """Runs enrichment sync every tick and the full sync cycle every N ticks.

    Ticks never overlap: a tick that finds the previous one still running is
    skipped.
    """

    def __init__(
        self,
        service: Any,
        tick_interval_seconds: int = 15,
        ping_every_ticks: int = 2,
        logger: Logger | None = None,
        on_fatal: Callable[[Exception], None] | None = None,
    ):
        """Initialize the scheduler.

        Args:
            service: ConfigSyncService instance
            tick_interval_seconds: Seconds between ticks
            ping_every_ticks: Run the full sync cycle every this many ticks
            logger: Logger instance
            on_fatal: Called with the exception when the control plane rejects
                the collector secret; the loop stops afterwards
        """
        self.service = service
        self.tick_interval_seconds = tick_interval_seconds
        self.ping_every_ticks = max(1, ping_every_ticks)
        self.logger = logger
        self.on_fatal = on_fatal
        self._stop_event = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._running = False
        self._tick_count = 0

    def start(self):
        """Start the scheduler in a background thread."""
        if self._running:
            if self.logger:
                self.logger.warning("Scheduler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        self._running = True

        if self.logger:
            self.logger.info(
                "Sync scheduler started",
                tick_interval_seconds=self.tick_interval_seconds,
                ping_every_ticks=self.ping_every_ticks,
            )

    def stop(self):
        """Stop the scheduler."""
        if not self._running:
            return

        self._stop_event.set()

        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=10)

        self._running = False

        if self.logger:
            self.logger.info("Sync scheduler stopped")

    def run_once(self) -> bool:
        """Run a single tick now.

        Returns:
            False if another tick was already in progress and this one was skipped

        Raises:
            AuthenticationError: If the control plane rejects the collector secret
        """
        if not self._tick_lock.acquire(blocking=False):
            if self.logger:
                self.logger.warning("Previous tick still running, skipping")
            return False

        try:
            self.service.sync_enrichment_tables()
            if self._tick_count % self.ping_every_ticks == 0:
                start_time = time.monotonic()
                self.service.run_cycle()
                if self.logger:
                    self.logger.debug(
                        "Sync cycle completed",
                        duration_seconds=time.monotonic() - start_time,
                    )
            return True
        finally:
            self._tick_count += 1
            self._tick_lock.release()

    def _run_loop(self):
        """Main scheduler loop."""
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except AuthenticationError as e:
                if self.logger:
                    self.logger.error("Control plane rejected collector secret", error=str(e))
                self._stop_event.set()
                if self.on_fatal:
                    self.on_fatal(e)
                return
            except Exception as e:
                if self.logger:
                    self.logger.error(
                        "Error in scheduled sync tick",
                        error=str(e),
                        exc_info=True,
                    )

            # Wait for next tick or stop signal
            self._stop_event.wait(self.tick_interval_seconds)

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running and not self._stop_event.is_set()
