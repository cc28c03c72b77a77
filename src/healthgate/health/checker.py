"""
Health check polling loop.

Runs a probe on a background thread, first immediately and then every
`interval` seconds, and puts each boolean result on `events`. After close()
no further result is ever queued, so a consumer that closes the checker
before its final shutdown cannot be handed a stale event.
"""

import queue
import logging
import threading
from typing import Optional

from .probe import HealthProbe


logger = logging.getLogger(__name__)


class HealthChecker:
    """Polls a HealthProbe and publishes True/False events."""

    def __init__(self, probe: HealthProbe, interval: float = 5.0):
        self.probe = probe
        self.interval = interval
        self.events: "queue.SimpleQueue[bool]" = queue.SimpleQueue()

        self._stop = threading.Event()
        self._emit_lock = threading.Lock()
        self._closed = False
        self._thread: Optional[threading.Thread] = None
        self.checks = 0

    @property
    def closed(self) -> bool:
        with self._emit_lock:
            return self._closed

    def start(self) -> "HealthChecker":
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name="health-check", daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        logger.debug(f"Health check loop started, interval {self.interval}s")
        first_run = True
        try:
            while not self._stop.is_set():
                if not first_run and self._stop.wait(self.interval):
                    break
                first_run = False

                try:
                    healthy = self.probe.check().healthy
                except Exception as e:
                    logger.exception(f"Health check error: {e}")
                    healthy = False
                self.checks += 1
                self._emit(healthy)
        finally:
            self.probe.close()
            logger.debug("Health check loop stopped")

    def _emit(self, healthy: bool) -> None:
        with self._emit_lock:
            if self._closed:
                logger.debug(f"Checker closed, dropping health event {healthy}")
                return
            self.events.put(healthy)

    def close(self) -> None:
        """Stop polling. Safe to call more than once and from any thread."""
        with self._emit_lock:
            self._closed = True
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the polling thread. Returns False if it is still running."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()
