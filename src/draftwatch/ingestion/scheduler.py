"""Background scheduler driving periodic monitor ticks."""

from __future__ import annotations

import logging
import threading

from .monitor import EmailMonitor

LOGGER = logging.getLogger(__name__)


class MonitorScheduler:
    """Run ``EmailMonitor.run_tick`` on a fixed cadence in a daemon thread."""

    def __init__(self, monitor: EmailMonitor, *, tick_seconds: float = 300.0) -> None:
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self._monitor = monitor
        self._tick_seconds = tick_seconds
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Return ``True`` while the background loop is active."""
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the loop; return ``False`` when it was already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                LOGGER.info("Email monitor already running")
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="draftwatch-scheduler",
                daemon=True,
            )
            self._thread.start()
        LOGGER.info("Email monitor started (tick every %ss)", self._tick_seconds)
        return True

    def stop(self, timeout: float | None = None) -> bool:
        """Stop scheduling ticks; an in-flight tick is allowed to finish.

        Returns ``False`` when the loop was not running. With ``timeout``
        the call waits that long for the background thread to exit.
        """
        with self._lock:
            thread = self._thread
            if thread is None:
                return False
            self._stop_event.set()
            self._thread = None
        if timeout is not None and thread is not threading.current_thread():
            thread.join(timeout)
        LOGGER.info("Email monitor stopped")
        return True

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self._monitor.run_tick()
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.exception("Monitor tick failed")
            stop_event.wait(self._tick_seconds)


__all__ = ["MonitorScheduler"]
