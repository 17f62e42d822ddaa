"""Fixed-interval background loop."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("flowr.ticker")


class Ticker:
    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], None],
        name: str = "flowr-ticker",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0.")
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._name = name
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return False
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._run, args=(stop_event,), name=self._name, daemon=True
            )
            self._thread.start()
        return True

    def stop(self) -> None:
        with self._lock:
            stop_event = self._stop_event
            thread = self._thread
            self._stop_event = None
            self._thread = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval_seconds + 1.0)

    def tick(self) -> None:
        try:
            self._callback()
        except Exception:
            logger.exception("Ticker %s callback failed", self._name)

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval_seconds):
            self.tick()
