"""Synchronous event fan-out for observers of the timer."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

STARTED = "started"
STOPPED = "stopped"
RESET = "reset"
VOICE_PERMISSION_DENIED = "voice_permission_denied"
VOICE_UNSUPPORTED = "voice_unsupported"
VOICE_ERROR = "voice_error"

logger = logging.getLogger("flowr.events")

Listener = Callable[[str, dict], None]


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._any: List[Listener] = []

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def on_any(self, listener: Listener) -> None:
        self._any.append(listener)

    def emit(self, event: str, **payload: Any) -> None:
        logger.debug("Event %s %s", event, payload)
        for listener in list(self._listeners.get(event, [])) + list(self._any):
            try:
                listener(event, payload)
            except Exception:
                # Observers never break the command that emitted the event.
                logger.exception("Event listener failed for %s", event)
