"""Bounded session history, most recent first."""

from __future__ import annotations

import logging
import os
from typing import List, Optional

from .models import Session
from .session_io import dumps_sessions, loads_sessions
from .storage import read_text, write_text_atomic

HISTORY_LIMIT = 10

logger = logging.getLogger("flowr.history")


class HistoryLog:
    def __init__(self, path: str, limit: int = HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be >= 1.")
        self.path = path
        self.limit = limit

    def _load(self) -> List[Session]:
        raw = read_text(self.path)
        return loads_sessions(raw) if raw else []

    def list(self, limit: Optional[int] = None) -> List[Session]:
        try:
            sessions = self._load()
        except (OSError, ValueError) as exc:
            logger.warning("History read failed (%s): %s", self.path, exc)
            return []
        bound = self.limit if limit is None else max(0, min(limit, self.limit))
        return sessions[:bound]

    def append(self, session: Session) -> bool:
        if not session.finalized:
            raise ValueError("Only stopped or finished sessions can be appended.")
        try:
            sessions = self._load()
        except (OSError, ValueError) as exc:
            logger.warning("History unreadable (%s), starting a new one: %s", self.path, exc)
            self._set_aside()
            sessions = []
        sessions = [session] + sessions
        try:
            write_text_atomic(self.path, dumps_sessions(sessions[: self.limit]))
        except OSError as exc:
            logger.warning("History write failed (%s): %s", self.path, exc)
            return False
        return True

    def _set_aside(self) -> None:
        if not os.path.exists(self.path):
            return
        target = self.path + ".corrupt"
        try:
            os.replace(self.path, target)
        except OSError as exc:
            logger.warning("Could not move unreadable history aside: %s", exc)
            return
        logger.warning("Unreadable history kept as %s", target)


class MemoryHistory:
    """In-process history used when no state directory is configured."""

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        self.limit = limit
        self._sessions: List[Session] = []

    def list(self, limit: Optional[int] = None) -> List[Session]:
        bound = self.limit if limit is None else max(0, min(limit, self.limit))
        return list(self._sessions[:bound])

    def append(self, session: Session) -> bool:
        if not session.finalized:
            raise ValueError("Only stopped or finished sessions can be appended.")
        self._sessions = ([session] + self._sessions)[: self.limit]
        return True
