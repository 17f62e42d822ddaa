"""Shared session record and actor membership.

The session record is a single JSON file that several independent actors
(an interactive client, a bot, a periodic refresher) read and write. It is
not a transactional store: every access is a whole-record read or a
whole-record replace, the last write wins, and writers are not serialized.
Correctness comes from the state machine guards in ``SessionTimer`` (double
start, stop without start, idempotent finish), which turn a lost race into a
no-op instead of a corrupted record.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Dict, List, Optional, Tuple

from .clock import Clock, now_ms
from .models import ActorInfo, Session
from .session_io import session_from_dict, session_to_dict
from .storage import read_text, write_text_atomic

logger = logging.getLogger("flowr.store")


class SharedSessionStore:
    def __init__(self, path: str) -> None:
        self.path = path

    def read(self) -> Optional[Session]:
        """Current record; an idle session when none exists, ``None`` on failure."""
        try:
            raw = read_text(self.path)
            if not raw:
                return Session()
            return session_from_dict(json.loads(raw))
        except (OSError, ValueError) as exc:
            logger.warning("Session store read failed (%s): %s", self.path, exc)
            return None

    def write(self, session: Session) -> bool:
        try:
            write_text_atomic(self.path, json.dumps(session_to_dict(session), indent=2))
        except OSError as exc:
            logger.warning("Session store write failed (%s): %s", self.path, exc)
            return False
        return True


class ActorRegistry:
    """Connected actors keyed by id. Connect and disconnect are idempotent."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._actors: Dict[str, ActorInfo] = {}
        self._lock = threading.Lock()

    def connect(self, actor_id: str, display_name: str) -> Tuple[ActorInfo, bool]:
        with self._lock:
            existing = self._actors.get(actor_id)
            if existing is not None:
                return existing, False
            info = ActorInfo(actor_id, display_name, self._clock())
            self._actors[actor_id] = info
        logger.info("Actor connected: %s (%s)", display_name, actor_id)
        return info, True

    def disconnect(self, actor_id: str) -> Optional[ActorInfo]:
        with self._lock:
            info = self._actors.pop(actor_id, None)
        if info is not None:
            logger.info("Actor disconnected: %s (%s)", info.display_name, actor_id)
        return info

    def remove_on_leave(self, actor_id: str) -> Optional[ActorInfo]:
        """Handle an external membership-loss signal."""
        return self.disconnect(actor_id)

    def get(self, actor_id: str) -> Optional[ActorInfo]:
        with self._lock:
            return self._actors.get(actor_id)

    def list(self) -> List[ActorInfo]:
        with self._lock:
            return list(self._actors.values())

    def __contains__(self, actor_id: str) -> bool:
        with self._lock:
            return actor_id in self._actors
