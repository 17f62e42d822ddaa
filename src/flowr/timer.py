"""Session timer state machine.

``idle -> running -> stopped|finished -> idle``. Every command is guarded so
that a command arriving in the wrong state is a silent no-op: a second start
never moves ``started_at``, a stop without a running session never reaches the
history, and finishing an already finished session does nothing. When two
actors (or a manual stop and a voice stop) race, only the command that
observes ``running`` wins.

When a ``SharedSessionStore`` is attached, each command re-reads the whole
record before deciding and writes the whole next record afterwards. A failed
read leaves the last known in-memory record in charge; a failed write still
completes the command locally, and the in-memory record stays authoritative
until a later write succeeds.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Callable, List, Optional

from .clock import Clock, now_ms
from .events import RESET, STARTED, STOPPED, EventEmitter
from .history import MemoryHistory
from .models import (
    FINISHED,
    MANUAL,
    MODE_KEYWORD,
    RUNNING,
    SCHEDULED,
    STOP_REASONS,
    STOPPED as STATUS_STOPPED,
    VOICE_MODES,
    Session,
    VoiceConfig,
)
from .policy import decide_stop
from .schedule import finish_if_due
from .speech import SpeechRecognizer, SpeechTrigger, UnsupportedRecognizer
from .store import SharedSessionStore

logger = logging.getLogger("flowr.timer")


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionTimer:
    def __init__(
        self,
        store: Optional[SharedSessionStore] = None,
        history=None,
        recognizer: Optional[SpeechRecognizer] = None,
        voice: Optional[VoiceConfig] = None,
        events: Optional[EventEmitter] = None,
        clock: Clock = now_ms,
        id_factory: Callable[[], str] = new_session_id,
        restart_delay: float = 0.5,
        spawn=None,
    ) -> None:
        self.events = events or EventEmitter()
        self.voice = voice or VoiceConfig()
        self._store = store
        self._history = history if history is not None else MemoryHistory()
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._session = Session()
        self._unsaved = False
        if store is not None:
            self._session = store.read() or Session()
        self._trigger = SpeechTrigger(
            recognizer or UnsupportedRecognizer(),
            on_utterance=self._handle_utterance,
            should_listen=self.is_listening,
            notify=self.events.emit,
            restart_delay=restart_delay,
            spawn=spawn,
        )

    # Queries

    @property
    def trigger(self) -> SpeechTrigger:
        return self._trigger

    @property
    def voice_supported(self) -> bool:
        return self._trigger.supported

    def current_session(self) -> Session:
        with self._lock:
            return self._load()

    def last_known_session(self) -> Session:
        """Most recent record without touching the store."""
        return self._session

    def history(self, limit: Optional[int] = None) -> List[Session]:
        return self._history.list(limit)

    def is_listening(self) -> bool:
        # Lock-free: called from the recognition thread.
        return self._session.running and self.voice.enabled

    # Commands

    def start(self, duration_ms: Optional[int] = None) -> Optional[Session]:
        if duration_ms is not None and duration_ms < 0:
            raise ValueError("duration_ms must be >= 0.")
        with self._lock:
            current = self._load()
            if current.running:
                logger.debug("Start ignored: session already running")
                return None
            started = self._clock()
            scheduled = started + duration_ms if duration_ms is not None else None
            session = Session(
                status=RUNNING, started_at=started, scheduled_finish_at=scheduled
            )
            self._commit(session)
            logger.info("Session started at %s", started)
            self.events.emit(
                STARTED, started_at=started, scheduled_finish_at=scheduled
            )
            self._trigger.disarm()
            if self.voice.enabled:
                self._trigger.arm()
            return session

    def stop(self, reason: str = MANUAL) -> Optional[Session]:
        if reason not in STOP_REASONS:
            raise ValueError(f"Unknown stop reason: {reason!r}")
        with self._lock:
            current = self._load()
            if not current.running:
                logger.debug("Stop (%s) ignored: session is %s", reason, current.status)
                return None
            return self._finalize(current, STATUS_STOPPED, self._clock(), reason)

    def finish(self, scheduled_at: int) -> Optional[Session]:
        with self._lock:
            current = self._load()
            if not current.running:
                logger.debug("Finish ignored: session is %s", current.status)
                return None
            return self._finalize(current, FINISHED, scheduled_at, SCHEDULED)

    def check_schedule(self) -> Optional[Session]:
        with self._lock:
            current = self._load()
            due = finish_if_due(current, self._clock())
            if due is current:
                return None
            return self.finish(due.ended_at)

    def reset(self) -> Session:
        with self._lock:
            self._trigger.disarm()
            session = Session()
            self._commit(session)
            logger.info("Session reset")
            self.events.emit(RESET)
            return session

    def set_voice_enabled(self, enabled: bool) -> None:
        with self._lock:
            self.voice.enabled = bool(enabled)
            self._load()
            if self.voice.enabled:
                logger.info("Voice auto-stop enabled")
                self._trigger.arm()
            else:
                logger.info("Voice auto-stop disabled")
                self._trigger.disarm()

    def set_voice_mode(self, mode: str) -> None:
        if mode not in VOICE_MODES:
            raise ValueError(f"Voice mode must be one of {VOICE_MODES}, got {mode!r}")
        with self._lock:
            self.voice.mode = mode

    def set_keyword(self, keyword: str) -> None:
        with self._lock:
            self.voice.keyword = (keyword or "").strip()

    def simulate_utterance(self, text: Optional[str] = None) -> Optional[Session]:
        """Feed text through the same path as recognized speech."""
        if text is None:
            keyword = self.voice.keyword if self.voice.mode == MODE_KEYWORD else ""
            text = keyword or "hello"
        logger.info("Simulated utterance (%s chars)", len(text))
        return self._handle_utterance(text)

    def shutdown(self) -> None:
        self._trigger.disarm()

    # Internals

    def _handle_utterance(self, text: str) -> Optional[Session]:
        with self._lock:
            current = self._load()
            reason = decide_stop(text, self.voice, current.status)
            if reason is None:
                return None
            return self.stop(reason)

    def _load(self) -> Session:
        if self._store is not None and not self._unsaved:
            stored = self._store.read()
            if stored is not None:
                self._session = stored
        return self._session

    def _commit(self, session: Session) -> None:
        self._session = session
        if self._store is None:
            return
        self._unsaved = not self._store.write(session)
        if self._unsaved:
            logger.warning("Continuing with in-memory session state")

    def _finalize(
        self, current: Session, status: str, ended_at: int, reason: str
    ) -> Session:
        session = replace(
            current,
            id=self._id_factory(),
            status=status,
            ended_at=ended_at,
            duration_ms=max(0, ended_at - current.started_at),
            stop_reason=reason,
            transcript_snippet=None,
            **self.voice.latched(),
        )
        self._commit(session)
        self._trigger.disarm()
        self._history.append(session)
        logger.info(
            "Session %s %s (%s) after %s ms", session.id, status, reason, session.duration_ms
        )
        self.events.emit(
            STOPPED,
            reason=reason,
            duration_ms=session.duration_ms,
            session_id=session.id,
            status=status,
        )
        return session
