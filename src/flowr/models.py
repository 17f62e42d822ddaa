"""Data models for Flowr."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

IDLE = "idle"
RUNNING = "running"
STOPPED = "stopped"
FINISHED = "finished"
STATUSES = (IDLE, RUNNING, STOPPED, FINISHED)

MANUAL = "manual"
VOICE_ANY = "voice_any"
VOICE_KEYWORD = "voice_keyword"
SCHEDULED = "scheduled"
ERROR = "error"
STOP_REASONS = (MANUAL, VOICE_ANY, VOICE_KEYWORD, SCHEDULED, ERROR)

MODE_ANY = "any"
MODE_KEYWORD = "keyword"
VOICE_MODES = (MODE_ANY, MODE_KEYWORD)


@dataclass(frozen=True)
class Session:
    """One timed run. Instants are epoch milliseconds."""

    status: str = IDLE
    id: Optional[str] = None
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    scheduled_finish_at: Optional[int] = None
    duration_ms: Optional[int] = None
    stop_reason: Optional[str] = None
    voice_enabled: bool = False
    voice_mode: Optional[str] = None
    keyword: Optional[str] = None
    transcript_snippet: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.status == RUNNING

    @property
    def finalized(self) -> bool:
        return self.status in (STOPPED, FINISHED)

    def elapsed_ms(self, now: int) -> int:
        if self.started_at is None:
            return 0
        if self.finalized and self.duration_ms is not None:
            return self.duration_ms
        return max(0, now - self.started_at)


@dataclass
class VoiceConfig:
    enabled: bool = False
    mode: str = MODE_ANY
    keyword: str = ""

    def latched(self) -> dict:
        """Voice fields recorded on a finalized session."""
        if not self.enabled:
            return {"voice_enabled": False, "voice_mode": None, "keyword": None}
        keyword = None
        if self.mode == MODE_KEYWORD:
            keyword = self.keyword or None
        return {"voice_enabled": True, "voice_mode": self.mode, "keyword": keyword}


@dataclass(frozen=True)
class ActorInfo:
    actor_id: str
    display_name: str
    connected_at: int
