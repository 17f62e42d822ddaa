"""Session persistence format."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List, Optional

from .models import STATUSES, STOP_REASONS, VOICE_MODES, Session

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_instant(value: Optional[int]) -> Optional[str]:
    """Epoch milliseconds to an ISO 8601 UTC string with millisecond precision."""
    if value is None:
        return None
    seconds, millis = divmod(int(value), 1000)
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{stamp:%Y-%m-%dT%H:%M:%S}.{millis:03d}Z"


def parse_instant(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid instant: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    stamp = datetime.fromisoformat(text)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    delta = stamp - _EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def session_to_dict(session: Session) -> dict:
    return {
        "id": session.id,
        "status": session.status,
        "startedAt": format_instant(session.started_at),
        "endedAt": format_instant(session.ended_at),
        "scheduledFinishAt": format_instant(session.scheduled_finish_at),
        "durationMs": session.duration_ms,
        "stopReason": session.stop_reason,
        "voiceEnabled": session.voice_enabled,
        "voiceMode": session.voice_mode,
        "keyword": session.keyword,
        "transcriptSnippet": None,
    }


def session_from_dict(data: dict) -> Session:
    if not isinstance(data, dict):
        raise ValueError("Session record must be an object.")
    status = data.get("status", "idle")
    if status not in STATUSES:
        raise ValueError(f"Unknown session status: {status!r}")
    reason = data.get("stopReason")
    if reason is not None and reason not in STOP_REASONS:
        raise ValueError(f"Unknown stop reason: {reason!r}")
    mode = data.get("voiceMode")
    if mode is not None and mode not in VOICE_MODES:
        raise ValueError(f"Unknown voice mode: {mode!r}")

    try:
        started_at = parse_instant(data.get("startedAt"))
        ended_at = parse_instant(data.get("endedAt"))
        scheduled_finish_at = parse_instant(data.get("scheduledFinishAt"))
    except TypeError as exc:
        raise ValueError(f"Invalid instant in session record: {exc}") from exc

    duration = data.get("durationMs")
    if status in ("idle", "running"):
        # Older records stored 0 for unfinished sessions.
        duration = None
    elif isinstance(duration, bool) or not isinstance(duration, int):
        raise ValueError(f"durationMs must be an integer, got {duration!r}")

    if status != "idle" and started_at is None:
        raise ValueError(f"A {status} session needs startedAt.")
    if status in ("stopped", "finished") and ended_at is None:
        raise ValueError(f"A {status} session needs endedAt.")

    return Session(
        status=status,
        id=data.get("id"),
        started_at=started_at,
        ended_at=ended_at,
        scheduled_finish_at=scheduled_finish_at,
        duration_ms=None if duration is None else max(0, duration),
        stop_reason=reason,
        voice_enabled=bool(data.get("voiceEnabled", False)),
        voice_mode=mode,
        keyword=data.get("keyword"),
        transcript_snippet=None,
    )


def dumps_sessions(sessions: List[Session]) -> str:
    return json.dumps([session_to_dict(s) for s in sessions], indent=2)


def loads_sessions(raw: str) -> List[Session]:
    payload = json.loads(raw)
    if not isinstance(payload, list):
        raise ValueError("History must be a list.")
    return [session_from_dict(item) for item in payload]
