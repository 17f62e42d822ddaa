"""Text rendering for status lines, history tables and bot panels."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .models import FINISHED, IDLE, RUNNING, STOPPED, ActorInfo, Session

COLOR_RUNNING = 0x00FF00
COLOR_STOPPED = 0xFF9900
COLOR_IDLE = 0x808080


@dataclass(frozen=True)
class Button:
    custom_id: str
    label: str
    style: str
    disabled: bool = False


@dataclass
class Panel:
    title: str
    description: str
    color: int
    rows: List[List[Button]] = field(default_factory=list)

    def buttons(self) -> List[Button]:
        return [button for row in self.rows for button in row]


def fmt_duration_ms(ms: Optional[int]) -> str:
    clamped = max(0, int(ms or 0))
    total_seconds, millis = divmod(clamped, 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


def fmt_time_hms(ms: Optional[int]) -> str:
    if ms is None:
        return "—"
    return datetime.fromtimestamp(ms / 1000).strftime("%H:%M:%S")


def fmt_uptime(seconds: int) -> str:
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


def render_status(session: Session, now: int) -> str:
    lines = [f"**Status:** {session.status.upper()}"]
    if session.status == RUNNING and session.started_at is not None:
        lines.append(f"**Started at:** {fmt_time_hms(session.started_at)}")
        lines.append(f"**Elapsed:** {fmt_duration_ms(session.elapsed_ms(now))}")
        if session.scheduled_finish_at is not None:
            remaining = max(0, session.scheduled_finish_at - now)
            lines.append(
                f"**Ends:** {fmt_time_hms(session.scheduled_finish_at)}"
                f" (in {fmt_duration_ms(remaining)})"
            )
    elif session.status in (STOPPED, FINISHED):
        if session.started_at is not None:
            lines.append(f"**Started at:** {fmt_time_hms(session.started_at)}")
        if session.ended_at is not None:
            lines.append(f"**Ended at:** {fmt_time_hms(session.ended_at)}")
        lines.append(f"**Duration:** {fmt_duration_ms(session.duration_ms)}")
        lines.append(f"**Stop reason:** {session.stop_reason or 'N/A'}")
    else:
        lines.append("Ready to start timing!")
    return "\n".join(lines)


def render_panel(session: Session, now: int) -> Panel:
    status = session.status
    if status == RUNNING:
        color = COLOR_RUNNING
    elif status in (STOPPED, FINISHED):
        color = COLOR_STOPPED
    else:
        color = COLOR_IDLE
    return Panel(
        title="⏱️ Flowr Timer Control Panel",
        description=render_status(session, now),
        color=color,
        rows=[
            [
                Button("timer_start", "▶️ Start", "success", disabled=status == RUNNING),
                Button("timer_stop", "⏹️ Stop", "danger", disabled=status != RUNNING),
                Button("timer_reset", "🔄 Reset", "secondary", disabled=status == IDLE),
            ],
            [
                Button("timer_status", "📊 Status", "primary"),
                Button("timer_refresh", "🔄 Refresh", "secondary"),
            ],
        ],
    )


def render_panel_text(panel: Panel) -> str:
    lines = [panel.title, panel.description]
    for row in panel.rows:
        labels = [
            f"[{b.label}{' (disabled)' if b.disabled else ''} :: {b.custom_id}]" for b in row
        ]
        lines.append(" ".join(labels))
    return "\n".join(lines)


def render_history(sessions: List[Session]) -> str:
    if not sessions:
        return "No sessions yet."
    lines = [f"{'START':<10}{'END':<10}{'DURATION':<12}REASON"]
    for session in sessions:
        lines.append(
            f"{fmt_time_hms(session.started_at):<10}"
            f"{fmt_time_hms(session.ended_at):<10}"
            f"{fmt_duration_ms(session.duration_ms):<12}"
            f"{session.stop_reason or ''}"
        )
    return "\n".join(lines)


def render_actor_list(actors: List[ActorInfo], now: int) -> str:
    if not actors:
        return "📭 No agents currently connected"
    lines = [f"🤖 **Connected Agents ({len(actors)}):**"]
    for index, actor in enumerate(actors, start=1):
        uptime = fmt_uptime((now - actor.connected_at) // 1000)
        lines.append(f"{index}. **{actor.display_name}** ({uptime} ago)")
    return "\n".join(lines)


INTRO_TEXT = """👋 **Welcome to Flowr Timer Bot!**

Flowr is a lightweight timer that helps you track your sessions with precise start time, end time, and duration.

**⏱️ Timer Commands:**
• `/timer-start` - Start the Flowr timer (optional `minutes` for a countdown)
• `/timer-stop` - Stop the Flowr timer
• `/timer-reset` - Reset the timer to idle state
• `/timer-status` - Get the current timer status
• `/control-panel` - Create a button-based control panel
• `/timer-simulate` - Feed text to the voice auto-stop (optional `text`)

**🎙️ Voice Commands:**
• `/voice-enable` / `/voice-disable` - Turn voice auto-stop on or off
• `/voice-mode` - Stop on any speech or on a keyword (`mode=any|keyword`)
• `/voice-keyword` - Set the stop keyword (`keyword=...`)

**🤖 Agent Commands:**
• `/agent-connect` - Connect as an agent
• `/agent-disconnect` - Disconnect as an agent
• `/agent-list` - List all connected agents
• `/agent-status` - Check your agent connection status

**🔧 Utility Commands:**
• `/ping` - Check if the bot is responding
• `/intro` - Show this introduction message"""
