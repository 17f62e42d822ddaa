"""Chat-bot control surface.

Named remote commands and panel buttons map onto the ``SessionTimer``
command surface. The bot is its own actor: its timer is bound to the shared
session store, so it sees and mutates the same record as the interactive
client. Control panels are tracked per channel and re-rendered on a fixed
interval while a session runs; that refresh only reads the record (plus the
idempotent scheduled-finish check) and never repeats a transition.

The transport is pluggable: it delivers ``handle_command``/``handle_button``
calls and supplies ``edit_panel`` to update a posted panel message.
"""

from __future__ import annotations

import logging
import shlex
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, TextIO

from .clock import Clock, now_ms
from .models import VOICE_MODES
from .renderer import (
    INTRO_TEXT,
    Panel,
    fmt_duration_ms,
    fmt_time_hms,
    fmt_uptime,
    render_actor_list,
    render_panel,
    render_panel_text,
    render_status,
)
from .store import ActorRegistry
from .ticker import Ticker
from .timer import SessionTimer

logger = logging.getLogger("flowr.bot")

GENERIC_ERROR = "There was an error while executing this command!"
BUTTON_ERROR = "There was an error processing your request!"


class PanelGone(RuntimeError):
    """The panel message no longer exists on the transport."""


@dataclass(frozen=True)
class Actor:
    actor_id: str
    display_name: str


@dataclass
class Reply:
    content: str = ""
    ephemeral: bool = False
    panel: Optional[Panel] = None


PanelEditor = Callable[[str, str, Panel], None]


class BotSurface:
    def __init__(
        self,
        timer: SessionTimer,
        registry: Optional[ActorRegistry] = None,
        edit_panel: Optional[PanelEditor] = None,
        refresh_seconds: float = 5.0,
        clock: Clock = now_ms,
    ) -> None:
        self.timer = timer
        self.registry = registry or ActorRegistry(clock=clock)
        self._edit_panel = edit_panel
        self._clock = clock
        self._panels: Dict[str, str] = {}
        self._panels_lock = threading.Lock()
        self._ticker = Ticker(refresh_seconds, self.refresh_tick, name="flowr-panels")
        self._commands = {
            "intro": self._intro,
            "ping": self._ping,
            "timer-start": self._timer_start,
            "timer-stop": self._timer_stop,
            "timer-reset": self._timer_reset,
            "timer-status": self._timer_status,
            "timer-simulate": self._timer_simulate,
            "voice-enable": self._voice_enable,
            "voice-disable": self._voice_disable,
            "voice-mode": self._voice_mode,
            "voice-keyword": self._voice_keyword,
            "agent-connect": self._agent_connect,
            "agent-disconnect": self._agent_disconnect,
            "agent-list": self._agent_list,
            "agent-status": self._agent_status,
            "control-panel": self._control_panel,
        }
        self._buttons = {
            "timer_start": self._timer_start,
            "timer_stop": self._timer_stop,
            "timer_reset": self._timer_reset,
            "timer_status": self._timer_status,
            "timer_refresh": self._timer_refresh,
        }

    # Dispatch

    def command_names(self) -> list:
        return list(self._commands)

    def handle_command(
        self,
        name: str,
        actor: Actor,
        channel_id: str,
        options: Optional[dict] = None,
    ) -> Reply:
        handler = self._commands.get(name)
        if handler is None:
            logger.error("No command matching %s was found.", name)
            return Reply(f"⚠️ Unknown command `{name}`", ephemeral=True)
        try:
            return handler(actor, channel_id, options or {})
        except Exception:
            logger.exception("Error executing %s", name)
            return Reply(GENERIC_ERROR, ephemeral=True)

    def handle_button(self, custom_id: str, actor: Actor, channel_id: str) -> Reply:
        handler = self._buttons.get(custom_id)
        if handler is None:
            logger.error("No button matching %s was found.", custom_id)
            return Reply(BUTTON_ERROR, ephemeral=True)
        try:
            reply = handler(actor, channel_id, {})
        except Exception:
            logger.exception("Error handling button interaction %s", custom_id)
            return Reply(BUTTON_ERROR, ephemeral=True)
        reply.ephemeral = True
        return reply

    def member_left(self, actor_id: str) -> None:
        self.registry.remove_on_leave(actor_id)

    # Panels

    def track_panel(self, channel_id: str, message_id: str) -> None:
        with self._panels_lock:
            self._panels[channel_id] = message_id
        logger.info("Control panel created in channel %s: message %s", channel_id, message_id)

    def panel_for(self, channel_id: str) -> Optional[str]:
        with self._panels_lock:
            return self._panels.get(channel_id)

    def build_panel(self) -> Panel:
        return render_panel(self.timer.current_session(), self._clock())

    def update_panel(self, channel_id: str) -> bool:
        message_id = self.panel_for(channel_id)
        if message_id is None or self._edit_panel is None:
            return False
        try:
            self._edit_panel(channel_id, message_id, self.build_panel())
        except PanelGone:
            logger.info("Panel %s in %s is gone, no longer tracking", message_id, channel_id)
            with self._panels_lock:
                if self._panels.get(channel_id) == message_id:
                    del self._panels[channel_id]
            return False
        except Exception as exc:
            logger.error("Error updating control panel: %s", exc)
            return False
        return True

    def update_all_panels(self) -> None:
        with self._panels_lock:
            channels = list(self._panels)
        for channel_id in channels:
            self.update_panel(channel_id)

    # Periodic refresh

    @property
    def updating(self) -> bool:
        return self._ticker.running

    def start_updates(self) -> None:
        self._ticker.start()

    def stop_updates(self) -> None:
        self._ticker.stop()

    def refresh_tick(self) -> None:
        finished = self.timer.check_schedule()
        session = self.timer.last_known_session()
        if session.running or finished is not None:
            self.update_all_panels()
        if not session.running:
            self.stop_updates()

    def ready(self) -> None:
        """Resume periodic panel updates if a session was already running."""
        if self.timer.current_session().running:
            self.start_updates()

    def shutdown(self) -> None:
        self.stop_updates()
        self.timer.shutdown()

    # Timer commands

    def _timer_start(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        duration_ms = None
        minutes = options.get("minutes")
        if minutes is not None:
            try:
                value = float(minutes)
            except (TypeError, ValueError):
                value = -1.0
            if value <= 0:
                return Reply("⚠️ `minutes` must be a positive number", ephemeral=True)
            duration_ms = int(value * 60_000)

        session = self.timer.start(duration_ms=duration_ms)
        if session is None:
            return Reply("⚠️ Timer is already running!")
        logger.info("Timer started by %s", actor.display_name)
        content = f"✅ Timer started at {fmt_time_hms(session.started_at)}"
        if session.scheduled_finish_at is not None:
            content += f"\n**Ends at:** {fmt_time_hms(session.scheduled_finish_at)}"
        self.start_updates()
        self.update_panel(channel_id)
        return Reply(content)

    def _timer_stop(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        session = self.timer.stop()
        if session is None:
            return Reply("⚠️ Timer is not running!")
        logger.info("Timer stopped by %s", actor.display_name)
        self.stop_updates()
        self.update_panel(channel_id)
        return Reply(
            "🛑 Timer stopped!\n"
            f"**Duration:** {fmt_duration_ms(session.duration_ms)}\n"
            f"**Stopped at:** {fmt_time_hms(session.ended_at)}"
        )

    def _timer_reset(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        self.timer.reset()
        logger.info("Timer reset by %s", actor.display_name)
        self.stop_updates()
        self.update_panel(channel_id)
        return Reply("🔄 Timer reset to idle state")

    def _timer_status(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        return Reply(render_status(self.timer.current_session(), self._clock()))

    def _timer_refresh(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        if self.panel_for(channel_id) is None:
            return Reply(
                "⚠️ No control panel found in this channel. "
                "Use `/control-panel` to create one."
            )
        self.update_panel(channel_id)
        return Reply("🔄 Control panel refreshed!")

    def _control_panel(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        return Reply(panel=self.build_panel())

    def _timer_simulate(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        if not self.timer.voice.enabled:
            return Reply("⚠️ Voice auto-stop is disabled. Use `/voice-enable` first.")
        session = self.timer.simulate_utterance(options.get("text") or None)
        if session is None:
            return Reply("💬 No auto-stop for that utterance")
        logger.info("Simulated speech from %s stopped the timer", actor.display_name)
        self.stop_updates()
        self.update_panel(channel_id)
        return Reply(
            "🛑 Timer stopped by voice!\n"
            f"**Reason:** {session.stop_reason}\n"
            f"**Duration:** {fmt_duration_ms(session.duration_ms)}"
        )

    # Voice commands

    def _voice_enable(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        self.timer.set_voice_enabled(True)
        content = "🎙️ Voice auto-stop enabled"
        if not self.timer.voice_supported:
            content += (
                "\n⚠️ Speech recognition is not available here. "
                "Use `/timer-simulate` to try the auto-stop."
            )
        return Reply(content)

    def _voice_disable(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        self.timer.set_voice_enabled(False)
        return Reply("🔇 Voice auto-stop disabled")

    def _voice_mode(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        mode = (options.get("mode") or "").strip().lower()
        if mode not in VOICE_MODES:
            return Reply(
                f"⚠️ `mode` must be one of: {', '.join(VOICE_MODES)}", ephemeral=True
            )
        self.timer.set_voice_mode(mode)
        return Reply(f"🎙️ Voice mode set to **{mode}**")

    def _voice_keyword(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        self.timer.set_keyword(options.get("keyword") or "")
        keyword = self.timer.voice.keyword
        if not keyword:
            return Reply("⚠️ Keyword cleared. Keyword mode will not auto-stop.")
        return Reply(f"🎙️ Keyword set to **{keyword}**")

    # Agent commands

    def _intro(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        return Reply(INTRO_TEXT)

    def _ping(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        return Reply("Pong! 🏓")

    def _agent_connect(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        info, created = self.registry.connect(actor.actor_id, actor.display_name)
        if not created:
            return Reply("⚠️ You are already connected as an agent!")
        return Reply(
            "✅ Connected as agent!\n"
            f"**Connected at:** {fmt_time_hms(info.connected_at)}"
        )

    def _agent_disconnect(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        if self.registry.disconnect(actor.actor_id) is None:
            return Reply("⚠️ You are not connected as an agent")
        return Reply("👋 Disconnected as agent")

    def _agent_list(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        return Reply(render_actor_list(self.registry.list(), self._clock()))

    def _agent_status(self, actor: Actor, channel_id: str, options: dict) -> Reply:
        info = self.registry.get(actor.actor_id)
        if info is None:
            return Reply(
                "❌ You are not connected as an agent. Use `/agent-connect` to connect."
            )
        uptime = fmt_uptime((self._clock() - info.connected_at) // 1000)
        return Reply(
            "✅ **Agent Status:** Connected\n"
            f"**Username:** {info.display_name}\n"
            f"**Connected at:** {fmt_time_hms(info.connected_at)}\n"
            f"**Uptime:** {uptime}"
        )


class ConsoleTransport:
    """Line-based transport: ``/command key=value``, ``!button_id``, ``leave ID``."""

    def __init__(self, out: TextIO, channel_id: str = "console") -> None:
        self.out = out
        self.channel_id = channel_id
        self._next_message = 0
        self._lock = threading.Lock()

    def post(self, text: str) -> str:
        with self._lock:
            self._next_message += 1
            message_id = str(self._next_message)
            self.out.write(f"[{message_id}] {text}\n")
            self.out.flush()
        return message_id

    def edit_panel(self, channel_id: str, message_id: str, panel: Panel) -> None:
        with self._lock:
            self.out.write(f"[{message_id} edited] {render_panel_text(panel)}\n")
            self.out.flush()

    def dispatch(self, bot: BotSurface, actor: Actor, line: str) -> Optional[Reply]:
        line = line.strip()
        if not line:
            return None
        if line.startswith("!"):
            return bot.handle_button(line[1:], actor, self.channel_id)
        if line.startswith("leave "):
            bot.member_left(line.split(None, 1)[1].strip())
            return None
        parts = shlex.split(line.lstrip("/"))
        if not parts:
            return None
        options = {}
        for part in parts[1:]:
            key, _, value = part.partition("=")
            options[key] = value
        return bot.handle_command(parts[0], actor, self.channel_id, options)

    def run(self, bot: BotSurface, actor: Actor, lines) -> None:
        bot.ready()
        self.post(INTRO_TEXT)
        try:
            for line in lines:
                reply = self.dispatch(bot, actor, line)
                if reply is None:
                    continue
                if reply.panel is not None:
                    message_id = self.post(render_panel_text(reply.panel))
                    bot.track_panel(self.channel_id, message_id)
                else:
                    self.post(reply.content)
        finally:
            bot.shutdown()
