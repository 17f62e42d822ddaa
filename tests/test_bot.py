import os
import tempfile
from io import StringIO

from flowr.bot import BUTTON_ERROR, Actor, BotSurface, ConsoleTransport, PanelGone
from flowr.models import RUNNING
from flowr.store import SharedSessionStore
from flowr.timer import SessionTimer

ADA = Actor("u1", "Ada")


class PanelRecorder:
    def __init__(self, fail=None) -> None:
        self.edits = []
        self.fail = fail

    def __call__(self, channel_id, message_id, panel) -> None:
        if self.fail is not None:
            raise self.fail
        self.edits.append((channel_id, message_id, panel))


def _bot(clock, edit_panel=None, timer=None):
    timer = timer or SessionTimer(clock=clock)
    return BotSurface(timer, edit_panel=edit_panel, refresh_seconds=5.0, clock=clock)


def test_start_stop_reset_replies(clock):
    bot = _bot(clock)
    try:
        assert bot.handle_command("timer-start", ADA, "c1").content.startswith("✅ Timer started at")
        assert bot.updating
        assert bot.handle_command("timer-start", ADA, "c1").content == "⚠️ Timer is already running!"
        clock.advance(1234)
        reply = bot.handle_command("timer-stop", ADA, "c1")
        assert reply.content.startswith("🛑 Timer stopped!")
        assert "00:01.234" in reply.content
        assert not bot.updating
        assert bot.handle_command("timer-stop", ADA, "c1").content == "⚠️ Timer is not running!"
        assert bot.handle_command("timer-reset", ADA, "c1").content == "🔄 Timer reset to idle state"
    finally:
        bot.shutdown()


def test_countdown_minutes_option(clock):
    bot = _bot(clock)
    try:
        reply = bot.handle_command("timer-start", ADA, "c1", {"minutes": "2"})
        assert "**Ends at:**" in reply.content
        session = bot.timer.current_session()
        assert session.scheduled_finish_at - session.started_at == 120_000
        assert bot.handle_command("timer-start", ADA, "c1", {"minutes": "-1"}).ephemeral
    finally:
        bot.shutdown()


def test_unknown_command_and_button(clock):
    bot = _bot(clock)
    reply = bot.handle_command("dance", ADA, "c1")
    assert reply.ephemeral
    assert "Unknown command" in reply.content
    assert bot.handle_button("timer_dance", ADA, "c1").content == BUTTON_ERROR


def test_status_reports_idle(clock):
    bot = _bot(clock)
    content = bot.handle_command("timer-status", ADA, "c1").content
    assert "**Status:** IDLE" in content
    assert "Ready to start timing!" in content


def test_agent_lifecycle(clock):
    bot = _bot(clock)
    assert bot.handle_command("agent-list", ADA, "c1").content == "📭 No agents currently connected"
    assert bot.handle_command("agent-connect", ADA, "c1").content.startswith("✅ Connected as agent!")
    assert "already connected" in bot.handle_command("agent-connect", ADA, "c1").content
    clock.advance(90_000)
    status = bot.handle_command("agent-status", ADA, "c1").content
    assert "**Uptime:** 1m 30s" in status
    assert "**Ada**" in bot.handle_command("agent-list", ADA, "c1").content
    bot.member_left("u1")
    assert bot.handle_command("agent-status", ADA, "c1").content.startswith("❌")
    assert bot.handle_command("agent-disconnect", ADA, "c1").content == "⚠️ You are not connected as an agent"


def test_buttons_reply_ephemeral_and_edit_panel(clock):
    recorder = PanelRecorder()
    bot = _bot(clock, edit_panel=recorder)
    try:
        bot.track_panel("c1", "m1")
        reply = bot.handle_button("timer_start", ADA, "c1")
        assert reply.ephemeral
        assert recorder.edits[-1][1] == "m1"
        panel = recorder.edits[-1][2]
        disabled = {b.custom_id: b.disabled for b in panel.buttons()}
        assert disabled["timer_start"] is True
        assert disabled["timer_stop"] is False
        assert bot.handle_button("timer_refresh", ADA, "c1").content == "🔄 Control panel refreshed!"
    finally:
        bot.shutdown()


def test_refresh_without_panel(clock):
    bot = _bot(clock)
    reply = bot.handle_button("timer_refresh", ADA, "c9")
    assert reply.content.startswith("⚠️ No control panel found")


def test_missing_panel_is_untracked(clock):
    bot = _bot(clock, edit_panel=PanelRecorder(fail=PanelGone("deleted")))
    bot.track_panel("c1", "m1")
    assert bot.update_panel("c1") is False
    assert bot.panel_for("c1") is None


def test_other_edit_errors_keep_tracking(clock):
    bot = _bot(clock, edit_panel=PanelRecorder(fail=RuntimeError("rate limited")))
    bot.track_panel("c1", "m1")
    assert bot.update_panel("c1") is False
    assert bot.panel_for("c1") == "m1"


def test_refresh_tick_finishes_due_countdown(clock):
    recorder = PanelRecorder()
    bot = _bot(clock, edit_panel=recorder)
    bot.track_panel("c1", "m1")
    start = clock.now
    bot.timer.start(duration_ms=60_000)
    clock.advance(61_000)
    bot.refresh_tick()
    session = bot.timer.current_session()
    assert session.status == "finished"
    assert session.ended_at == start + 60_000
    assert "FINISHED" in recorder.edits[-1][2].description
    assert not bot.updating


def test_refresh_never_repeats_a_transition(clock):
    recorder = PanelRecorder()
    bot = _bot(clock, edit_panel=recorder)
    bot.timer.start()
    clock.advance(10)
    stopped = bot.timer.stop()
    bot.track_panel("c1", "m1")
    bot.refresh_tick()
    bot.refresh_tick()
    assert bot.timer.current_session() == stopped
    assert len(bot.timer.history()) == 1
    assert recorder.edits == []


def test_bot_and_client_share_store(clock):
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "timer-state.json")
        client = SessionTimer(store=SharedSessionStore(path), clock=clock)
        bot = _bot(clock, timer=SessionTimer(store=SharedSessionStore(path), clock=clock))
        client.start()
        try:
            assert bot.handle_command("timer-start", ADA, "c1").content == "⚠️ Timer is already running!"
            assert "RUNNING" in bot.handle_command("timer-status", ADA, "c1").content
            clock.advance(500)
            assert bot.handle_command("timer-stop", ADA, "c1").content.startswith("🛑")
        finally:
            bot.shutdown()
        assert client.current_session().duration_ms == 500
        assert client.stop() is None


def test_console_transport_posts_and_tracks_panels(clock):
    out = StringIO()
    transport = ConsoleTransport(out, channel_id="console")
    bot = _bot(clock, edit_panel=transport.edit_panel)
    transport.run(bot, ADA, ["/ping", "", "/control-panel", "!timer_start", "/timer-stop"])
    text = out.getvalue()
    assert text.startswith("[1] 👋 **Welcome to Flowr Timer Bot!**")
    assert text.count("Welcome to Flowr Timer Bot") == 1
    assert "[2] Pong! 🏓" in text
    assert bot.panel_for("console") == "3"
    assert "[3 edited]" in text
    assert "🛑 Timer stopped!" in text
    assert bot.timer.current_session().status != RUNNING


def test_console_dispatch_parses_options(clock):
    transport = ConsoleTransport(StringIO())
    bot = _bot(clock)
    try:
        reply = transport.dispatch(bot, ADA, '/timer-start minutes=1.5')
        assert "Ends at" in reply.content
        assert transport.dispatch(bot, ADA, "   ") is None
    finally:
        bot.shutdown()


def test_voice_commands_drive_the_timer(clock):
    bot = _bot(clock)
    try:
        assert "timer-simulate" in bot.command_names()
        assert "Use `/voice-enable` first" in bot.handle_command("timer-simulate", ADA, "c1").content
        reply = bot.handle_command("voice-enable", ADA, "c1")
        assert reply.content.startswith("🎙️ Voice auto-stop enabled")
        assert bot.timer.voice.enabled
        assert bot.handle_command("voice-mode", ADA, "c1", {"mode": "Keyword"}).content == (
            "🎙️ Voice mode set to **keyword**"
        )
        assert bot.handle_command("voice-keyword", ADA, "c1", {"keyword": " done "}).content == (
            "🎙️ Keyword set to **done**"
        )
        bot.handle_command("timer-start", ADA, "c1")
        miss = bot.handle_command("timer-simulate", ADA, "c1", {"text": "keep going"})
        assert miss.content == "💬 No auto-stop for that utterance"
        clock.advance(700)
        hit = bot.handle_command("timer-simulate", ADA, "c1", {"text": "we are DONE"})
        assert hit.content.startswith("🛑 Timer stopped by voice!")
        assert "voice_keyword" in hit.content
        assert "00:00.700" in hit.content
        assert not bot.updating
        session = bot.timer.current_session()
        assert session.voice_enabled and session.keyword == "done"
        assert bot.handle_command("voice-disable", ADA, "c1").content == "🔇 Voice auto-stop disabled"
        assert not bot.timer.voice.enabled
    finally:
        bot.shutdown()


def test_voice_mode_rejects_unknown_mode(clock):
    bot = _bot(clock)
    reply = bot.handle_command("voice-mode", ADA, "c1", {"mode": "shout"})
    assert reply.ephemeral
    assert reply.content.startswith("⚠️ `mode` must be one of")
    assert bot.timer.voice.mode == "any"


def test_empty_voice_keyword_is_reported(clock):
    bot = _bot(clock)
    reply = bot.handle_command("voice-keyword", ADA, "c1", {"keyword": "   "})
    assert reply.content.startswith("⚠️ Keyword cleared")


def test_console_simulate_with_quoted_text(clock):
    transport = ConsoleTransport(StringIO())
    bot = _bot(clock)
    try:
        transport.dispatch(bot, ADA, "/voice-enable")
        transport.dispatch(bot, ADA, "/timer-start")
        reply = transport.dispatch(bot, ADA, '/timer-simulate text="hello there"')
        assert "voice_any" in reply.content
    finally:
        bot.shutdown()
