from flowr.events import RESET, STARTED, STOPPED
from flowr.models import FINISHED, IDLE, RUNNING, STOPPED as STATUS_STOPPED, VoiceConfig
from flowr.timer import SessionTimer


def _recorder(timer):
    seen = []
    timer.events.on_any(lambda event, payload: seen.append((event, payload)))
    return seen


def test_start_sets_started_at_and_running(clock):
    timer = SessionTimer(clock=clock)
    session = timer.start()
    assert session.status == RUNNING
    assert session.started_at == clock.now
    assert session.ended_at is None
    assert session.duration_ms is None
    assert session.id is None


def test_double_start_keeps_started_at(clock):
    timer = SessionTimer(clock=clock)
    timer.start()
    t0 = timer.current_session().started_at
    clock.advance(1500)
    assert timer.start() is None
    assert timer.current_session().started_at == t0


def test_stop_without_start_adds_no_history(clock):
    timer = SessionTimer(clock=clock)
    timer.reset()
    assert timer.stop("manual") is None
    assert timer.history() == []
    assert timer.current_session().status == IDLE


def test_stop_records_duration_and_history(clock):
    timer = SessionTimer(clock=clock, id_factory=lambda: "abc")
    timer.start()
    clock.advance(2345)
    session = timer.stop()
    assert session.status == STATUS_STOPPED
    assert session.duration_ms == 2345
    assert session.stop_reason == "manual"
    assert session.id == "abc"
    assert timer.history() == [session]


def test_second_stop_is_noop(clock):
    timer = SessionTimer(clock=clock)
    timer.start()
    clock.advance(10)
    first = timer.stop("voice_any")
    clock.advance(10)
    assert timer.stop("manual") is None
    assert timer.current_session() == first
    assert len(timer.history()) == 1


def test_clock_regression_clamps_duration(clock):
    timer = SessionTimer(clock=clock)
    timer.start()
    clock.advance(-5000)
    session = timer.stop()
    assert session.duration_ms == 0


def test_reset_clears_session_but_keeps_history(clock):
    timer = SessionTimer(clock=clock)
    timer.start()
    clock.advance(100)
    stopped = timer.stop()
    session = timer.reset()
    assert session.status == IDLE
    assert session.started_at is None
    assert session.stop_reason is None
    assert timer.history() == [stopped]


def test_reset_while_running_does_not_finalize(clock):
    timer = SessionTimer(clock=clock)
    timer.start()
    timer.reset()
    assert timer.history() == []
    assert timer.start() is not None


def test_stop_latches_voice_config(clock):
    voice = VoiceConfig(enabled=True, mode="keyword", keyword="done")
    timer = SessionTimer(clock=clock, voice=voice)
    timer.start()
    session = timer.stop()
    assert session.voice_enabled is True
    assert session.voice_mode == "keyword"
    assert session.keyword == "done"
    assert session.transcript_snippet is None


def test_voice_disabled_latches_nothing(clock):
    timer = SessionTimer(clock=clock, voice=VoiceConfig(enabled=False, mode="keyword", keyword="x"))
    timer.start()
    session = timer.stop()
    assert session.voice_enabled is False
    assert session.voice_mode is None
    assert session.keyword is None


def test_events_emitted_in_order(clock):
    timer = SessionTimer(clock=clock)
    seen = _recorder(timer)
    timer.start()
    clock.advance(50)
    timer.stop()
    timer.reset()
    assert [event for event, _ in seen] == [STARTED, STOPPED, RESET]
    assert seen[1][1]["reason"] == "manual"
    assert seen[1][1]["duration_ms"] == 50


def test_finish_uses_given_instant(clock):
    timer = SessionTimer(clock=clock)
    start = clock.now
    timer.start(duration_ms=1000)
    clock.advance(5000)
    session = timer.finish(start + 1000)
    assert session.status == FINISHED
    assert session.ended_at == start + 1000
    assert session.duration_ms == 1000
    assert session.stop_reason == "scheduled"


def test_simulated_keyword_stops_case_insensitive(clock):
    timer = SessionTimer(clock=clock, voice=VoiceConfig(enabled=True, mode="keyword", keyword="stop"))
    timer.start()
    session = timer.simulate_utterance("Please STOP now")
    assert session.stop_reason == "voice_keyword"


def test_simulated_empty_keyword_never_stops(clock):
    timer = SessionTimer(clock=clock, voice=VoiceConfig(enabled=True, mode="keyword", keyword=""))
    timer.start()
    assert timer.simulate_utterance("stop") is None
    assert timer.simulate_utterance() is None
    assert timer.current_session().status == RUNNING


def test_simulate_default_text_in_any_mode(clock):
    timer = SessionTimer(clock=clock, voice=VoiceConfig(enabled=True, mode="any"))
    timer.start()
    assert timer.simulate_utterance().stop_reason == "voice_any"


def test_simulate_ignored_when_voice_disabled(clock):
    timer = SessionTimer(clock=clock)
    timer.start()
    assert timer.simulate_utterance("anything") is None


def test_set_voice_mode_rejects_unknown(clock):
    timer = SessionTimer(clock=clock)
    try:
        timer.set_voice_mode("shout")
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError")
    assert timer.voice.mode == "any"


def test_set_keyword_trims(clock):
    timer = SessionTimer(clock=clock)
    timer.set_keyword("  Done ")
    assert timer.voice.keyword == "Done"


def test_listener_failure_does_not_break_command(clock):
    timer = SessionTimer(clock=clock)

    def _boom(event, payload):
        raise RuntimeError("listener failed")

    timer.events.on(STARTED, _boom)
    assert timer.start() is not None
    assert timer.current_session().status == RUNNING


def test_durations_never_negative_over_command_sequences(clock):
    timer = SessionTimer(clock=clock)
    steps = [
        ("start", 0), ("stop", -300), ("start", 20), ("start", 5), ("stop", 70),
        ("reset", 0), ("stop", 10), ("start", -9), ("stop", 1), ("reset", 0),
    ]
    for command, delta in steps:
        clock.advance(delta)
        getattr(timer, command)()
        session = timer.current_session()
        if session.status in ("stopped", "finished"):
            assert session.duration_ms >= 0
    assert all(s.duration_ms >= 0 for s in timer.history())
