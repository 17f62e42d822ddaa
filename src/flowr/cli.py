"""CLI entry point."""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from .bot import Actor, BotSurface, ConsoleTransport
from .clock import now_ms
from .config import DEFAULT_CONFIG_PATH, Config, load_config_or_default
from .events import RESET, STOPPED, VOICE_ERROR, VOICE_PERMISSION_DENIED, VOICE_UNSUPPORTED
from .history import HistoryLog
from .logging_utils import setup_logging
from .microphone import list_input_devices
from .models import MODE_KEYWORD, VOICE_MODES
from .renderer import fmt_duration_ms, fmt_time_hms, render_history, render_status
from .schedule import ScheduleWatcher
from .speech import detect_recognizer
from .storage import ensure_structure
from .store import SharedSessionStore
from .timer import SessionTimer


def _load(args) -> tuple[Config, dict]:
    config = load_config_or_default(args.config)
    if args.state_dir:
        config.state_dir = args.state_dir
    if args.debug:
        config.debug_logging = True
    paths = ensure_structure(config.state_dir)
    setup_logging(
        log_dir=paths["logs"],
        level=logging.DEBUG if config.debug_logging else logging.INFO,
        console=config.debug_logging,
    )
    return config, paths


def _build_timer(config: Config, paths: dict, **kwargs) -> SessionTimer:
    return SessionTimer(
        store=SharedSessionStore(paths["state"]),
        history=HistoryLog(paths["history"], limit=config.history_limit),
        restart_delay=config.speech.restart_delay_seconds,
        **kwargs,
    )


def _parse_duration(value: str) -> int:
    seconds = float(value)
    if seconds <= 0:
        raise argparse.ArgumentTypeError("duration must be > 0 seconds")
    return int(seconds * 1000)


def _print_event(event: str, payload: dict) -> None:
    if event == VOICE_UNSUPPORTED:
        print(f"\nVoice auto-stop unavailable: {payload.get('reason')}. Manual timer still works.")
    elif event == VOICE_PERMISSION_DENIED:
        print(f"\nVoice permission denied: {payload.get('error')}. Manual timer still works.")
    elif event == VOICE_ERROR:
        print(f"\nVoice error: {payload.get('error')}. Manual timer still works.")


def _run_interactive(args, config: Config, paths: dict) -> int:
    voice = config.speech.voice()
    if args.voice is not None:
        voice.enabled = args.voice
    if args.mode:
        voice.mode = args.mode
    if args.keyword is not None:
        voice.keyword = args.keyword.strip()
    if voice.enabled and voice.mode == MODE_KEYWORD and not voice.keyword:
        print("Keyword mode without a keyword never auto-stops.")

    recognizer = detect_recognizer(config.speech) if voice.enabled else None
    timer = _build_timer(config, paths, recognizer=recognizer, voice=voice)
    for event in (VOICE_UNSUPPORTED, VOICE_PERMISSION_DENIED, VOICE_ERROR):
        timer.events.on(event, _print_event)
    done = threading.Event()
    timer.events.on(STOPPED, lambda _event, _payload: done.set())
    timer.events.on(RESET, lambda _event, _payload: done.set())

    watcher = ScheduleWatcher(timer, interval_seconds=config.schedule_check_seconds)
    session = timer.start(duration_ms=args.duration)
    if session is None:
        print("Timer is already running.")
        return 1
    print(f"Started at {fmt_time_hms(session.started_at)}.")
    print("Enter: stop · s: simulate speech · r: reset")

    def _read_keys() -> None:
        for line in sys.stdin:
            key = line.strip().lower()
            if key == "s":
                timer.simulate_utterance()
            elif key == "r":
                timer.reset()
            else:
                timer.stop()
            if done.is_set():
                return
        timer.stop()

    threading.Thread(target=_read_keys, name="flowr-keys", daemon=True).start()
    watcher.start()
    frame = max(config.display_refresh_ms, 10) / 1000.0
    try:
        while not done.wait(frame):
            current = timer.last_known_session()
            if not current.running:
                # Another actor finished the session in the shared store.
                break
            elapsed = current.elapsed_ms(now_ms())
            sys.stdout.write(f"\r{fmt_duration_ms(elapsed)}")
            sys.stdout.flush()
    except KeyboardInterrupt:
        timer.stop()
    finally:
        watcher.stop()
        timer.shutdown()

    final = timer.last_known_session()
    print()
    print(render_status(final, now_ms()).replace("**", ""))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(prog="flowr")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Config file.")
    parser.add_argument("--state-dir", help="Directory for shared state and history.")
    parser.add_argument("--debug", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command")

    start_cmd = sub.add_parser("start", help="Start a session in the shared store.")
    start_cmd.add_argument(
        "--duration", type=_parse_duration, help="Seconds until a scheduled finish."
    )
    sub.add_parser("stop", help="Stop the running session.")
    sub.add_parser("reset", help="Reset the current session to idle.")
    sub.add_parser("status", help="Show the current session.")
    history_cmd = sub.add_parser("history", help="Show finished sessions.")
    history_cmd.add_argument("--limit", type=int, help="Number of sessions.")
    simulate_cmd = sub.add_parser("simulate", help="Feed text to the auto-stop policy.")
    simulate_cmd.add_argument("text", nargs="?", help="Utterance text.")
    simulate_cmd.add_argument("--mode", choices=VOICE_MODES, help="Voice mode.")
    simulate_cmd.add_argument("--keyword", help="Keyword for keyword mode.")

    run_cmd = sub.add_parser("run", help="Run an interactive session.")
    run_cmd.add_argument(
        "--duration", type=_parse_duration, help="Seconds until a scheduled finish."
    )
    run_cmd.add_argument(
        "--voice", dest="voice", action="store_true", default=None, help="Voice auto-stop."
    )
    run_cmd.add_argument("--no-voice", dest="voice", action="store_false")
    run_cmd.add_argument("--mode", choices=VOICE_MODES, help="Voice mode.")
    run_cmd.add_argument("--keyword", help="Keyword for keyword mode.")

    bot_cmd = sub.add_parser("bot", help="Bot command surface on stdin/stdout.")
    bot_cmd.add_argument("--actor-id", help="Actor id for this console.")
    bot_cmd.add_argument("--name", help="Display name for this console.")
    bot_cmd.add_argument("--channel", default="console", help="Channel id.")

    sub.add_parser("devices", help="List microphones.")
    sub.add_parser("gui")

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "devices":
        for device in list_input_devices():
            name = device.get("name", "Unknown")
            index = device.get("index", "?")
            channels = device.get("max_input_channels", 0)
            print(f"[{index}] {name} (inputs: {channels})")
        return 0

    config, paths = _load(args)

    if args.command == "start":
        timer = _build_timer(config, paths)
        session = timer.start(duration_ms=args.duration)
        if session is None:
            print("Timer is already running.")
            return 1
        print(f"Started at {fmt_time_hms(session.started_at)}")
        return 0

    if args.command == "stop":
        timer = _build_timer(config, paths, voice=config.speech.voice())
        timer.check_schedule()
        session = timer.stop()
        if session is None:
            print("Timer is not running.")
            return 1
        print(f"Stopped after {fmt_duration_ms(session.duration_ms)}")
        return 0

    if args.command == "reset":
        _build_timer(config, paths).reset()
        print("Reset.")
        return 0

    if args.command == "status":
        timer = _build_timer(config, paths)
        timer.check_schedule()
        print(render_status(timer.current_session(), now_ms()).replace("**", ""))
        return 0

    if args.command == "history":
        timer = _build_timer(config, paths)
        print(render_history(timer.history(args.limit)))
        return 0

    if args.command == "simulate":
        voice = config.speech.voice()
        voice.enabled = True
        if args.mode:
            voice.mode = args.mode
        if args.keyword is not None:
            voice.keyword = args.keyword.strip()
        timer = _build_timer(config, paths, voice=voice)
        session = timer.simulate_utterance(args.text)
        if session is None:
            print("No auto-stop.")
            return 1
        print(f"Stopped by voice ({session.stop_reason}) after {fmt_duration_ms(session.duration_ms)}")
        return 0

    if args.command == "run":
        return _run_interactive(args, config, paths)

    if args.command == "bot":
        timer = _build_timer(config, paths)
        transport = ConsoleTransport(sys.stdout, channel_id=args.channel)
        bot = BotSurface(
            timer,
            edit_panel=transport.edit_panel,
            refresh_seconds=config.bot.refresh_seconds,
        )
        actor = Actor(
            args.actor_id or config.bot.actor_id,
            args.name or config.bot.display_name,
        )
        try:
            transport.run(bot, actor, sys.stdin)
        except KeyboardInterrupt:
            print("\nShutting down bot...")
        return 0

    if args.command == "gui":
        from .gui import launch_gui

        launch_gui(config, paths)
        return 0

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
