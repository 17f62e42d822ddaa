"""Tkinter timer window."""

from __future__ import annotations

import logging
import queue
import threading

from .clock import now_ms
from .config import Config
from .events import (
    RESET,
    STARTED,
    STOPPED,
    VOICE_ERROR,
    VOICE_PERMISSION_DENIED,
    VOICE_UNSUPPORTED,
)
from .history import HistoryLog
from .logging_utils import setup_logging
from .models import MODE_KEYWORD, RUNNING
from .renderer import fmt_duration_ms, fmt_time_hms
from .schedule import ScheduleWatcher
from .speech import detect_recognizer
from .store import SharedSessionStore
from .timer import SessionTimer


def launch_gui(config: Config, paths: dict) -> None:
    import tkinter as tk
    from tkinter import ttk

    logger, _log_path = setup_logging(
        log_dir=paths["logs"],
        level=logging.DEBUG if config.debug_logging else logging.INFO,
    )

    def _thread_excepthook(args) -> None:
        logger.exception(
            "Thread exception",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    threading.excepthook = _thread_excepthook

    recognizer = detect_recognizer(config.speech)
    timer = SessionTimer(
        store=SharedSessionStore(paths["state"]),
        history=HistoryLog(paths["history"], limit=config.history_limit),
        recognizer=recognizer,
        voice=config.speech.voice(),
        restart_delay=config.speech.restart_delay_seconds,
    )
    watcher = ScheduleWatcher(timer, interval_seconds=config.schedule_check_seconds)
    notices: "queue.Queue[str]" = queue.Queue()

    root = tk.Tk()
    root.title("Flowr")
    root.resizable(False, False)
    root.configure(bg="#0b0f14")

    style = ttk.Style(root)
    try:
        style.theme_use("clam")
    except tk.TclError:
        pass
    style.configure("TFrame", background="#0b0f14")
    style.configure("TLabel", background="#0b0f14", foreground="#d8e1ff")
    style.configure("TCheckbutton", background="#0b0f14", foreground="#9ad1ff")
    style.configure("TRadiobutton", background="#0b0f14", foreground="#9ad1ff")
    style.configure("Elapsed.TLabel", font=("Courier", 28, "bold"), foreground="#00e0ff")

    status_var = tk.StringVar(value="Idle")
    elapsed_var = tk.StringVar(value="00:00.000")
    detail_var = tk.StringVar(value="")
    notice_var = tk.StringVar(value="")
    voice_var = tk.BooleanVar(value=timer.voice.enabled)
    mode_var = tk.StringVar(value=timer.voice.mode)
    keyword_var = tk.StringVar(value=timer.voice.keyword)

    frame = ttk.Frame(root, padding=12)
    frame.grid(row=0, column=0, sticky="nsew")

    ttk.Label(frame, textvariable=status_var).grid(row=0, column=0, columnspan=3, sticky="w")
    ttk.Label(frame, textvariable=elapsed_var, style="Elapsed.TLabel").grid(
        row=1, column=0, columnspan=3, pady=(4, 4)
    )
    ttk.Label(frame, textvariable=detail_var).grid(row=2, column=0, columnspan=3, sticky="w")

    start_btn = ttk.Button(frame, text="Start", command=lambda: timer.start())
    stop_btn = ttk.Button(frame, text="Stop", command=lambda: timer.stop())
    reset_btn = ttk.Button(frame, text="Reset", command=lambda: timer.reset())
    start_btn.grid(row=3, column=0, padx=2, pady=6, sticky="ew")
    stop_btn.grid(row=3, column=1, padx=2, pady=6, sticky="ew")
    reset_btn.grid(row=3, column=2, padx=2, pady=6, sticky="ew")

    support = "Supported" if timer.voice_supported else "Not supported"
    ttk.Checkbutton(
        frame,
        text=f"Voice auto-stop ({support})",
        variable=voice_var,
        command=lambda: timer.set_voice_enabled(voice_var.get()),
    ).grid(row=4, column=0, columnspan=3, sticky="w")
    ttk.Radiobutton(
        frame, text="Any word", value="any", variable=mode_var,
        command=lambda: timer.set_voice_mode(mode_var.get()),
    ).grid(row=5, column=0, sticky="w")
    ttk.Radiobutton(
        frame, text="Keyword", value="keyword", variable=mode_var,
        command=lambda: timer.set_voice_mode(mode_var.get()),
    ).grid(row=5, column=1, sticky="w")
    keyword_entry = ttk.Entry(frame, textvariable=keyword_var, width=14)
    keyword_entry.grid(row=5, column=2, sticky="ew")
    keyword_var.trace_add("write", lambda *_: timer.set_keyword(keyword_var.get()))
    ttk.Button(
        frame, text="Simulate speech", command=lambda: timer.simulate_utterance()
    ).grid(row=6, column=0, columnspan=3, pady=(6, 2), sticky="ew")
    ttk.Label(frame, textvariable=notice_var, wraplength=320).grid(
        row=7, column=0, columnspan=3, sticky="w"
    )

    history_box = tk.Listbox(
        frame, height=10, width=48, bg="#111827", fg="#e6f1ff", font=("Courier", 10)
    )
    history_box.grid(row=8, column=0, columnspan=3, pady=(8, 0))

    def _on_event(event: str, payload: dict) -> None:
        if event == STARTED:
            notices.put("Started.")
        elif event == STOPPED:
            reason = payload.get("reason", "")
            notices.put("Stopped by voice." if reason.startswith("voice") else "Stopped.")
        elif event == RESET:
            notices.put("Reset.")
        elif event == VOICE_UNSUPPORTED:
            notices.put(f"Voice auto-stop is not supported here: {payload.get('reason')}")
        elif event == VOICE_PERMISSION_DENIED:
            notices.put(f"Voice error: {payload.get('error')}. Manual timer still works.")
        elif event == VOICE_ERROR:
            notices.put(f"Voice error: {payload.get('error')}. Manual timer still works.")

    timer.events.on_any(_on_event)

    def _render_history() -> None:
        history_box.delete(0, "end")
        sessions = timer.history()
        if not sessions:
            history_box.insert("end", "No sessions yet.")
            return
        for session in sessions:
            history_box.insert(
                "end",
                f"{fmt_time_hms(session.started_at)}  {fmt_time_hms(session.ended_at)}  "
                f"{fmt_duration_ms(session.duration_ms)}  {session.stop_reason}",
            )

    def _update_controls(status: str) -> None:
        running = status == RUNNING
        start_btn.state(["disabled"] if running else ["!disabled"])
        stop_btn.state(["!disabled"] if running else ["disabled"])
        keyword_mode = mode_var.get() == MODE_KEYWORD and voice_var.get()
        keyword_entry.state(["!disabled"] if keyword_mode else ["disabled"])

    def _update_frame() -> None:
        session = timer.last_known_session()
        status_var.set(session.status.capitalize())
        elapsed_var.set(fmt_duration_ms(session.elapsed_ms(now_ms())))
        if session.started_at is None:
            detail_var.set("")
        else:
            detail_var.set(
                f"Start {fmt_time_hms(session.started_at)} · "
                f"End {fmt_time_hms(session.ended_at)} · "
                f"Reason {session.stop_reason or '—'}"
            )
        _update_controls(session.status)
        root.after(config.display_refresh_ms, _update_frame)

    def _poll_notices() -> None:
        changed = False
        while True:
            try:
                item = notices.get_nowait()
            except queue.Empty:
                break
            notice_var.set(item)
            changed = True
        if changed:
            _render_history()
        root.after(200, _poll_notices)

    def _on_close() -> None:
        logger.info("Closing window")
        watcher.stop()
        timer.shutdown()
        root.destroy()

    root.protocol("WM_DELETE_WINDOW", _on_close)
    watcher.start()
    _render_history()
    _update_frame()
    _poll_notices()
    root.mainloop()
