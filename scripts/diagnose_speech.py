import argparse
import os
import sys
import threading
import time

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from flowr.config import SpeechConfig
from flowr.speech import SpeechTrigger, detect_recognizer


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--seconds", type=float, default=20.0, help="Listen time.")
    parser.add_argument("--model", default="tiny", help="Whisper model name.")
    parser.add_argument("--language", help="Language code (e.g., en).")
    parser.add_argument("--device", help="Microphone name substring.")
    parser.add_argument("--stream-seconds", type=float, default=8.0, help="Stream length.")
    args = parser.parse_args()

    config = SpeechConfig(
        model=args.model,
        language=args.language,
        device_name=args.device,
        max_stream_seconds=args.stream_seconds,
    )
    recognizer = detect_recognizer(config)
    if not recognizer.supported:
        print(f"Unsupported: {recognizer.reason}")
        return 1

    listening = threading.Event()
    listening.set()
    counts = {"utterances": 0, "events": 0}

    def _on_utterance(text: str) -> None:
        counts["utterances"] += 1
        print(f"Heard {len(text.split())} words")

    def _notify(event: str, **payload) -> None:
        counts["events"] += 1
        print(f"Event {event}: {payload}")

    trigger = SpeechTrigger(
        recognizer,
        on_utterance=_on_utterance,
        should_listen=listening.is_set,
        notify=_notify,
    )
    started = time.time()
    trigger.arm()
    try:
        time.sleep(args.seconds)
    finally:
        listening.clear()
        trigger.disarm()
    print(f"Utterances: {counts['utterances']}")
    print(f"Events: {counts['events']}")
    print(f"Elapsed: {time.time() - started:.2f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
