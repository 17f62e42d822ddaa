"""Speech trigger: a self-healing live recognition loop tied to a running session.

A recognizer is chosen once at startup. ``WhisperRecognizer`` listens on the
microphone and transcribes short windows with faster-whisper;
``UnsupportedRecognizer`` stands in when the speech stack or a microphone is
missing. Callers only ever talk to ``SpeechTrigger``.

Each ``UtteranceStream`` is single use. It yields text until it is closed or
it ends by itself (live streams end after ``max_stream_seconds``). Restarting
is the trigger's job: when a stream ends while the session still wants to
listen, the trigger opens a new one.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterator, Optional

from .config import SpeechConfig
from .events import VOICE_ERROR, VOICE_PERMISSION_DENIED, VOICE_UNSUPPORTED
from .microphone import MicrophoneStream, MicrophoneUnavailable, find_microphone

logger = logging.getLogger("flowr.speech")


class RecognizerUnavailable(RuntimeError):
    pass


class VoicePermissionDenied(RuntimeError):
    pass


class UtteranceStream:
    def __iter__(self) -> Iterator[str]:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class SpeechRecognizer:
    supported = True
    reason = ""

    def open_stream(self) -> UtteranceStream:
        raise NotImplementedError


class UnsupportedRecognizer(SpeechRecognizer):
    supported = False

    def __init__(self, reason: str = "Speech recognition is not available here.") -> None:
        self.reason = reason

    def open_stream(self) -> UtteranceStream:
        raise RecognizerUnavailable(self.reason)


class WhisperRecognizer(SpeechRecognizer):
    def __init__(self, config: SpeechConfig, device: Optional[dict] = None) -> None:
        self.config = config
        self.device = device
        self._model = None
        self._model_lock = threading.Lock()

    def model(self):
        with self._model_lock:
            if self._model is None:
                try:
                    from faster_whisper import WhisperModel
                except Exception as exc:  # pragma: no cover - optional dependency
                    raise RecognizerUnavailable(
                        "faster-whisper is required for voice auto-stop."
                    ) from exc
                kwargs = {}
                if self.config.whisper_device:
                    kwargs["device"] = self.config.whisper_device
                if self.config.compute_type:
                    kwargs["compute_type"] = self.config.compute_type
                logger.info("Loading whisper model %s", self.config.model)
                self._model = WhisperModel(self.config.model, **kwargs)
            return self._model

    def open_stream(self) -> UtteranceStream:
        return WhisperStream(self)


class WhisperStream(UtteranceStream):
    def __init__(self, recognizer: WhisperRecognizer) -> None:
        self._recognizer = recognizer
        self._closed = threading.Event()

    def close(self) -> None:
        self._closed.set()

    def __iter__(self) -> Iterator[str]:
        import numpy as np

        config = self._recognizer.config
        model = self._recognizer.model()
        rate = config.sample_rate_hz
        window = int(rate * config.chunk_seconds)
        overlap = int(rate * config.overlap_seconds)
        buffer = np.zeros(0, dtype=np.float32)
        deadline = None
        if config.max_stream_seconds:
            deadline = time.monotonic() + config.max_stream_seconds

        try:
            mic = MicrophoneStream(self._recognizer.device, sample_rate_hz=rate)
            with mic:
                while not self._closed.is_set():
                    if deadline is not None and time.monotonic() >= deadline:
                        return
                    chunk = mic.read(timeout=0.25)
                    if chunk is None:
                        continue
                    samples = chunk.reshape(-1).astype(np.float32) / 32768.0
                    buffer = np.concatenate([buffer, samples])
                    while buffer.shape[0] >= window and not self._closed.is_set():
                        segment = buffer[:window]
                        buffer = buffer[window - overlap :] if overlap > 0 else buffer[window:]
                        yield self._transcribe(model, segment)
        except MicrophoneUnavailable as exc:
            raise VoicePermissionDenied(str(exc)) from exc

    def _transcribe(self, model, audio) -> str:
        segments, _info = model.transcribe(audio, language=self._recognizer.config.language)
        return " ".join(s.text.strip() for s in segments)


def detect_recognizer(config: SpeechConfig) -> SpeechRecognizer:
    """Pick the recognizer variant for this process."""
    try:
        import faster_whisper  # noqa: F401
        import numpy  # noqa: F401
        import sounddevice  # noqa: F401
    except Exception as exc:
        logger.info("Speech recognition unsupported: %s", exc)
        return UnsupportedRecognizer(f"Speech stack not installed ({exc}).")
    try:
        device = find_microphone(config.device_name)
    except Exception as exc:
        logger.info("Speech recognition unsupported: %s", exc)
        return UnsupportedRecognizer(f"No usable microphone ({exc}).")
    logger.info("Speech recognition via %s", device.get("name", "default input"))
    return WhisperRecognizer(config, device)


def _spawn_daemon(target: Callable[[], None]) -> None:
    threading.Thread(target=target, name="flowr-speech", daemon=True).start()


class SpeechTrigger:
    def __init__(
        self,
        recognizer: SpeechRecognizer,
        on_utterance: Callable[[str], None],
        should_listen: Callable[[], bool],
        notify: Optional[Callable[..., None]] = None,
        restart_delay: float = 0.5,
        spawn: Optional[Callable[[Callable[[], None]], None]] = None,
    ) -> None:
        self.recognizer = recognizer
        self.restart_delay = restart_delay
        self._on_utterance = on_utterance
        self._should_listen = should_listen
        self._notify = notify or (lambda event, **payload: None)
        self._spawn = spawn or _spawn_daemon
        self._lock = threading.Lock()
        self._generation = 0
        self._starting = False
        self._stream: Optional[UtteranceStream] = None
        self._cancel: Optional[threading.Event] = None
        self._blocked = False
        self._unsupported_reported = False

    @property
    def supported(self) -> bool:
        return self.recognizer.supported

    @property
    def listening(self) -> bool:
        with self._lock:
            return self._stream is not None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._starting

    def arm(self) -> bool:
        if not self.recognizer.supported:
            if not self._unsupported_reported:
                self._unsupported_reported = True
                self._notify(VOICE_UNSUPPORTED, reason=self.recognizer.reason)
            return False
        if not self._should_listen():
            return False
        with self._lock:
            if self._starting or self._stream is not None or self._blocked:
                return False
            self._starting = True
            self._generation += 1
            generation = self._generation
            cancel = threading.Event()
            self._cancel = cancel
        logger.debug("Arming recognition stream %s", generation)
        self._spawn(lambda: self._run(generation, cancel))
        return True

    def disarm(self) -> None:
        with self._lock:
            self._generation += 1
            self._starting = False
            self._blocked = False
            stream, self._stream = self._stream, None
            cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel.set()
        if stream is None:
            return
        try:
            stream.close()
        except Exception as exc:
            logger.debug("Recognition stream close failed: %s", exc)

    def _current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _run(self, generation: int, cancel: threading.Event) -> None:
        stream = None
        restart = False
        try:
            stream = self.recognizer.open_stream()
            with self._lock:
                if generation != self._generation:
                    stream.close()
                    return
                self._stream = stream
                self._starting = False
            for chunk in stream:
                if not self._current(generation):
                    break
                text = (chunk or "").strip()
                if text:
                    self._on_utterance(text)
            restart = True
        except VoicePermissionDenied as exc:
            logger.warning("Voice permission denied: %s", exc)
            with self._lock:
                if generation == self._generation:
                    self._blocked = True
            self._notify(VOICE_PERMISSION_DENIED, error=str(exc))
        except RecognizerUnavailable as exc:
            logger.warning("Recognizer unavailable: %s", exc)
            with self._lock:
                if generation == self._generation:
                    self._blocked = True
            self._notify(VOICE_UNSUPPORTED, reason=str(exc))
        except Exception as exc:
            logger.warning("Recognition stream error: %s", exc)
            self._notify(VOICE_ERROR, error=str(exc))
            restart = True
        finally:
            if stream is not None:
                try:
                    stream.close()
                except Exception as exc:
                    logger.debug("Recognition stream close failed: %s", exc)
            with self._lock:
                current = generation == self._generation
                if current:
                    self._stream = None
                    self._starting = False
        if restart and current:
            self._restart(generation, cancel)

    def _restart(self, generation: int, cancel: threading.Event) -> None:
        if self.restart_delay > 0 and cancel.wait(self.restart_delay):
            return
        if not self._current(generation):
            return
        if self._should_listen():
            logger.debug("Recognition stream ended while running, re-arming")
            self.arm()
