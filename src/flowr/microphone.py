"""Microphone discovery and capture for speech recognition."""

from __future__ import annotations

import logging
import queue
from typing import Any, Dict, List, Optional

logger = logging.getLogger("flowr.microphone")


class MicrophoneUnavailable(RuntimeError):
    """The capture device could not be opened (missing, busy or not permitted)."""


def list_input_devices() -> List[Dict[str, Any]]:
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise RuntimeError("sounddevice is required for device detection.") from exc

    devices = []
    for index, device in enumerate(sd.query_devices()):
        if device.get("max_input_channels", 0) <= 0:
            continue
        info = dict(device)
        info.setdefault("index", index)
        devices.append(info)
    return devices


def select_microphone(
    candidates: List[Dict[str, Any]],
    prefer_name: Optional[str] = None,
) -> Dict[str, Any]:
    if not candidates:
        raise MicrophoneUnavailable("No input devices found.")
    if prefer_name:
        needle = prefer_name.lower()
        for device in candidates:
            if needle in device.get("name", "").lower():
                return device
        logger.warning("Preferred microphone %r not found, using default", prefer_name)
    return candidates[0]


def find_microphone(prefer_name: Optional[str] = None) -> Dict[str, Any]:
    return select_microphone(list_input_devices(), prefer_name=prefer_name)


class MicrophoneStream:
    """Mono capture into a bounded queue; chunks are dropped when it is full."""

    def __init__(
        self,
        device: Optional[Dict[str, Any]] = None,
        sample_rate_hz: int = 16000,
        channels: int = 1,
        max_chunks: int = 50,
    ) -> None:
        self.device = device
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max_chunks)
        self._stream = None
        self.dropped = 0

    def _callback(self, indata, _frames, _time, status) -> None:
        if status:
            logger.debug("Microphone status: %s", status)
        try:
            self._queue.put_nowait(indata.copy())
        except queue.Full:
            self.dropped += 1

    def __enter__(self) -> "MicrophoneStream":
        try:
            import sounddevice as sd
        except Exception as exc:  # pragma: no cover - environment-dependent
            raise RuntimeError("sounddevice is required for recording.") from exc

        device_index = self.device.get("index") if self.device else None
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate_hz,
                channels=self.channels,
                dtype="int16",
                device=device_index,
                callback=self._callback,
            )
            self._stream.start()
        except Exception as exc:
            self._stream = None
            raise MicrophoneUnavailable(f"Could not open microphone: {exc}") from exc
        return self

    def __exit__(self, *_exc) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        if self.dropped:
            logger.debug("Microphone dropped %s chunks", self.dropped)

    def read(self, timeout: float = 0.25):
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
