"""Configuration handling."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Optional

import yaml

from .history import HISTORY_LIMIT
from .models import VOICE_MODES, VoiceConfig

DEFAULT_CONFIG_PATH = "flowr_config.yml"


@dataclass
class SpeechConfig:
    enabled: bool = False
    mode: str = "any"
    keyword: str = ""
    model: str = "tiny"
    language: Optional[str] = None
    device_name: Optional[str] = None
    whisper_device: Optional[str] = None
    compute_type: Optional[str] = None
    sample_rate_hz: int = 16000
    chunk_seconds: float = 3.0
    overlap_seconds: float = 0.5
    max_stream_seconds: float = 60.0
    restart_delay_seconds: float = 0.5

    def voice(self) -> VoiceConfig:
        """Initial voice settings for an interactive run."""
        mode = self.mode if self.mode in VOICE_MODES else "any"
        return VoiceConfig(enabled=self.enabled, mode=mode, keyword=self.keyword.strip())


@dataclass
class BotConfig:
    refresh_seconds: float = 5.0
    actor_id: str = "local"
    display_name: str = "local"


@dataclass
class Config:
    state_dir: str = ""
    history_limit: int = HISTORY_LIMIT
    display_refresh_ms: int = 50
    schedule_check_seconds: float = 1.0
    debug_logging: bool = False
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    bot: BotConfig = field(default_factory=BotConfig)


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    speech = SpeechConfig(**(data.get("speech") or {}))
    bot = BotConfig(**(data.get("bot") or {}))
    if speech.mode not in VOICE_MODES:
        raise ValueError(f"speech.mode must be one of {VOICE_MODES}, got {speech.mode!r}")

    return Config(
        state_dir=data.get("state_dir") or "",
        history_limit=int(data.get("history_limit", HISTORY_LIMIT)),
        display_refresh_ms=int(data.get("display_refresh_ms", 50)),
        schedule_check_seconds=float(data.get("schedule_check_seconds", 1.0)),
        debug_logging=bool(data.get("debug_logging", False)),
        speech=speech,
        bot=bot,
    )


def load_config_or_default(path: str) -> Config:
    if path and os.path.exists(path):
        return load_config(path)
    return Config()


def save_config(path: str, config: Config) -> None:
    data = {
        "state_dir": config.state_dir,
        "history_limit": config.history_limit,
        "display_refresh_ms": config.display_refresh_ms,
        "schedule_check_seconds": config.schedule_check_seconds,
        "debug_logging": config.debug_logging,
        "speech": asdict(config.speech),
        "bot": asdict(config.bot),
    }
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)
