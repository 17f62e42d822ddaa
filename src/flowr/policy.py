"""Auto-stop decision for recognized speech."""

from __future__ import annotations

from typing import Optional

from .models import MODE_ANY, MODE_KEYWORD, RUNNING, VOICE_ANY, VOICE_KEYWORD, VoiceConfig


def keyword_matches(utterance: str, keyword: str) -> bool:
    needle = (keyword or "").strip().lower()
    if not needle:
        return False
    return needle in utterance.lower()


def decide_stop(utterance: str, voice: VoiceConfig, status: str) -> Optional[str]:
    """Stop reason to issue for ``utterance``, or ``None`` to ignore it."""
    if status != RUNNING or not voice.enabled:
        return None
    text = (utterance or "").strip()
    if not text:
        return None
    if voice.mode == MODE_ANY:
        return VOICE_ANY
    if voice.mode == MODE_KEYWORD and keyword_matches(text, voice.keyword):
        return VOICE_KEYWORD
    return None
