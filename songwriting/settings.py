from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

MIN_TEMPO = 60
MAX_TEMPO = 200
CHARS_PER_BEAT = 4

TIME_SIGNATURE_BEATS = {
    "4/4": 4,
    "6/8": 6,
    "3/4": 3,
    "2/4": 2,
}


@dataclass(frozen=True)
class EditorSettings:
    default_tempo: int = 120
    default_time_signature: str = "4/4"
    default_key: str = "C"
    pixels_per_beat: float = 60.0
    default_section_bars: int = 16


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def clamp_tempo(tempo: float) -> int:
    return int(max(MIN_TEMPO, min(MAX_TEMPO, round(tempo))))


def beats_per_bar(time_signature: str) -> int:
    return TIME_SIGNATURE_BEATS.get(time_signature.strip(), 4)


def load_settings() -> EditorSettings:
    time_signature = os.getenv("SONGWRITING_DEFAULT_TIME_SIGNATURE", "4/4").strip()
    if time_signature not in TIME_SIGNATURE_BEATS:
        raise ValueError(
            f"SONGWRITING_DEFAULT_TIME_SIGNATURE must be one of {', '.join(TIME_SIGNATURE_BEATS)}; got {time_signature!r}."
        )
    pixels_per_beat = _env_float("SONGWRITING_PIXELS_PER_BEAT", 60.0)
    if pixels_per_beat <= 0:
        raise ValueError("SONGWRITING_PIXELS_PER_BEAT must be positive.")
    section_bars = _env_int("SONGWRITING_DEFAULT_SECTION_BARS", 16)
    if section_bars < 1:
        raise ValueError("SONGWRITING_DEFAULT_SECTION_BARS must be at least 1.")
    return EditorSettings(
        default_tempo=clamp_tempo(_env_int("SONGWRITING_DEFAULT_TEMPO", 120)),
        default_time_signature=time_signature,
        default_key=os.getenv("SONGWRITING_DEFAULT_KEY", "C").strip() or "C",
        pixels_per_beat=pixels_per_beat,
        default_section_bars=section_bars,
    )


@lru_cache(maxsize=1)
def get_settings() -> EditorSettings:
    return load_settings()
