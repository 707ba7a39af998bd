from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MoodLabel = Literal["melancholic", "contemplative", "uplifting", "joyful"]
GenerationMethod = Literal["proxy", "elevenlabs", "huggingface", "procedural"]
AudioFormat = Literal["wav", "mp3"]
PlaybackPhase = Literal["idle", "paused", "playing"]

MIN_RATING = 1
MAX_RATING = 10
MIN_TEMPO = 40
MAX_TEMPO = 200
DEFAULT_DURATION_SECONDS = 8
PEAK_BARS = 96

_FROZEN = ConfigDict(frozen=True, extra="forbid")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_rating(value: float) -> int:
    """Clamp to [1, 10] and round half up."""
    if math.isnan(value):
        return MIN_RATING
    bounded = min(max(float(value), MIN_RATING), MAX_RATING)
    return int(math.floor(bounded + 0.5))


def clamp_tempo(value: float) -> int:
    return int(min(max(round(value), MIN_TEMPO), MAX_TEMPO))


def mood_label(rating: float) -> MoodLabel:
    clamped = clamp_rating(rating)
    if clamped <= 3:
        return "melancholic"
    if clamped <= 5:
        return "contemplative"
    if clamped <= 7:
        return "uplifting"
    return "joyful"


def normalize_tags(tags: Any) -> tuple[str, ...]:
    """Lowercase, strip and dedupe tags while keeping the supplied order."""
    if tags is None:
        return ()
    if isinstance(tags, str):
        tags = [tags]
    seen: set[str] = set()
    normalized: list[str] = []
    for tag in tags:
        cleaned = str(tag).strip().lower()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        normalized.append(cleaned)
    return tuple(normalized)


class MoodEntry(BaseModel):
    """A single logged mood: rating, emotion tags and free-text reflection."""

    entry_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=_utcnow)
    mood_rating: int
    emotion_tags: tuple[str, ...] = ()
    influences: tuple[str, ...] = ()
    reflection: str = ""
    music_generated: bool = False
    music_id: str | None = None

    model_config = _FROZEN

    @field_validator("mood_rating", mode="before")
    @classmethod
    def _clamp_rating(cls, value: Any) -> int:
        return clamp_rating(float(value))

    @field_validator("emotion_tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> tuple[str, ...]:
        return normalize_tags(value)

    @field_validator("reflection", mode="before")
    @classmethod
    def _none_reflection(cls, value: Any) -> str:
        return "" if value is None else value

    def with_music_link(self, music_id: str) -> "MoodEntry":
        return self.model_copy(update={"music_generated": True, "music_id": music_id})


class MusicParameters(BaseModel):
    tempo: int = Field(ge=MIN_TEMPO, le=MAX_TEMPO)
    key_signature: str
    scale_type: str
    density: float = Field(ge=0.0, le=1.0)
    dynamics: float = Field(ge=0.0, le=1.0)
    instrumentation: tuple[str, ...] = Field(min_length=1)
    reverb: float = Field(ge=0.0, le=1.0)
    complexity: float = Field(ge=0.0, le=1.0)
    harmony: str
    rhythm_complexity: float | None = None

    model_config = _FROZEN


class GenerationRequest(BaseModel):
    """Transient bundle passed through one orchestration run."""

    user_id: str
    entry_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    parameters: MusicParameters
    reflection: str
    mood_rating: int
    emotion_tags: tuple[str, ...]

    model_config = _FROZEN

    @classmethod
    def from_entry(
        cls,
        user_id: str,
        entry: MoodEntry,
        parameters: MusicParameters,
    ) -> "GenerationRequest":
        return cls(
            user_id=user_id,
            entry_id=entry.entry_id,
            parameters=parameters,
            reflection=entry.reflection,
            mood_rating=entry.mood_rating,
            emotion_tags=entry.emotion_tags,
        )


class MusicSummary(BaseModel):
    tempo: int
    key: str
    instruments: tuple[str, ...]
    mood: MoodLabel

    model_config = _FROZEN

    @classmethod
    def from_parameters(cls, parameters: MusicParameters, rating: float) -> "MusicSummary":
        return cls(
            tempo=parameters.tempo,
            key=parameters.key_signature,
            instruments=parameters.instrumentation,
            mood=mood_label(rating),
        )


class GeneratedMusic(BaseModel):
    """One generated clip. Only ``waveform_peaks`` may be attached after creation."""

    music_id: str = Field(min_length=1)
    user_id: str
    entry_id: str
    generated_at: datetime = Field(default_factory=_utcnow)
    audio_ref: str
    duration: float = DEFAULT_DURATION_SECONDS
    music_parameters: MusicSummary
    generation_method: GenerationMethod = "procedural"
    audio_format: AudioFormat = "wav"
    waveform_peaks: tuple[float, ...] | None = None
    prompt_prefix_used: str | None = None
    prompt_label_used: str | None = None

    model_config = _FROZEN

    @field_validator("waveform_peaks")
    @classmethod
    def _check_peaks(cls, value: tuple[float, ...] | None) -> tuple[float, ...] | None:
        if value is None:
            return None
        if any(peak < 0.0 or peak > 1.0 for peak in value):
            raise ValueError("waveform peaks must be normalized to [0, 1]")
        return value

    def with_peaks(self, peaks: tuple[float, ...]) -> "GeneratedMusic":
        return GeneratedMusic.model_validate(
            {**self.model_dump(), "waveform_peaks": tuple(peaks)}
        )


class PlaybackState(BaseModel):
    is_playing: bool = False
    current_music_id: str | None = None
    is_repeat_enabled: bool = False
    volume: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = _FROZEN


class PlaybackStatus(PlaybackState):
    phase: PlaybackPhase = "idle"
    position: float | None = None


class PlaybackResult(BaseModel):
    ok: bool
    reason: str | None = None

    model_config = _FROZEN

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> "PlaybackResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "PlaybackResult":
        return cls(ok=False, reason=reason)
