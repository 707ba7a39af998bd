"""Mood entry to musical parameter mapping.

Three layers are applied in order: a base profile keyed by the clamped mood
rating, per-emotion-tag modifiers, and a keyword pass over the reflection text.
The only randomness is whether a reflection's scale preference is applied, and
that draw comes from the injected random source.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from .models import (
    MoodEntry,
    MusicParameters,
    clamp_rating,
    clamp_tempo,
)

_LOGGER = logging.getLogger("moodscore.mapper")

SCALE_PREFERENCE_PROBABILITY = 0.7
_INTENSITY_FLOOR = 0.1
_INTENSITY_CEILING = 1.0
_PUNCTUATION = ".,!?;:'\"()"


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True, slots=True)
class _BaseProfile:
    tempo: int
    key_signature: str
    scale_type: str
    density: float
    dynamics: float
    instrumentation: tuple[str, ...]
    reverb: float
    complexity: float
    harmony: str


@dataclass(frozen=True, slots=True)
class _EmotionModifier:
    tempo: int = 0
    scale_type: str | None = None
    instruments: tuple[str, ...] = field(default_factory=tuple)
    reverb_delta: float | None = None
    dynamics: float | None = None
    density: float | None = None
    rhythm_complexity: float | None = None
    complexity: float | None = None
    harmony: str | None = None


@dataclass(frozen=True, slots=True)
class _Keyword:
    tempo: int = 0
    scale_preference: str | None = None
    intensity: float = 0.0


_PIANO_GUITAR_BASS = ("piano", "guitar", "bass")

BASE_PROFILES: Mapping[int, _BaseProfile] = MappingProxyType(
    {
        1: _BaseProfile(60, "C minor", "minor", 0.3, 0.4, ("piano", "strings"), 0.8, 0.3, "dissonant"),
        2: _BaseProfile(65, "G minor", "minor", 0.4, 0.5, ("piano", "cello"), 0.7, 0.4, "minor"),
        3: _BaseProfile(
            72, "D minor", "minor", 0.5, 0.5, ("piano", "guitar", "strings"), 0.6, 0.5, "minor_major"
        ),
        4: _BaseProfile(80, "A minor", "dorian", 0.5, 0.6, _PIANO_GUITAR_BASS, 0.5, 0.5, "dorian"),
        5: _BaseProfile(
            88,
            "F major",
            "mixolydian",
            0.6,
            0.6,
            (*_PIANO_GUITAR_BASS, "light percussion"),
            0.5,
            0.6,
            "mixolydian",
        ),
        6: _BaseProfile(
            96, "D major", "major", 0.6, 0.7, (*_PIANO_GUITAR_BASS, "percussion"), 0.4, 0.6, "major"
        ),
        7: _BaseProfile(
            104,
            "A major",
            "major",
            0.7,
            0.7,
            (*_PIANO_GUITAR_BASS, "percussion", "synth"),
            0.4,
            0.7,
            "major",
        ),
        8: _BaseProfile(
            112,
            "E major",
            "lydian",
            0.7,
            0.8,
            (*_PIANO_GUITAR_BASS, "percussion", "synth"),
            0.3,
            0.7,
            "lydian",
        ),
        9: _BaseProfile(
            120,
            "B major",
            "lydian",
            0.8,
            0.8,
            (*_PIANO_GUITAR_BASS, "full percussion", "synth", "brass"),
            0.3,
            0.8,
            "lydian",
        ),
        10: _BaseProfile(
            132,
            "E major",
            "lydian",
            0.9,
            0.9,
            (*_PIANO_GUITAR_BASS, "full percussion", "synth", "brass", "strings"),
            0.2,
            0.9,
            "lydian",
        ),
    }
)

EMOTION_MODIFIERS: Mapping[str, _EmotionModifier] = MappingProxyType(
    {
        "sad": _EmotionModifier(
            tempo=-10, scale_type="minor", instruments=("cello",), reverb_delta=0.1, harmony="dissonant"
        ),
        "anxious": _EmotionModifier(
            tempo=5,
            scale_type="diminished",
            instruments=("tremolo strings",),
            rhythm_complexity=0.7,
            harmony="chromatic",
        ),
        "angry": _EmotionModifier(
            tempo=10,
            scale_type="phrygian",
            instruments=("distorted guitar", "heavy percussion"),
            dynamics=0.8,
            harmony="power_chords",
        ),
        "frustrated": _EmotionModifier(
            tempo=5,
            scale_type="minor",
            instruments=("distorted bass",),
            rhythm_complexity=0.6,
            harmony="minor",
        ),
        "tired": _EmotionModifier(
            tempo=-15, scale_type="minor", instruments=("soft pad",), density=0.4, harmony="ambient"
        ),
        "calm": _EmotionModifier(
            tempo=-10,
            scale_type="major",
            instruments=("acoustic guitar", "soft pad"),
            reverb_delta=0.1,
            harmony="open_chords",
        ),
        "focused": _EmotionModifier(
            scale_type="major",
            instruments=("piano", "minimal percussion"),
            rhythm_complexity=0.4,
            harmony="minimal",
        ),
        "reflective": _EmotionModifier(
            tempo=-5,
            scale_type="dorian",
            instruments=("piano", "ambient pad"),
            reverb_delta=0.1,
            harmony="modal",
        ),
        "happy": _EmotionModifier(
            tempo=10, scale_type="major", instruments=("bright synth",), dynamics=0.8, harmony="major"
        ),
        "excited": _EmotionModifier(
            tempo=15,
            scale_type="lydian",
            instruments=("bright synth", "full percussion"),
            dynamics=0.9,
            harmony="lydian",
        ),
        "grateful": _EmotionModifier(
            scale_type="major",
            instruments=("acoustic guitar", "warm pad"),
            reverb_delta=0.05,
            harmony="warm",
        ),
        "peaceful": _EmotionModifier(
            tempo=-5,
            scale_type="major",
            instruments=("flute", "soft strings"),
            reverb_delta=0.1,
            harmony="peaceful",
        ),
        "energetic": _EmotionModifier(
            tempo=15,
            scale_type="major",
            instruments=("electric guitar", "drums"),
            dynamics=0.9,
            harmony="energetic",
        ),
        "creative": _EmotionModifier(
            tempo=5,
            scale_type="mixolydian",
            instruments=("synth", "experimental sounds"),
            complexity=0.8,
            harmony="experimental",
        ),
    }
)

SENTIMENT_KEYWORDS: Mapping[str, _Keyword] = MappingProxyType(
    {
        "struggle": _Keyword(-5, "minor"),
        "difficult": _Keyword(-5, "minor"),
        "challenge": _Keyword(0, "minor"),
        "stress": _Keyword(5, "diminished"),
        "worry": _Keyword(0, "minor"),
        "fear": _Keyword(0, "diminished"),
        "sad": _Keyword(-10, "minor"),
        "lonely": _Keyword(-10, "minor"),
        "tired": _Keyword(-15, "minor"),
        "exhausted": _Keyword(-15, "minor"),
        "happy": _Keyword(10, "major"),
        "joy": _Keyword(15, "lydian"),
        "excited": _Keyword(15, "lydian"),
        "grateful": _Keyword(5, "major"),
        "thankful": _Keyword(5, "major"),
        "peaceful": _Keyword(-5, "major"),
        "calm": _Keyword(-10, "major"),
        "love": _Keyword(0, "major"),
        "hope": _Keyword(5, "major"),
        "inspired": _Keyword(10, "lydian"),
        # Intensifiers only count next to another keyword.
        "very": _Keyword(intensity=0.2),
        "extremely": _Keyword(intensity=0.3),
        "somewhat": _Keyword(intensity=-0.1),
        "slightly": _Keyword(intensity=-0.2),
    }
)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def tokenize_reflection(text: str) -> list[str]:
    """Lowercased whitespace tokens with surrounding punctuation stripped."""
    return [word.strip(_PUNCTUATION) for word in text.lower().split()]


def _base_layer(rating: int) -> dict[str, Any]:
    profile = BASE_PROFILES[clamp_rating(rating)]
    return {
        "tempo": profile.tempo,
        "key_signature": profile.key_signature,
        "scale_type": profile.scale_type,
        "density": profile.density,
        "dynamics": profile.dynamics,
        "instrumentation": list(profile.instrumentation),
        "reverb": profile.reverb,
        "complexity": profile.complexity,
        "harmony": profile.harmony,
        "rhythm_complexity": None,
    }


def _apply_emotion_tags(params: dict[str, Any], tags: Sequence[str]) -> None:
    for tag in tags:
        modifier = EMOTION_MODIFIERS.get(tag.strip().lower())
        if modifier is None:
            _LOGGER.debug("Ignoring unknown emotion tag %r", tag)
            continue
        params["tempo"] += modifier.tempo
        if modifier.scale_type is not None:
            params["scale_type"] = modifier.scale_type
        for instrument in modifier.instruments:
            if instrument not in params["instrumentation"]:
                params["instrumentation"].append(instrument)
        if modifier.reverb_delta is not None:
            params["reverb"] = _clamp(params["reverb"] + modifier.reverb_delta, 0.0, 1.0)
        if modifier.dynamics is not None:
            params["dynamics"] = modifier.dynamics
        if modifier.density is not None:
            params["density"] = modifier.density
        if modifier.rhythm_complexity is not None:
            params["rhythm_complexity"] = modifier.rhythm_complexity
        if modifier.harmony is not None:
            params["harmony"] = modifier.harmony
        if modifier.complexity is not None:
            params["complexity"] = modifier.complexity
    params["tempo"] = clamp_tempo(params["tempo"])


def _apply_reflection(params: dict[str, Any], reflection: str, rng: RandomSource) -> None:
    words = tokenize_reflection(reflection)
    tempo_delta = 0
    scale_preference: str | None = None
    intensity = 0.0

    for index, word in enumerate(words):
        keyword = SENTIMENT_KEYWORDS.get(word)
        if keyword is None:
            continue
        tempo_delta += keyword.tempo
        if keyword.scale_preference and scale_preference is None:
            scale_preference = keyword.scale_preference
        if keyword.intensity:
            previous_word = words[index - 1] if index > 0 else None
            next_word = words[index + 1] if index + 1 < len(words) else None
            if previous_word in SENTIMENT_KEYWORDS or next_word in SENTIMENT_KEYWORDS:
                intensity += keyword.intensity

    params["tempo"] = clamp_tempo(params["tempo"] + tempo_delta)
    if scale_preference is not None and rng.random() < SCALE_PREFERENCE_PROBABILITY:
        params["scale_type"] = scale_preference
    if intensity != 0:
        params["dynamics"] = _clamp(params["dynamics"] + intensity, _INTENSITY_FLOOR, _INTENSITY_CEILING)
        params["density"] = _clamp(params["density"] + intensity, _INTENSITY_FLOOR, _INTENSITY_CEILING)


def derive_parameters(entry: MoodEntry, rng: RandomSource) -> MusicParameters:
    """Map a mood entry to a fully populated set of musical parameters."""
    params = _base_layer(entry.mood_rating)
    _apply_emotion_tags(params, entry.emotion_tags)
    _apply_reflection(params, entry.reflection, rng)
    params["instrumentation"] = tuple(params["instrumentation"])
    # Float accumulation (0.7 + 0.2 + 0.3) can land a hair outside the bounds.
    for name in ("density", "dynamics", "reverb", "complexity"):
        params[name] = round(_clamp(params[name], 0.0, 1.0), 6)
    return MusicParameters(**params)
