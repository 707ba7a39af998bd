"""Procedural fallback synthesis.

Renders a short mono clip from musical parameters: a repeating four-step
melody chosen by mood label, fixed overtones and a sub-octave bass, shaped by a
linear attack/release envelope and quantized to 16-bit PCM.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict

from .audio import SAMPLE_RATE, FloatArray, encode_wav
from .mapper import RandomSource
from .models import DEFAULT_DURATION_SECONDS, PEAK_BARS, MusicParameters
from .waveform import bucket_maxima

_LOGGER = logging.getLogger("moodscore.synth")

DEFAULT_FREQUENCY = 440.0
NOTE_LENGTH = 0.8
VELOCITY_FLOOR = 0.5
VELOCITY_SPREAD = 0.3
MELODY_GAIN = 0.4
SECOND_HARMONIC_GAIN = 0.15
THIRD_HARMONIC_GAIN = 0.1
BASS_GAIN = 0.2
ATTACK_SECONDS = 0.1
RELEASE_SECONDS = 0.3
CLIP_LEVEL = 0.8
_INT16_SCALE = 32_767

ROOT_FREQUENCIES: Mapping[str, float] = MappingProxyType(
    {
        "C": 261.63,
        "C#": 277.18,
        "D": 293.66,
        "D#": 311.13,
        "E": 329.63,
        "F": 349.23,
        "F#": 369.99,
        "G": 392.00,
        "G#": 415.30,
        "A": 440.00,
        "A#": 466.16,
        "B": 493.88,
    }
)

_MAJOR_STEPS = (0, 4, 7, 12)
_MINOR_STEPS = (0, 3, 7, 10)
_OPEN_STEPS = (0, 5, 7, 12)


class Note(BaseModel):
    start: float
    end: float
    pitch: int
    velocity: float

    model_config = ConfigDict(frozen=True, extra="forbid")


class SynthResult(BaseModel):
    audio: bytes
    peaks: tuple[float, ...]
    sample_count: int
    sample_rate: int

    model_config = ConfigDict(frozen=True, extra="forbid")


def base_frequency(key_signature: str | None) -> float:
    """Root-note frequency for keys like ``"F# minor"``; 440 Hz if unrecognized."""
    if not key_signature:
        return DEFAULT_FREQUENCY
    root = key_signature.strip().split(" ")[0]
    return ROOT_FREQUENCIES.get(root, DEFAULT_FREQUENCY)


def pitch_pattern(mood: str | None) -> tuple[int, int, int, int]:
    label = (mood or "neutral").lower()
    if any(word in label for word in ("joyful", "uplifting", "happy")):
        return _MAJOR_STEPS
    if any(word in label for word in ("melancholic", "sad")):
        return _MINOR_STEPS
    return _OPEN_STEPS


def generate_melody(
    mood: str | None,
    tempo: float,
    duration: float,
    rng: RandomSource,
) -> list[Note]:
    beat = 60.0 / tempo
    pattern = pitch_pattern(mood)
    notes: list[Note] = []
    for index in range(int(np.floor(duration / beat))):
        start = index * beat
        notes.append(
            Note(
                start=start,
                end=start + beat * NOTE_LENGTH,
                pitch=pattern[index % len(pattern)],
                velocity=VELOCITY_FLOOR + rng.random() * VELOCITY_SPREAD,
            )
        )
    return notes


def envelope(times: FloatArray | NDArray[np.float64], duration: float) -> NDArray[np.float64]:
    """Linear ramp in over the attack, linear ramp out over the release, flat between."""
    t = np.asarray(times, dtype=np.float64)
    env = np.ones_like(t)
    attack = t < ATTACK_SECONDS
    env[attack] = t[attack] / ATTACK_SECONDS
    release = t > duration - RELEASE_SECONDS
    env[release] = np.maximum((duration - t[release]) / RELEASE_SECONDS, 0.0)
    return env


def render_samples(
    parameters: MusicParameters,
    mood: str | None,
    *,
    duration: float = DEFAULT_DURATION_SECONDS,
    sample_rate: int = SAMPLE_RATE,
    rng: RandomSource,
) -> NDArray[np.float64]:
    """Float samples clamped to the safe amplitude range."""
    sample_count = int(sample_rate * duration)
    t = np.arange(sample_count, dtype=np.float64) / sample_rate
    base = base_frequency(parameters.key_signature)
    signal = np.zeros(sample_count, dtype=np.float64)

    for note in generate_melody(mood, parameters.tempo, duration, rng):
        start = int(np.ceil(note.start * sample_rate))
        end = min(int(np.ceil(note.end * sample_rate)), sample_count)
        if start >= end:
            continue
        span = t[start:end]
        freq = base * 2.0 ** (note.pitch / 12.0)
        amplitude = note.velocity * parameters.dynamics * MELODY_GAIN
        signal[start:end] += amplitude * np.sin(2.0 * np.pi * freq * span)

    signal += SECOND_HARMONIC_GAIN * np.sin(2.0 * np.pi * base * 2.0 * t)
    signal += THIRD_HARMONIC_GAIN * np.sin(2.0 * np.pi * base * 3.0 * t)
    signal += BASS_GAIN * np.sin(2.0 * np.pi * base * 0.5 * t)
    signal *= envelope(t, duration)
    return np.clip(signal, -CLIP_LEVEL, CLIP_LEVEL)


def quantize(samples: NDArray[np.float64]) -> NDArray[np.int16]:
    return np.floor(samples * _INT16_SCALE).astype(np.int16)


def normalized_peaks(samples: NDArray[np.float64], target_bars: int = PEAK_BARS) -> tuple[float, ...]:
    maxima = bucket_maxima(samples, target_bars)
    peak = float(maxima.max()) if maxima.size else 0.0
    if peak <= 0.0:
        return tuple(0.0 for _ in range(target_bars))
    return tuple(float(value) for value in np.clip(maxima / peak, 0.0, 1.0))


def synthesize(
    parameters: MusicParameters,
    mood: str | None,
    *,
    duration: float = DEFAULT_DURATION_SECONDS,
    sample_rate: int = SAMPLE_RATE,
    rng: RandomSource,
    target_bars: int = PEAK_BARS,
) -> SynthResult:
    """Render, encode as WAV, and summarize into normalized peaks."""
    samples = render_samples(
        parameters,
        mood,
        duration=duration,
        sample_rate=sample_rate,
        rng=rng,
    )
    pcm = quantize(samples)
    audio = encode_wav(pcm, sample_rate=sample_rate)
    _LOGGER.debug(
        "Synthesized %d samples at %d Hz (tempo=%d, key=%s)",
        pcm.size,
        sample_rate,
        parameters.tempo,
        parameters.key_signature,
    )
    return SynthResult(
        audio=audio,
        peaks=normalized_peaks(samples, target_bars),
        sample_count=int(pcm.size),
        sample_rate=sample_rate,
    )
