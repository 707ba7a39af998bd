"""Fixed-length peak summaries for waveform visualization."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
from numpy.typing import NDArray

from .audio import decode_audio
from .errors import EncodingError
from .models import PEAK_BARS

_LOGGER = logging.getLogger("moodscore.waveform")
_EPSILON = 1e-4


def _bucket_bounds(length: int, bars: int) -> list[tuple[int, int]]:
    edges = (np.arange(bars + 1, dtype=np.int64) * length) // bars
    bounds: list[tuple[int, int]] = []
    for start, end in zip(edges[:-1], edges[1:]):
        start_i = min(int(start), length - 1)
        bounds.append((start_i, max(int(end), start_i + 1)))
    return bounds


def _check_bars(target_bars: int) -> None:
    if target_bars <= 0:
        raise ValueError("target_bars must be positive")


def to_mono(samples: NDArray[Any] | Sequence[float]) -> NDArray[np.float32]:
    """Average a (frames, channels) array down to one channel."""
    array = np.asarray(samples, dtype=np.float32)
    if array.ndim == 2:
        return array.mean(axis=1).astype(np.float32)
    return array.reshape(-1)


def bucket_maxima(samples: NDArray[Any] | Sequence[float], target_bars: int = PEAK_BARS) -> NDArray[np.float64]:
    """Maximum absolute amplitude per equal-width bucket, not normalized."""
    _check_bars(target_bars)
    mono = np.abs(to_mono(samples)).astype(np.float64)
    if mono.size == 0:
        return np.zeros(target_bars, dtype=np.float64)
    return np.array(
        [float(mono[start:end].max()) for start, end in _bucket_bounds(mono.size, target_bars)],
        dtype=np.float64,
    )


def compute_peaks(samples: NDArray[Any] | Sequence[float], target_bars: int = PEAK_BARS) -> list[float]:
    """Peaks from decoded PCM in [-1, 1]; values outside that range are clipped."""
    maxima = bucket_maxima(samples, target_bars)
    return [float(value) for value in np.clip(maxima, 0.0, 1.0)]


def compute_peaks_from_bytes(data: bytes, target_bars: int = PEAK_BARS) -> list[float]:
    """Energy proxy for undecodable payloads: mean absolute byte delta per bucket."""
    _check_bars(target_bars)
    raw = np.frombuffer(data, dtype=np.uint8).astype(np.int16)
    if raw.size < 2:
        return [0.0] * target_bars
    deltas = np.abs(np.diff(raw)).astype(np.float64)
    energies = np.array(
        [float(deltas[start:end].mean()) for start, end in _bucket_bounds(deltas.size, target_bars)],
        dtype=np.float64,
    )
    peak = float(energies.max())
    if peak <= 0.0:
        return [0.0] * target_bars
    return [float(value) for value in np.clip(energies / peak, 0.0, 1.0)]


def peaks_for_payload(data: bytes, target_bars: int = PEAK_BARS) -> list[float]:
    """Decode when possible, otherwise fall back to the raw-bytes estimate."""
    try:
        samples, _sample_rate = decode_audio(data)
    except EncodingError as exc:
        _LOGGER.debug("Using raw-byte peaks (%s)", exc)
        return compute_peaks_from_bytes(data, target_bars)
    return compute_peaks(samples, target_bars)


def smooth_peaks(values: Sequence[float], window: int = 3) -> list[float]:
    """Moving-average smoothing followed by renormalization for display."""
    if not values:
        return []
    width = max(1, int(window))
    array = np.asarray(values, dtype=np.float64)
    smoothed = np.empty_like(array)
    for index in range(array.size):
        low = max(0, index - width)
        high = min(array.size, index + width + 1)
        smoothed[index] = array[low:high].mean()
    peak = max(_EPSILON, float(smoothed.max()))
    return [float(value) for value in np.clip(smoothed / peak, 0.0, 1.0)]
