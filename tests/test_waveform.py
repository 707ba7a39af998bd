import numpy as np
import pytest

from moodscore.audio import encode_wav
from moodscore.waveform import (
    compute_peaks,
    compute_peaks_from_bytes,
    peaks_for_payload,
    smooth_peaks,
    to_mono,
)


def test_compute_peaks_returns_target_length_in_range() -> None:
    samples = np.sin(np.linspace(0, 40 * np.pi, 5_000)) * np.linspace(0, 1, 5_000)
    peaks = compute_peaks(samples)
    assert len(peaks) == 96
    assert all(0.0 <= peak <= 1.0 for peak in peaks)
    assert peaks[-1] > peaks[0]


def test_compute_peaks_keeps_bucket_maximum() -> None:
    samples = np.zeros(100)
    samples[0] = -0.5
    samples[99] = 0.25
    peaks = compute_peaks(samples, target_bars=10)
    assert peaks[0] == pytest.approx(0.5)
    assert peaks[-1] == pytest.approx(0.25)
    assert peaks[1:-1] == [0.0] * 8


def test_multichannel_input_is_mixed_down() -> None:
    stereo = np.stack([np.ones(200), -np.ones(200)], axis=1)
    assert np.allclose(to_mono(stereo), 0.0)
    assert compute_peaks(stereo, target_bars=4) == [0.0] * 4


def test_short_input_still_returns_target_bars() -> None:
    assert len(compute_peaks([0.1, 0.2, 0.3], target_bars=96)) == 96
    assert compute_peaks([], target_bars=8) == [0.0] * 8


def test_raw_byte_peaks_normalize_to_loudest_bucket() -> None:
    rng = np.random.default_rng(7)
    noisy = rng.integers(0, 256, size=4_000, dtype=np.uint8).tobytes()
    quiet = bytes(4_000)
    peaks = compute_peaks_from_bytes(quiet + noisy)
    assert len(peaks) == 96
    assert max(peaks) == pytest.approx(1.0)
    assert peaks[0] == pytest.approx(0.0)


def test_raw_byte_peaks_flat_input() -> None:
    assert compute_peaks_from_bytes(b"\x10" * 1_000, target_bars=12) == [0.0] * 12
    assert compute_peaks_from_bytes(b"", target_bars=3) == [0.0] * 3


def test_peaks_for_payload_decodes_wav() -> None:
    pcm = (np.linspace(-1, 1, 9_600) * 16_000).astype(np.int16)
    peaks = peaks_for_payload(encode_wav(pcm))
    assert len(peaks) == 96
    assert peaks[0] == pytest.approx(16_000 / 32_768, rel=1e-3)


def test_peaks_for_payload_falls_back_to_raw_bytes() -> None:
    payload = bytes(range(256)) * 8
    assert peaks_for_payload(payload) == compute_peaks_from_bytes(payload)


def test_smooth_peaks_renormalizes() -> None:
    smoothed = smooth_peaks([0.0, 1.0, 0.0, 0.0], window=1)
    assert len(smoothed) == 4
    assert max(smoothed) == pytest.approx(1.0)
    assert smooth_peaks([]) == []


def test_invalid_bar_count() -> None:
    with pytest.raises(ValueError):
        compute_peaks([0.1], target_bars=0)
