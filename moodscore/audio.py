from __future__ import annotations

import io
import struct
from typing import Any

import numpy as np
import soundfile as sf  # type: ignore[import]
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict

from .errors import EncodingError
from .models import AudioFormat

FloatArray = NDArray[np.float32]
Int16Array = NDArray[np.int16]

SAMPLE_RATE = 44_100
WAV_HEADER_BYTES = 44
BITS_PER_SAMPLE = 16
PCM_FORMAT_TAG = 1

# RIFF chunk, fmt chunk (16 bytes, PCM) and data chunk header, little endian.
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


class WavHeader(BaseModel):
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_length: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def sample_count(self) -> int:
        bytes_per_frame = self.block_align or 1
        return self.data_length // bytes_per_frame


def encode_wav(samples: Int16Array | Any, *, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Encode mono 16-bit samples as a canonical 44-byte-header WAV stream."""
    pcm = np.asarray(samples, dtype="<i2").reshape(-1)
    data = pcm.tobytes()
    channels = 1
    block_align = channels * BITS_PER_SAMPLE // 8
    header = _HEADER.pack(
        b"RIFF",
        36 + len(data),
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        len(data),
    )
    return header + data


def parse_wav_header(data: bytes) -> WavHeader:
    """Parse a canonical WAV header, raising ``EncodingError`` on anything else."""
    if len(data) < WAV_HEADER_BYTES:
        raise EncodingError(f"WAV data too short ({len(data)} bytes)")
    (
        riff,
        _riff_size,
        wave,
        fmt,
        fmt_size,
        format_tag,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        data_id,
        data_length,
    ) = _HEADER.unpack_from(data)
    if riff != b"RIFF" or wave != b"WAVE":
        raise EncodingError("missing RIFF/WAVE signature")
    if fmt != b"fmt " or fmt_size != 16:
        raise EncodingError("unsupported fmt chunk")
    if data_id != b"data":
        raise EncodingError("data chunk must follow the fmt chunk")
    if channels <= 0 or sample_rate <= 0:
        raise EncodingError("invalid channel count or sample rate")
    return WavHeader(
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits_per_sample,
        data_length=data_length,
    )


def sniff_format(data: bytes) -> AudioFormat:
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    return "mp3"


def decode_audio(data: bytes) -> tuple[FloatArray, int]:
    """Decode any soundfile-readable payload to a (frames, channels) float32 array."""
    if not data:
        raise EncodingError("no audio data")
    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (RuntimeError, TypeError, ValueError) as exc:
        raise EncodingError(f"could not decode audio: {exc}") from exc
    if samples.size == 0:
        raise EncodingError("decoded audio contains no frames")
    return np.asarray(samples, dtype=np.float32), int(sample_rate)
