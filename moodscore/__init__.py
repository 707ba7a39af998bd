from __future__ import annotations

from .audio import SAMPLE_RATE, decode_audio, encode_wav, parse_wav_header
from .config import MoodScoreSettings
from .errors import (
    ConfigurationError,
    DuplicateRequest,
    EncodingError,
    MoodScoreError,
    NotFoundError,
    PlaybackError,
    ProviderError,
)
from .logging_utils import configure_logging as _configure_logging
from .mapper import derive_parameters
from .models import (
    GeneratedMusic,
    GenerationRequest,
    MoodEntry,
    MusicParameters,
    MusicSummary,
    PlaybackResult,
    PlaybackState,
    PlaybackStatus,
    mood_label,
)
from .orchestrator import GenerationOrchestrator
from .playback import MemoryAudioBackend, PlaybackController, PlaybackEvent, SoundDeviceBackend
from .prompts import PROMPT_PREFIXES, build_prompt
from .service import MoodMusicService, build_service
from .storage import FileBlobStore, JsonMusicStore, MemoryBlobStore, MemoryMusicStore
from .synth import synthesize
from .waveform import compute_peaks, compute_peaks_from_bytes

__all__ = [
    "PROMPT_PREFIXES",
    "SAMPLE_RATE",
    "ConfigurationError",
    "DuplicateRequest",
    "EncodingError",
    "FileBlobStore",
    "GeneratedMusic",
    "GenerationOrchestrator",
    "GenerationRequest",
    "JsonMusicStore",
    "MemoryAudioBackend",
    "MemoryBlobStore",
    "MemoryMusicStore",
    "MoodEntry",
    "MoodMusicService",
    "MoodScoreError",
    "MoodScoreSettings",
    "MusicParameters",
    "MusicSummary",
    "NotFoundError",
    "PlaybackController",
    "PlaybackError",
    "PlaybackEvent",
    "PlaybackResult",
    "PlaybackState",
    "PlaybackStatus",
    "ProviderError",
    "SoundDeviceBackend",
    "build_prompt",
    "build_service",
    "compute_peaks",
    "compute_peaks_from_bytes",
    "decode_audio",
    "derive_parameters",
    "encode_wav",
    "mood_label",
    "parse_wav_header",
    "synthesize",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
