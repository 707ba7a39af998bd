from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .logging_utils import default_data_dir
from .models import DEFAULT_DURATION_SECONDS

_LOGGER = logging.getLogger("moodscore.config")

StorageKind = Literal["file", "memory"]
AudioBackendKind = Literal["sounddevice", "memory"]

DEFAULT_PROVIDER_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 1.0
DEFAULT_MIN_PAYLOAD_BYTES = 1024
_PLACEHOLDER_PREFIX = "YOUR_"


def _env_str(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    if not value or is_placeholder(value):
        return None
    return value


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _LOGGER.warning("Ignoring non-integer %s=%r", name, value)
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _LOGGER.warning("Ignoring non-numeric %s=%r", name, value)
        return default


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    value = (os.environ.get(name) or "").strip().lower()
    if not value:
        return default
    if value not in choices:
        _LOGGER.warning("Ignoring unknown %s=%r (expected one of %s)", name, value, choices)
        return default
    return value


def is_placeholder(value: str | None) -> bool:
    """True for unset credentials and template values like ``YOUR_API_KEY_HERE``."""
    if value is None or not value.strip():
        return True
    return value.strip().upper().startswith(_PLACEHOLDER_PREFIX)


class MoodScoreSettings(BaseModel):
    """Runtime settings for generation, storage and playback."""

    proxy_url: str | None = None
    elevenlabs_api_key: str | None = None
    huggingface_token: str | None = None
    provider_timeout: float = Field(default=DEFAULT_PROVIDER_TIMEOUT, gt=0.0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    retry_backoff: float = Field(default=DEFAULT_RETRY_BACKOFF, ge=0.0)
    min_payload_bytes: int = Field(default=DEFAULT_MIN_PAYLOAD_BYTES, ge=0)
    duration_seconds: int = Field(default=DEFAULT_DURATION_SECONDS, gt=0)
    data_dir: Path = Field(default_factory=default_data_dir)
    storage: StorageKind = "file"
    audio_backend: AudioBackendKind = "sounddevice"

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls) -> "MoodScoreSettings":
        timeout = _env_float("MOODSCORE_PROVIDER_TIMEOUT", DEFAULT_PROVIDER_TIMEOUT)
        return cls(
            proxy_url=_env_str("MOODSCORE_PROXY_URL"),
            elevenlabs_api_key=_env_str("ELEVENLABS_API_KEY"),
            huggingface_token=_env_str("HUGGINGFACE_API_TOKEN"),
            provider_timeout=timeout if timeout > 0 else DEFAULT_PROVIDER_TIMEOUT,
            max_retries=max(1, _env_int("MOODSCORE_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
            retry_backoff=max(0.0, _env_float("MOODSCORE_RETRY_BACKOFF", DEFAULT_RETRY_BACKOFF)),
            min_payload_bytes=max(
                0, _env_int("MOODSCORE_MIN_PAYLOAD_BYTES", DEFAULT_MIN_PAYLOAD_BYTES)
            ),
            data_dir=default_data_dir(),
            storage=_env_choice("MOODSCORE_STORAGE", ("file", "memory"), "file"),  # type: ignore[arg-type]
            audio_backend=_env_choice(  # type: ignore[arg-type]
                "MOODSCORE_AUDIO_BACKEND", ("sounddevice", "memory"), "sounddevice"
            ),
        )

    def configured_providers(self) -> list[str]:
        names: list[str] = []
        if not is_placeholder(self.proxy_url):
            names.append("proxy")
        if not is_placeholder(self.elevenlabs_api_key):
            names.append("elevenlabs")
        if not is_placeholder(self.huggingface_token):
            names.append("huggingface")
        return names
