from __future__ import annotations

import httpx

from ..config import MoodScoreSettings
from .base import GenerationProvider, HttpProvider, validate_payload
from .elevenlabs import ElevenLabsProvider
from .huggingface import HuggingFaceProvider
from .proxy import ProxyProvider, decode_audio_data


def build_providers(
    settings: MoodScoreSettings,
    client: httpx.AsyncClient | None = None,
) -> list[GenerationProvider]:
    """Configured providers in priority order: proxy, ElevenLabs, Hugging Face."""
    candidates: list[GenerationProvider] = [
        ProxyProvider(settings.proxy_url, timeout=settings.provider_timeout, client=client),
        ElevenLabsProvider(
            settings.elevenlabs_api_key,
            timeout=settings.provider_timeout,
            duration_seconds=settings.duration_seconds,
            client=client,
        ),
        HuggingFaceProvider(
            settings.huggingface_token,
            timeout=settings.provider_timeout,
            client=client,
        ),
    ]
    return [provider for provider in candidates if provider.is_configured]


__all__ = [
    "ElevenLabsProvider",
    "GenerationProvider",
    "HttpProvider",
    "HuggingFaceProvider",
    "ProxyProvider",
    "build_providers",
    "decode_audio_data",
    "validate_payload",
]
