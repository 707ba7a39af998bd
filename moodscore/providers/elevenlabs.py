from __future__ import annotations

import httpx

from ..config import is_placeholder
from ..models import DEFAULT_DURATION_SECONDS
from .base import HttpProvider

SOUND_GENERATION_URL = "https://api.elevenlabs.io/v1/sound-generation"
PROMPT_INFLUENCE = 0.3


class ElevenLabsProvider(HttpProvider):
    name = "elevenlabs"

    def __init__(
        self,
        api_key: str | None,
        *,
        timeout: float,
        duration_seconds: int = DEFAULT_DURATION_SECONDS,
        url: str = SOUND_GENERATION_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._api_key = api_key
        self._duration_seconds = duration_seconds
        self._url = url

    @property
    def is_configured(self) -> bool:
        return not is_placeholder(self._api_key)

    async def generate(self, prompt: str, *, user_id: str) -> bytes:
        _ = user_id
        self._require_configured()
        assert self._api_key is not None
        resp = await self._post(
            self._url,
            json={
                "text": prompt,
                "duration_seconds": self._duration_seconds,
                "prompt_influence": PROMPT_INFLUENCE,
            },
            headers={
                "xi-api-key": self._api_key,
                "Accept": "audio/mpeg",
                "Content-Type": "application/json",
            },
        )
        return resp.content
