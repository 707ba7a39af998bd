from __future__ import annotations

import httpx

from ..config import is_placeholder
from ..errors import ProviderError
from .base import HttpProvider

MUSICGEN_URL = "https://api-inference.huggingface.co/models/facebook/musicgen-small"
PROMPT_SUFFIX = "peaceful, ambient, instrumental music, 8 seconds"


class HuggingFaceProvider(HttpProvider):
    """Hosted MusicGen inference; returns encoded audio bytes."""

    name = "huggingface"

    def __init__(
        self,
        token: str | None,
        *,
        timeout: float,
        url: str = MUSICGEN_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._token = token
        self._url = url

    @property
    def is_configured(self) -> bool:
        return not is_placeholder(self._token)

    async def generate(self, prompt: str, *, user_id: str) -> bytes:
        _ = user_id
        self._require_configured()
        resp = await self._post(
            self._url,
            json={"inputs": f"{prompt}, {PROMPT_SUFFIX}"},
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
            },
        )
        content_type = resp.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            # The inference API answers 200 with a JSON body while a model is loading.
            raise ProviderError(f"unexpected JSON response: {resp.text[:200]}", provider=self.name)
        return resp.content
