from __future__ import annotations

import base64
import binascii
import logging

import httpx

from ..config import is_placeholder
from ..errors import ProviderError
from .base import HttpProvider

_LOGGER = logging.getLogger("moodscore.providers.proxy")
GENERATE_PATH = "/api/music/generate"


def decode_audio_data(text: str) -> bytes:
    """Decode standard or URL-safe base64, with or without padding."""
    cleaned = "".join(text.split())
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.urlsafe_b64decode(cleaned)
    except (binascii.Error, ValueError) as exc:
        raise ProviderError(f"audioData is not valid base64: {exc}", provider="proxy") from exc


class ProxyProvider(HttpProvider):
    """Primary provider: the app backend's ``/api/music/generate`` endpoint."""

    name = "proxy"

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._base_url = (base_url or "").rstrip("/")

    @property
    def is_configured(self) -> bool:
        return not is_placeholder(self._base_url)

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}{GENERATE_PATH}"

    async def generate(self, prompt: str, *, user_id: str) -> bytes:
        self._require_configured()
        resp = await self._post(
            self.endpoint,
            json={"prompt": prompt, "userId": user_id},
            headers={"Content-Type": "application/json"},
        )
        try:
            body = resp.json()
        except ValueError as exc:
            raise ProviderError("response is not JSON", provider=self.name) from exc

        match body:
            case {"success": True, "format": "tone_description"}:
                raise ProviderError("proxy returned a tone description instead of audio", provider=self.name)
            case {"success": True, "audioData": str(audio_data)} if audio_data:
                method = body.get("method", "unknown")
                _LOGGER.info("Proxy generated audio via %s", method)
                return decode_audio_data(audio_data)
            case {"success": False, "error": str(message)}:
                raise ProviderError(message, provider=self.name)
            case _:
                raise ProviderError("response did not include audio data", provider=self.name)
