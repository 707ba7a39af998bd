from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from ..errors import ConfigurationError, ProviderError

_LOGGER = logging.getLogger("moodscore.providers")


class GenerationProvider(Protocol):
    """Network boundary: send a prompt, receive audio bytes or raise."""

    name: str

    @property
    def is_configured(self) -> bool: ...

    async def generate(self, prompt: str, *, user_id: str) -> bytes: ...


def validate_payload(data: bytes, min_bytes: int, *, provider: str | None = None) -> bytes:
    """Reject payloads too small to be real audio."""
    if len(data) < min_bytes:
        raise ProviderError(
            f"payload too small ({len(data)} bytes, need at least {min_bytes})",
            provider=provider,
        )
    return data


class HttpProvider:
    """Shared POST handling. Pass ``client`` to reuse a pooled or mocked client."""

    name = "http"

    def __init__(
        self,
        *,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return False

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(f"{self.name} provider is not configured")

    async def _post(
        self,
        url: str,
        *,
        json: dict[str, Any],
        headers: dict[str, str],
    ) -> httpx.Response:
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=json, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"request timed out after {self._timeout}s", provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"transport error: {exc}", provider=self.name) from exc

        if not resp.is_success:
            _LOGGER.debug("%s responded %d: %s", self.name, resp.status_code, resp.text[:200])
            raise ProviderError(
                _error_message(resp),
                provider=self.name,
                status=resp.status_code,
            )
        return resp


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase or "request failed"
    match body:
        case {"error": str(message)}:
            return message
        case {"error": {"message": str(message)}}:
            return message
        case {"detail": str(message)}:
            return message
        case {"detail": {"message": str(message)}}:
            return message
        case _:
            return resp.reason_phrase or "request failed"
