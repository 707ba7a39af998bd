from __future__ import annotations


class MoodScoreError(Exception):
    """Base error for the MoodScore library."""


class ConfigurationError(MoodScoreError):
    """Raised when a provider or setting is missing or invalid."""


class ProviderError(MoodScoreError):
    """Raised when a generation provider fails to produce usable audio."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status = status

    def __str__(self) -> str:
        prefix = f"{self.provider}: " if self.provider else ""
        suffix = f" (status {self.status})" if self.status is not None else ""
        return f"{prefix}{self.message}{suffix}"


class EncodingError(MoodScoreError):
    """Raised when audio bytes cannot be parsed or decoded."""


class NotFoundError(MoodScoreError):
    """Raised when a record or audio blob does not exist."""


class DuplicateRequest(MoodScoreError):
    """Raised when a mood entry is already being generated or queued."""


class PlaybackError(MoodScoreError):
    """Raised when audio playback is unavailable or fails to start."""
