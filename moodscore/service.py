from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

import httpx
import numpy as np

from .config import MoodScoreSettings
from .errors import NotFoundError
from .mapper import RandomSource, derive_parameters
from .models import (
    GeneratedMusic,
    MoodEntry,
    PlaybackResult,
    PlaybackStatus,
    mood_label,
)
from .orchestrator import GenerationOrchestrator, SleepFn, new_music_id
from .playback import AudioBackend, PlaybackController, build_backend
from .providers import GenerationProvider, build_providers
from .storage import BlobStore, MusicStore, build_stores
from .synth import synthesize

_LOGGER = logging.getLogger("moodscore.service")
REGENERATION_RATING = 5


class MoodMusicService:
    """Public facade: generation, retrieval and playback for mood music."""

    def __init__(
        self,
        *,
        settings: MoodScoreSettings,
        music_store: MusicStore,
        blob_store: BlobStore,
        providers: Sequence[GenerationProvider],
        backend: AudioBackend,
        rng: RandomSource | None = None,
        sleep: SleepFn = asyncio.sleep,
        id_factory: Callable[[], str] = new_music_id,
    ) -> None:
        self._settings = settings
        self._music_store = music_store
        self._blob_store = blob_store
        self._rng: RandomSource = rng if rng is not None else np.random.default_rng()
        self.orchestrator = GenerationOrchestrator(
            providers=providers,
            music_store=music_store,
            blob_store=blob_store,
            settings=settings,
            rng=self._rng,
            sleep=sleep,
            id_factory=id_factory,
        )
        self.playback = PlaybackController(
            backend,
            music_store=music_store,
            blob_store=blob_store,
            regenerate=self.regenerate_audio,
        )

    @property
    def settings(self) -> MoodScoreSettings:
        return self._settings

    async def generate_music(self, user_id: str, entry: MoodEntry) -> GeneratedMusic | None:
        if entry.user_id != user_id:
            _LOGGER.warning("Entry %s belongs to another user; not generating.", entry.entry_id)
            return None
        if await self._music_store.load_mood_entry(user_id, entry.entry_id) is None:
            await self._music_store.save_mood_entry(entry)
        return await self.orchestrator.generate(user_id, entry)

    async def play_music(self, music_id: str, user_id: str) -> PlaybackResult:
        return await self.playback.play(music_id, user_id)

    async def pause_music(self) -> PlaybackResult:
        return await self.playback.pause()

    async def resume_music(self) -> PlaybackResult:
        return await self.playback.resume()

    async def stop_music(self) -> PlaybackResult:
        return await self.playback.stop()

    async def seek_to_position(self, position_seconds: float) -> PlaybackResult:
        return await self.playback.seek(position_seconds)

    async def set_volume(self, volume: float) -> float:
        return await self.playback.set_volume(volume)

    async def set_repeat_mode(self, enabled: bool) -> None:
        await self.playback.set_repeat_mode(enabled)

    def get_playback_status(self) -> PlaybackStatus:
        return self.playback.status()

    def get_playback_position(self) -> float | None:
        return self.playback.position()

    async def retrieve_generated_music(self, user_id: str, music_id: str) -> GeneratedMusic | None:
        return await self._music_store.load_music(user_id, music_id)

    async def list_generated_music(self, user_id: str) -> list[GeneratedMusic]:
        return await self._music_store.list_music(user_id)

    async def load_audio(self, music: GeneratedMusic) -> bytes:
        return await self._blob_store.load(music.audio_ref)

    async def delete_music(self, user_id: str, music_id: str) -> bool:
        if self.playback.current_music_id == music_id:
            await self.playback.stop()
        music = await self._music_store.load_music(user_id, music_id)
        if music is None:
            return False
        await self._blob_store.delete(music.audio_ref)
        deleted = await self._music_store.delete_music(user_id, music_id)
        entry = await self._music_store.load_mood_entry(user_id, music.entry_id)
        if entry is not None and entry.music_id == music_id:
            try:
                await self._music_store.update_mood_entry_link(
                    user_id, music.entry_id, music_generated=False, music_id=None
                )
            except NotFoundError:
                _LOGGER.debug("Entry %s vanished while unlinking", music.entry_id)
        _LOGGER.info("Deleted music %s", music_id)
        return deleted

    def is_generating(self) -> bool:
        return self.orchestrator.is_generating

    def get_queue_length(self) -> int:
        return self.orchestrator.queue_length

    async def regenerate_audio(self, user_id: str, music_id: str) -> GeneratedMusic | None:
        """Rebuild a procedural clip for a record whose audio is missing or unreadable."""
        music = await self._music_store.load_music(user_id, music_id)
        if music is None:
            return None
        neutral = MoodEntry(
            entry_id=music.entry_id,
            user_id=user_id,
            mood_rating=REGENERATION_RATING,
        )
        parameters = derive_parameters(neutral, self._rng)
        result = await asyncio.to_thread(
            synthesize,
            parameters,
            mood_label(REGENERATION_RATING),
            duration=self._settings.duration_seconds,
            rng=self._rng,
        )
        reference = await self._blob_store.save(f"{music_id}.wav", result.audio)
        if reference != music.audio_ref:
            await self._blob_store.delete(music.audio_ref)
        updated = GeneratedMusic.model_validate(
            {
                **music.model_dump(),
                "audio_ref": reference,
                "audio_format": "wav",
                "generation_method": "procedural",
                "waveform_peaks": result.peaks,
            }
        )
        await self._music_store.save_music(user_id, updated)
        _LOGGER.info("Regenerated procedural audio for %s", music_id)
        return updated

    async def join(self) -> None:
        await self.orchestrator.join()
        await self.playback.join()


def build_service(
    settings: MoodScoreSettings | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    rng: RandomSource | None = None,
) -> MoodMusicService:
    """Wire concrete stores, providers and audio backend from settings."""
    resolved = settings or MoodScoreSettings.from_env()
    music_store, blob_store = build_stores(resolved)
    return MoodMusicService(
        settings=resolved,
        music_store=music_store,
        blob_store=blob_store,
        providers=build_providers(resolved, client),
        backend=build_backend(resolved.audio_backend),
        rng=rng,
    )
