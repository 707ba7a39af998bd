"""Single-slot generation pipeline with provider fallback.

Requests for one mood entry are deduplicated, at most one generation runs at a
time, and everything else waits in a FIFO queue. Providers are tried in
priority order; when every pass fails the clip is synthesized procedurally.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Sequence

import httpx
from pydantic import BaseModel, ConfigDict

from .audio import sniff_format
from .config import MoodScoreSettings
from .errors import ConfigurationError, DuplicateRequest, NotFoundError, ProviderError
from .logging_utils import log_exception
from .mapper import RandomSource, derive_parameters
from .models import (
    AudioFormat,
    GeneratedMusic,
    GenerationMethod,
    GenerationRequest,
    MoodEntry,
    MusicSummary,
    mood_label,
)
from .prompts import PromptChoice, build_prompt
from .providers import GenerationProvider, validate_payload
from .storage import BlobStore, MusicStore
from .synth import synthesize
from .waveform import peaks_for_payload

_LOGGER = logging.getLogger("moodscore.orchestrator")

SleepFn = Callable[[float], Awaitable[None]]


class GenerationOutcome(BaseModel):
    audio: bytes
    method: GenerationMethod
    audio_format: AudioFormat
    peaks: tuple[float, ...]

    model_config = ConfigDict(frozen=True, extra="forbid")


class GenerationEvent(BaseModel):
    """Emitted when a generation run finishes; ``music`` is None on failure."""

    user_id: str
    entry_id: str
    music: GeneratedMusic | None

    model_config = ConfigDict(frozen=True, extra="forbid")


GenerationListener = Callable[[GenerationEvent], None]


def new_music_id() -> str:
    return uuid.uuid4().hex


class GenerationOrchestrator:
    def __init__(
        self,
        *,
        providers: Sequence[GenerationProvider],
        music_store: MusicStore,
        blob_store: BlobStore,
        settings: MoodScoreSettings,
        rng: RandomSource,
        sleep: SleepFn = asyncio.sleep,
        id_factory: Callable[[], str] = new_music_id,
    ) -> None:
        self._providers = list(providers)
        self._music_store = music_store
        self._blob_store = blob_store
        self._settings = settings
        self._rng = rng
        self._sleep = sleep
        self._id_factory = id_factory

        self._lock = asyncio.Lock()
        self._in_flight = False
        self._queue: deque[tuple[str, MoodEntry]] = deque()
        self._processing: set[str] = set()
        self._pending: set[asyncio.Task[GeneratedMusic | None]] = set()
        self._listeners: list[GenerationListener] = []

    @property
    def is_generating(self) -> bool:
        return self._in_flight

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def subscribe(self, listener: GenerationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def join(self) -> None:
        """Wait until queued work started by earlier runs has drained."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def generate(self, user_id: str, entry: MoodEntry) -> GeneratedMusic | None:
        async with self._lock:
            try:
                self._check_duplicate(entry.entry_id)
            except DuplicateRequest as exc:
                _LOGGER.info("Skipping generation: %s", exc)
                return None
            if self._in_flight:
                self._queue.append((user_id, entry))
                _LOGGER.info(
                    "Generation busy; queued entry %s (queue length %d)",
                    entry.entry_id,
                    len(self._queue),
                )
                return None
            self._in_flight = True
            self._processing.add(entry.entry_id)
        return await self._run(user_id, entry)

    def _check_duplicate(self, entry_id: str) -> None:
        if entry_id in self._processing:
            raise DuplicateRequest(f"entry {entry_id} is already being generated")
        if any(queued.entry_id == entry_id for _, queued in self._queue):
            raise DuplicateRequest(f"entry {entry_id} is already queued")

    async def _run(self, user_id: str, entry: MoodEntry) -> GeneratedMusic | None:
        music: GeneratedMusic | None = None
        try:
            music = await self._generate_and_store(user_id, entry)
            return music
        except Exception as exc:
            _LOGGER.warning("Generation failed for entry %s: %s", entry.entry_id, exc, exc_info=True)
            log_exception(f"generation for entry {entry.entry_id}", exc)
            return None
        finally:
            await self._release(entry.entry_id)
            self._emit(GenerationEvent(user_id=user_id, entry_id=entry.entry_id, music=music))

    async def _release(self, entry_id: str) -> None:
        async with self._lock:
            self._processing.discard(entry_id)
            if not self._queue:
                self._in_flight = False
                return
            next_user, next_entry = self._queue.popleft()
            self._processing.add(next_entry.entry_id)
            # The slot passes straight to the next request; in_flight stays set.
            task = asyncio.create_task(self._run(next_user, next_entry))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def _emit(self, event: GenerationEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                _LOGGER.warning("Generation listener failed: %s", exc, exc_info=True)

    async def _generate_and_store(self, user_id: str, entry: MoodEntry) -> GeneratedMusic | None:
        parameters = derive_parameters(entry, self._rng)
        prompt = build_prompt(entry, self._rng)
        request = GenerationRequest.from_entry(user_id, entry, parameters)
        outcome = await self._produce(request, prompt)

        music_id = self._id_factory()
        reference = await self._blob_store.save(f"{music_id}.{outcome.audio_format}", outcome.audio)
        music = GeneratedMusic(
            music_id=music_id,
            user_id=user_id,
            entry_id=entry.entry_id,
            audio_ref=reference,
            duration=self._settings.duration_seconds,
            music_parameters=MusicSummary.from_parameters(parameters, entry.mood_rating),
            generation_method=outcome.method,
            audio_format=outcome.audio_format,
            waveform_peaks=outcome.peaks,
            prompt_prefix_used=prompt.prefix,
            prompt_label_used=prompt.label,
        )
        await self._music_store.save_music(user_id, music)
        try:
            await self._music_store.update_mood_entry_link(
                user_id,
                entry.entry_id,
                music_generated=True,
                music_id=music_id,
            )
        except NotFoundError as exc:
            _LOGGER.warning("Discarding music %s: %s", music_id, exc)
            await self._music_store.delete_music(user_id, music_id)
            await self._blob_store.delete(reference)
            return None
        _LOGGER.info(
            "Generated music %s for entry %s via %s",
            music_id,
            entry.entry_id,
            outcome.method,
        )
        return music

    async def _produce(self, request: GenerationRequest, prompt: PromptChoice) -> GenerationOutcome:
        if not any(provider.is_configured for provider in self._providers):
            _LOGGER.info("No generation providers configured; using procedural synthesis.")
            return await self._fallback(request)

        max_retries = self._settings.max_retries
        for attempt in range(1, max_retries + 1):
            outcome = await self._provider_pass(prompt.text, request.user_id)
            if outcome is not None:
                return outcome
            if attempt < max_retries:
                delay = self._settings.retry_backoff * attempt
                _LOGGER.info(
                    "All providers failed (pass %d/%d); retrying in %.1fs",
                    attempt,
                    max_retries,
                    delay,
                )
                await self._sleep(delay)
        _LOGGER.warning(
            "Providers exhausted after %d passes; falling back to procedural synthesis.",
            max_retries,
        )
        return await self._fallback(request)

    async def _provider_pass(self, prompt: str, user_id: str) -> GenerationOutcome | None:
        for provider in self._providers:
            if not provider.is_configured:
                continue
            try:
                data = await asyncio.wait_for(
                    provider.generate(prompt, user_id=user_id),
                    timeout=self._settings.provider_timeout,
                )
                validate_payload(data, self._settings.min_payload_bytes, provider=provider.name)
            except asyncio.TimeoutError:
                _LOGGER.warning(
                    "Provider %s timed out after %.1fs",
                    provider.name,
                    self._settings.provider_timeout,
                )
                continue
            except (ConfigurationError, ProviderError, httpx.HTTPError) as exc:
                _LOGGER.warning("Provider %s failed: %s", provider.name, exc)
                continue
            peaks = await asyncio.to_thread(peaks_for_payload, data)
            return GenerationOutcome(
                audio=data,
                method=provider.name,  # type: ignore[arg-type]
                audio_format=sniff_format(data),
                peaks=tuple(peaks),
            )
        return None

    async def _fallback(self, request: GenerationRequest) -> GenerationOutcome:
        """Procedural synthesis, retried once before the run is abandoned."""
        try:
            return await asyncio.to_thread(self._synthesize, request)
        except Exception as exc:
            _LOGGER.warning("Procedural synthesis failed (%s); retrying once.", exc)
        return await asyncio.to_thread(self._synthesize, request)

    def _synthesize(self, request: GenerationRequest) -> GenerationOutcome:
        result = synthesize(
            request.parameters,
            mood_label(request.mood_rating),
            duration=self._settings.duration_seconds,
            rng=self._rng,
        )
        return GenerationOutcome(
            audio=result.audio,
            method="procedural",
            audio_format="wav",
            peaks=result.peaks,
        )
