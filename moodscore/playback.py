from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable
from typing import Any, Callable, Literal, Protocol

import numpy as np
from pydantic import BaseModel, ConfigDict

from .audio import FloatArray, decode_audio, parse_wav_header, sniff_format
from .errors import EncodingError, NotFoundError, PlaybackError
from .models import GeneratedMusic, PlaybackPhase, PlaybackResult, PlaybackStatus
from .storage import BlobStore, MusicStore

_LOGGER = logging.getLogger("moodscore.playback")

PlaybackEventKind = Literal[
    "loaded",
    "playing",
    "paused",
    "resumed",
    "stopped",
    "finished",
    "looped",
    "error",
]
FinishCallback = Callable[[], None]
RegenerateFn = Callable[[str, str], Awaitable[GeneratedMusic | None]]


class AudioHandle(Protocol):
    @property
    def duration(self) -> float: ...

    @property
    def is_playing(self) -> bool: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...

    def unload(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def set_volume(self, volume: float) -> None: ...

    def set_looping(self, looping: bool) -> None: ...

    def position(self) -> float: ...


class AudioBackend(Protocol):
    name: str

    def load(self, data: bytes, *, on_finish: FinishCallback) -> AudioHandle: ...


class PlaybackEvent(BaseModel):
    kind: PlaybackEventKind
    music_id: str | None = None
    detail: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


PlaybackListener = Callable[[PlaybackEvent], None]


class _MemoryHandle:
    def __init__(
        self,
        backend: "MemoryAudioBackend",
        *,
        duration: float,
        on_finish: FinishCallback,
    ) -> None:
        self._backend = backend
        self._duration = duration
        self._on_finish = on_finish
        self._offset = 0.0
        self._started_at: float | None = None
        self.volume = 1.0
        self.looping = False
        self.unloaded = False

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None

    def _ensure_loaded(self) -> None:
        if self.unloaded:
            raise PlaybackError("handle has been unloaded")

    def play(self) -> None:
        self._ensure_loaded()
        if self._started_at is None:
            self._started_at = self._backend.clock()

    def pause(self) -> None:
        self._ensure_loaded()
        self._offset = self.position()
        self._started_at = None

    def stop(self) -> None:
        self._offset = 0.0
        self._started_at = None

    def unload(self) -> None:
        if self.unloaded:
            return
        self.stop()
        self.unloaded = True
        self._backend.release(self)

    def seek(self, seconds: float) -> None:
        self._ensure_loaded()
        self._offset = seconds
        if self._started_at is not None:
            self._started_at = self._backend.clock()

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def set_looping(self, looping: bool) -> None:
        self.looping = looping

    def position(self) -> float:
        elapsed = 0.0
        if self._started_at is not None:
            elapsed = self._backend.clock() - self._started_at
        position = self._offset + elapsed
        if self._duration > 0:
            return min(position, self._duration)
        return position

    def finish(self) -> None:
        self._offset = self._duration
        self._started_at = None
        self._on_finish()


class MemoryAudioBackend:
    """Device-free backend. ``finish()`` simulates the track reaching its end."""

    name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self.loaded: list[_MemoryHandle] = []
        self.max_concurrent = 0
        self.load_count = 0

    def load(self, data: bytes, *, on_finish: FinishCallback) -> _MemoryHandle:
        if not data:
            raise EncodingError("no audio data to load")
        duration = 0.0
        if sniff_format(data) == "wav":
            header = parse_wav_header(data)
            if header.byte_rate > 0:
                duration = header.data_length / header.byte_rate
        handle = _MemoryHandle(self, duration=duration, on_finish=on_finish)
        self.loaded.append(handle)
        self.load_count += 1
        self.max_concurrent = max(self.max_concurrent, len(self.loaded))
        return handle

    def release(self, handle: _MemoryHandle) -> None:
        if handle in self.loaded:
            self.loaded.remove(handle)

    @property
    def current(self) -> _MemoryHandle | None:
        return self.loaded[-1] if self.loaded else None

    def finish(self) -> None:
        handle = self.current
        if handle is None:
            raise PlaybackError("no audio loaded")
        handle.finish()


class _SoundDeviceHandle:
    def __init__(
        self,
        sd: Any,
        samples: FloatArray,
        sample_rate: int,
        on_finish: FinishCallback,
    ) -> None:
        self._sd = sd
        self._samples = samples
        self._sample_rate = sample_rate
        self._on_finish = on_finish
        self._lock = threading.Lock()
        self._frame = 0
        self._volume = 1.0
        self._looping = False
        self._reached_end = False
        self._stream: Any = None

    @property
    def duration(self) -> float:
        return len(self._samples) / self._sample_rate

    @property
    def is_playing(self) -> bool:
        return self._stream is not None and bool(self._stream.active)

    def _callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        _ = time_info
        if status:
            _LOGGER.debug("sounddevice status: %s", status)
        with self._lock:
            total = len(self._samples)
            written = 0
            while written < frames:
                remaining = total - self._frame
                if remaining <= 0:
                    if self._looping and total > 0:
                        self._frame = 0
                        continue
                    outdata[written:] = 0
                    self._reached_end = True
                    raise self._sd.CallbackStop
                take = min(frames - written, remaining)
                chunk = self._samples[self._frame : self._frame + take]
                outdata[written : written + take] = chunk * self._volume
                self._frame += take
                written += take

    def _finished(self) -> None:
        if self._reached_end:
            self._on_finish()

    def play(self) -> None:
        if self._stream is None:
            self._stream = self._sd.OutputStream(
                samplerate=self._sample_rate,
                channels=self._samples.shape[1],
                dtype="float32",
                callback=self._callback,
                finished_callback=self._finished,
            )
        if self._stream.active:
            return
        if not self._stream.stopped:
            self._stream.stop()
        with self._lock:
            self._reached_end = False
            if self._frame >= len(self._samples):
                self._frame = 0
        self._stream.start()

    def pause(self) -> None:
        if self._stream is not None and self._stream.active:
            self._stream.stop()

    def stop(self) -> None:
        self.pause()
        with self._lock:
            self._frame = 0

    def unload(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream.close(ignore_errors=True)

    def seek(self, seconds: float) -> None:
        with self._lock:
            self._frame = min(max(int(seconds * self._sample_rate), 0), len(self._samples))

    def set_volume(self, volume: float) -> None:
        with self._lock:
            self._volume = volume

    def set_looping(self, looping: bool) -> None:
        with self._lock:
            self._looping = looping

    def position(self) -> float:
        with self._lock:
            return self._frame / self._sample_rate


class SoundDeviceBackend:
    name = "sounddevice"

    def __init__(self) -> None:
        self._sd: Any = None

    def load(self, data: bytes, *, on_finish: FinishCallback) -> _SoundDeviceHandle:
        if self._sd is None:
            self._sd = _load_sounddevice()
        samples, sample_rate = decode_audio(data)
        if samples.size == 0:
            raise EncodingError("decoded audio is empty")
        return _SoundDeviceHandle(
            self._sd,
            np.ascontiguousarray(samples, dtype=np.float32),
            sample_rate,
            on_finish,
        )


def _load_sounddevice() -> Any:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        raise PlaybackError(
            "Playback requires sounddevice. Install moodscore[playback] "
            "or set MOODSCORE_AUDIO_BACKEND=memory."
        ) from exc
    return sd_module


def build_backend(kind: str) -> AudioBackend:
    match kind:
        case "memory":
            return MemoryAudioBackend()
        case "sounddevice":
            return SoundDeviceBackend()
        case _:
            raise PlaybackError(f"unknown audio backend {kind!r}")


class PlaybackController:
    """Owns the single active audio handle and the shared playback state."""

    def __init__(
        self,
        backend: AudioBackend,
        *,
        music_store: MusicStore,
        blob_store: BlobStore,
        regenerate: RegenerateFn | None = None,
    ) -> None:
        self._backend = backend
        self._music_store = music_store
        self._blob_store = blob_store
        self._regenerate = regenerate
        self._lock = asyncio.Lock()
        self._handle: AudioHandle | None = None
        self._token = 0
        self._phase: PlaybackPhase = "idle"
        self._current_music_id: str | None = None
        self._repeat = False
        self._volume = 1.0
        self._listeners: list[PlaybackListener] = []
        self._pending: set[asyncio.Task[None]] = set()
        self.last_error: str | None = None

    @property
    def phase(self) -> PlaybackPhase:
        return self._phase

    @property
    def is_playing(self) -> bool:
        return self._phase == "playing"

    @property
    def current_music_id(self) -> str | None:
        return self._current_music_id

    def subscribe(self, listener: PlaybackListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, kind: PlaybackEventKind, *, detail: str | None = None) -> None:
        event = PlaybackEvent(kind=kind, music_id=self._current_music_id, detail=detail)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                _LOGGER.warning("Playback listener failed: %s", exc, exc_info=True)

    def _fail(self, reason: str, music_id: str | None = None) -> PlaybackResult:
        self.last_error = reason
        self._emit("error", detail=reason)
        if music_id is not None:
            _LOGGER.warning("Playback of %s failed: %s", music_id, reason)
        return PlaybackResult.failure(reason)

    def _release_handle(self) -> bool:
        handle, self._handle = self._handle, None
        self._token += 1
        self._phase = "idle"
        if handle is None:
            return False
        try:
            handle.stop()
        except Exception as exc:
            _LOGGER.debug("Ignoring error while stopping handle: %s", exc)
        try:
            handle.unload()
        except Exception as exc:
            _LOGGER.debug("Ignoring error while unloading handle: %s", exc)
        return True

    async def _load_handle(self, user_id: str, music: GeneratedMusic, token: int) -> AudioHandle:
        loop = asyncio.get_running_loop()

        def _on_finish() -> None:
            loop.call_soon_threadsafe(self._schedule_finish, token)

        try:
            data = await self._blob_store.load(music.audio_ref)
            return await asyncio.to_thread(self._backend.load, data, on_finish=_on_finish)
        except (NotFoundError, EncodingError) as exc:
            if self._regenerate is None:
                raise
            _LOGGER.warning("Audio for %s unusable (%s); regenerating.", music.music_id, exc)
            regenerated = await self._regenerate(user_id, music.music_id)
            if regenerated is None:
                raise
            data = await self._blob_store.load(regenerated.audio_ref)
            return await asyncio.to_thread(self._backend.load, data, on_finish=_on_finish)

    async def play(self, music_id: str, user_id: str) -> PlaybackResult:
        async with self._lock:
            if self._release_handle():
                self._emit("stopped")
            self._current_music_id = None
            music = await self._music_store.load_music(user_id, music_id)
            if music is None:
                return self._fail(f"Music {music_id} not found", music_id)
            token = self._token
            try:
                handle = await self._load_handle(user_id, music, token)
            except (NotFoundError, EncodingError, PlaybackError) as exc:
                return self._fail(f"Could not load audio: {exc}", music_id)

            self._handle = handle
            self._current_music_id = music_id
            self._emit("loaded")
            try:
                handle.set_volume(self._volume)
                handle.set_looping(self._repeat)
                handle.play()
            except (PlaybackError, RuntimeError) as exc:
                self._release_handle()
                self._current_music_id = None
                return self._fail(f"Could not start playback: {exc}", music_id)
            self._phase = "playing"
            self.last_error = None
            self._emit("playing")
            _LOGGER.info("Playing %s", music_id)
            return PlaybackResult.success()

    async def pause(self) -> PlaybackResult:
        async with self._lock:
            if self._handle is None or self._phase != "playing":
                return PlaybackResult.failure("Nothing is playing")
            self._handle.pause()
            self._phase = "paused"
            self._emit("paused")
            return PlaybackResult.success()

    async def resume(self) -> PlaybackResult:
        async with self._lock:
            if self._handle is None:
                return PlaybackResult.failure("Nothing is loaded")
            if self._phase == "playing":
                return PlaybackResult.failure("Already playing")
            self._handle.play()
            self._phase = "playing"
            self._emit("resumed")
            return PlaybackResult.success()

    async def stop(self) -> PlaybackResult:
        async with self._lock:
            had_handle = self._release_handle()
            if had_handle:
                self._emit("stopped")
            self._current_music_id = None
            return PlaybackResult.success()

    async def seek(self, position_seconds: float) -> PlaybackResult:
        async with self._lock:
            if self._handle is None:
                return PlaybackResult.failure("Nothing is loaded")
            target = max(0.0, float(position_seconds))
            if self._handle.duration > 0:
                target = min(target, self._handle.duration)
            self._handle.seek(target)
            return PlaybackResult.success()

    async def set_volume(self, volume: float) -> float:
        async with self._lock:
            self._volume = min(max(float(volume), 0.0), 1.0)
            if self._handle is not None:
                self._handle.set_volume(self._volume)
            return self._volume

    async def set_repeat_mode(self, enabled: bool) -> None:
        async with self._lock:
            self._repeat = bool(enabled)
            if self._handle is not None:
                self._handle.set_looping(self._repeat)

    def position(self) -> float | None:
        if self._handle is None or self._phase != "playing":
            return None
        return self._handle.position()

    def status(self) -> PlaybackStatus:
        position = None
        if self._handle is not None:
            position = self._handle.position()
        return PlaybackStatus(
            is_playing=self._phase == "playing",
            current_music_id=self._current_music_id,
            is_repeat_enabled=self._repeat,
            volume=self._volume,
            phase=self._phase,
            position=position,
        )

    def _schedule_finish(self, token: int) -> None:
        task = asyncio.get_running_loop().create_task(self._handle_finish(token))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _handle_finish(self, token: int) -> None:
        async with self._lock:
            if token != self._token or self._handle is None:
                _LOGGER.debug("Ignoring completion from a stale handle")
                return
            if self._repeat:
                # Backstop for backends that ignore their native loop flag.
                self._handle.seek(0.0)
                self._handle.play()
                self._phase = "playing"
                self._emit("looped")
                return
            self._emit("finished")
            self._release_handle()
            self._current_music_id = None

    async def join(self) -> None:
        """Let completion callbacks already signalled by the backend run."""
        await asyncio.sleep(0)
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
            await asyncio.sleep(0)
