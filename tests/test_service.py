import pytest

from moodscore.config import MoodScoreSettings
from moodscore.models import MoodEntry
from moodscore.playback import MemoryAudioBackend
from moodscore.service import MoodMusicService, build_service
from moodscore.storage import MemoryBlobStore, MemoryMusicStore


class _FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def music_store() -> MemoryMusicStore:
    return MemoryMusicStore()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def service(music_store: MemoryMusicStore, blob_store: MemoryBlobStore) -> MoodMusicService:
    return MoodMusicService(
        settings=MoodScoreSettings(storage="memory", audio_backend="memory", duration_seconds=1),
        music_store=music_store,
        blob_store=blob_store,
        providers=[],
        backend=MemoryAudioBackend(clock=_Clock()),
        rng=_FixedRandom(0.4),
    )


def _entry(entry_id: str = "entry-1", user_id: str = "alice") -> MoodEntry:
    return MoodEntry(
        entry_id=entry_id,
        user_id=user_id,
        mood_rating=2,
        emotion_tags=("lonely",),
        reflection="long grey afternoon",
    )


@pytest.mark.asyncio
async def test_generate_music_persists_entry_and_music(service: MoodMusicService) -> None:
    music = await service.generate_music("alice", _entry())

    assert music is not None
    assert music.generation_method == "procedural"
    assert music.music_parameters.mood == "melancholic"
    assert await service.list_generated_music("alice") == [music]
    assert await service.retrieve_generated_music("alice", music.music_id) == music
    assert (await service.load_audio(music))[:4] == b"RIFF"
    assert service.is_generating() is False
    assert service.get_queue_length() == 0


@pytest.mark.asyncio
async def test_generate_music_rejects_foreign_entry(service: MoodMusicService) -> None:
    assert await service.generate_music("bob", _entry(user_id="alice")) is None
    assert await service.list_generated_music("bob") == []


@pytest.mark.asyncio
async def test_playback_controls_through_service(service: MoodMusicService) -> None:
    music = await service.generate_music("alice", _entry())
    assert music is not None

    assert await service.set_volume(0.3) == pytest.approx(0.3)
    await service.set_repeat_mode(True)
    assert await service.play_music(music.music_id, "alice")
    status = service.get_playback_status()
    assert status.is_playing is True
    assert status.current_music_id == music.music_id
    assert status.is_repeat_enabled is True
    assert status.volume == pytest.approx(0.3)
    assert service.get_playback_position() == pytest.approx(0.0)

    assert await service.seek_to_position(0.5)
    assert service.get_playback_position() == pytest.approx(0.5)
    assert await service.pause_music()
    assert service.get_playback_position() is None
    assert await service.resume_music()
    assert await service.stop_music()
    assert service.get_playback_status().phase == "idle"


@pytest.mark.asyncio
async def test_delete_music_stops_playback_and_unlinks_entry(
    service: MoodMusicService, music_store: MemoryMusicStore
) -> None:
    music = await service.generate_music("alice", _entry())
    assert music is not None
    await service.play_music(music.music_id, "alice")

    assert await service.delete_music("alice", music.music_id) is True

    assert service.get_playback_status().current_music_id is None
    assert await service.retrieve_generated_music("alice", music.music_id) is None
    assert await service.delete_music("alice", music.music_id) is False
    assert not await service.play_music(music.music_id, "alice")
    entry = await music_store.load_mood_entry("alice", "entry-1")
    assert entry is not None and entry.music_generated is False and entry.music_id is None


@pytest.mark.asyncio
async def test_missing_audio_is_regenerated_on_play(
    service: MoodMusicService, blob_store: MemoryBlobStore
) -> None:
    music = await service.generate_music("alice", _entry())
    assert music is not None
    # Simulate a blob lost from storage.
    await blob_store.delete(music.audio_ref)

    assert await service.play_music(music.music_id, "alice")

    restored = await service.retrieve_generated_music("alice", music.music_id)
    assert restored is not None
    assert restored.generation_method == "procedural"
    assert restored.audio_format == "wav"
    assert restored.waveform_peaks is not None and len(restored.waveform_peaks) == 96
    assert await blob_store.exists(restored.audio_ref)


@pytest.mark.asyncio
async def test_regenerate_unknown_music_returns_none(service: MoodMusicService) -> None:
    assert await service.regenerate_audio("alice", "missing") is None


def test_build_service_from_settings() -> None:
    service = build_service(
        MoodScoreSettings(storage="memory", audio_backend="memory", huggingface_token="hf-token")
    )
    assert service.settings.configured_providers() == ["huggingface"]
    assert service.settings.storage == "memory"
    assert service.get_playback_status().phase == "idle"


@pytest.mark.asyncio
async def test_file_storage_handles_timestamp_and_email_ids(tmp_path) -> None:
    service = build_service(
        MoodScoreSettings(
            storage="file", audio_backend="memory", data_dir=tmp_path, duration_seconds=1
        ),
        rng=_FixedRandom(0.4),
    )
    entry = MoodEntry(
        entry_id="2024-05-01T10:00:00",
        user_id="a+b@example.com",
        mood_rating=8,
        reflection="sunny morning run",
    )

    music = await service.generate_music("a+b@example.com", entry)

    assert music is not None and music.entry_id == "2024-05-01T10:00:00"
    assert await service.list_generated_music("a+b@example.com") == [music]
    assert await service.play_music(music.music_id, "a+b@example.com")
    assert await service.stop_music()

    missing = await service.play_music("no such id", "a+b@example.com")
    assert not missing
    assert missing.reason == "Music no such id not found"
