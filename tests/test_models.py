import pytest
from pydantic import ValidationError

from moodscore.models import (
    GeneratedMusic,
    MoodEntry,
    MusicSummary,
    PlaybackResult,
    clamp_rating,
    clamp_tempo,
    mood_label,
)


@pytest.mark.parametrize(
    ("rating", "label"),
    [(1, "melancholic"), (3, "melancholic"), (4, "contemplative"), (5, "contemplative"),
     (6, "uplifting"), (7, "uplifting"), (8, "joyful"), (10, "joyful"), (42, "joyful")],
)
def test_mood_label_bands(rating: int, label: str) -> None:
    assert mood_label(rating) == label


def test_clamp_rating_edges() -> None:
    assert clamp_rating(float("nan")) == 1
    assert clamp_rating(3.49) == 3
    assert clamp_rating(3.5) == 4
    assert clamp_rating(-100) == 1


def test_clamp_tempo_bounds() -> None:
    assert clamp_tempo(20) == 40
    assert clamp_tempo(240) == 200
    assert clamp_tempo(95) == 95
    assert clamp_tempo(95.6) == 96


def test_mood_entry_normalizes_input() -> None:
    entry = MoodEntry(
        entry_id="e",
        user_id="u",
        mood_rating=12,
        emotion_tags=[" Happy", "happy", "CALM", ""],
        reflection=None,
    )
    assert entry.mood_rating == 10
    assert entry.emotion_tags == ("happy", "calm")
    assert entry.reflection == ""

    linked = entry.with_music_link("m1")
    assert linked.music_generated is True and linked.music_id == "m1"
    assert entry.music_generated is False


def test_generated_music_rejects_unnormalized_peaks() -> None:
    summary = MusicSummary(tempo=90, key="C major", instruments=("piano",), mood="joyful")
    music = GeneratedMusic(
        music_id="m1", user_id="u", entry_id="e", audio_ref="memory://m1.wav", music_parameters=summary
    )
    assert music.with_peaks((0.0, 0.5, 1.0)).waveform_peaks == (0.0, 0.5, 1.0)
    with pytest.raises(ValidationError):
        music.with_peaks((0.2, 1.5))
    with pytest.raises(ValidationError):
        GeneratedMusic(
            music_id="m1",
            user_id="u",
            entry_id="e",
            audio_ref="memory://m1.wav",
            music_parameters=summary,
            generation_method="magic",
        )


def test_playback_result_truthiness() -> None:
    assert PlaybackResult.success()
    failure = PlaybackResult.failure("Nothing is playing")
    assert not failure
    assert failure.reason == "Nothing is playing"
