import pytest

from moodscore.mapper import BASE_PROFILES, derive_parameters, tokenize_reflection
from moodscore.models import MAX_TEMPO, MIN_TEMPO, MoodEntry


class _FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value


def _entry(rating: float, tags: tuple[str, ...] = (), reflection: str = "") -> MoodEntry:
    return MoodEntry(
        entry_id="entry-1",
        user_id="user-1",
        mood_rating=rating,
        emotion_tags=tags,
        reflection=reflection,
    )


@pytest.mark.parametrize("rating", range(1, 11))
def test_every_rating_yields_bounded_tempo_and_instruments(rating: int) -> None:
    params = derive_parameters(_entry(rating), _FixedRandom(0.5))
    assert MIN_TEMPO <= params.tempo <= MAX_TEMPO
    assert params.instrumentation
    assert params.tempo == BASE_PROFILES[rating].tempo
    assert params.key_signature == BASE_PROFILES[rating].key_signature


@pytest.mark.parametrize(("rating", "expected"), [(0, 1), (11, 10), (-3, 1), (4.6, 5), (5.5, 6)])
def test_out_of_range_ratings_are_clamped(rating: float, expected: int) -> None:
    params = derive_parameters(_entry(rating), _FixedRandom(0.5))
    reference = derive_parameters(_entry(expected), _FixedRandom(0.5))
    assert params == reference


def test_same_entry_and_random_source_is_idempotent() -> None:
    entry = _entry(6, ("happy", "calm"), "hope and love, very grateful")
    first = derive_parameters(entry, _FixedRandom(0.3))
    second = derive_parameters(entry, _FixedRandom(0.3))
    assert first == second


def test_emotion_tag_modifiers_apply_in_order() -> None:
    params = derive_parameters(_entry(5, ("sad",)), _FixedRandom(0.5))
    assert params.tempo == 78
    assert params.scale_type == "minor"
    assert params.harmony == "dissonant"
    assert "cello" in params.instrumentation
    assert params.reverb == pytest.approx(0.6)


def test_later_tags_override_earlier_scale() -> None:
    params = derive_parameters(_entry(5, ("sad", "creative")), _FixedRandom(0.5))
    assert params.scale_type == "mixolydian"
    assert params.harmony == "experimental"
    assert params.complexity == pytest.approx(0.8)
    assert params.tempo == 88 - 10 + 5


def test_unknown_tags_are_ignored_and_matching_is_case_insensitive() -> None:
    plain = derive_parameters(_entry(4), _FixedRandom(0.5))
    unknown = derive_parameters(_entry(4, ("bewildered",)), _FixedRandom(0.5))
    assert plain == unknown

    upper = derive_parameters(_entry(4, ("ANXIOUS",)), _FixedRandom(0.5))
    assert upper.scale_type == "diminished"
    assert upper.rhythm_complexity == pytest.approx(0.7)
    assert "tremolo strings" in upper.instrumentation


def test_instruments_are_merged_without_duplicates() -> None:
    params = derive_parameters(_entry(9, ("excited",)), _FixedRandom(0.5))
    assert params.instrumentation.count("full percussion") == 1
    assert "bright synth" in params.instrumentation


def test_reverb_is_additive_and_clamped() -> None:
    params = derive_parameters(_entry(1, ("sad", "calm", "peaceful")), _FixedRandom(0.5))
    assert params.reverb == pytest.approx(1.0)


def test_excited_high_rating_scenario_prefers_text_scale_when_draw_fires() -> None:
    entry = _entry(9, ("excited",), "very happy today")
    rng = _FixedRandom(0.1)
    params = derive_parameters(entry, rng)
    assert params.tempo == 120 + 15 + 10
    assert params.tempo <= MAX_TEMPO
    assert "full percussion" in params.instrumentation
    assert params.scale_type == "major"
    assert params.dynamics == pytest.approx(1.0)
    assert params.density == pytest.approx(1.0)
    assert rng.calls == 1


def test_text_scale_preference_skipped_when_draw_misses() -> None:
    params = derive_parameters(_entry(9, ("excited",), "very happy today"), _FixedRandom(0.9))
    assert params.scale_type == "lydian"


def test_tempo_is_clamped_high_and_low() -> None:
    fast = derive_parameters(
        _entry(10, ("excited", "energetic"), "joy excited inspired happy"),
        _FixedRandom(0.5),
    )
    assert fast.tempo == MAX_TEMPO

    slow = derive_parameters(
        _entry(1, ("tired", "sad"), "tired exhausted sad lonely"),
        _FixedRandom(0.5),
    )
    assert slow.tempo == MIN_TEMPO


def test_intensifier_counts_only_next_to_a_keyword() -> None:
    baseline = derive_parameters(_entry(5), _FixedRandom(0.9))
    detached = derive_parameters(_entry(5, (), "very good day, happy"), _FixedRandom(0.9))
    assert detached.dynamics == pytest.approx(baseline.dynamics)
    assert detached.tempo == baseline.tempo + 10

    softened = derive_parameters(_entry(5, (), "slightly tired"), _FixedRandom(0.9))
    assert softened.dynamics == pytest.approx(baseline.dynamics - 0.2)
    assert softened.density == pytest.approx(baseline.density - 0.2)


def test_reflection_tokens_strip_surrounding_punctuation() -> None:
    assert tokenize_reflection('"Happy!" (so) TIRED...') == ["happy", "so", "tired"]
    params = derive_parameters(_entry(5, (), "Happy!"), _FixedRandom(0.9))
    assert params.tempo == 98


def test_no_random_draw_without_scale_preference() -> None:
    rng = _FixedRandom(0.0)
    derive_parameters(_entry(5, ("happy",), "a quiet day"), rng)
    assert rng.calls == 0
