from moodscore.models import MoodEntry
from moodscore.prompts import DEFAULT_PROMPT, PROMPT_PREFIXES, build_prompt, choose_prefix


class _FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def _entry(reflection: str) -> MoodEntry:
    return MoodEntry(entry_id="e", user_id="u", mood_rating=5, reflection=reflection)


def test_prefix_set_is_fixed() -> None:
    assert tuple(PROMPT_PREFIXES) == ("none", "ambient", "piano", "orchestral", "jazz", "acoustic")


def test_none_prefix_uses_reflection_verbatim() -> None:
    choice = build_prompt(_entry("  walking in the rain  "), _FixedRandom(0.0))
    assert choice.prefix == "none"
    assert choice.label is None
    assert choice.text == "walking in the rain"


def test_prefixed_prompt_keeps_reflection_after_style() -> None:
    choice = build_prompt(_entry("walking in the rain"), _FixedRandom(0.7))
    assert choice.prefix == "jazz"
    assert choice.label == "Jazz"
    assert choice.text.endswith(", walking in the rain")
    assert choice.text.startswith(PROMPT_PREFIXES["jazz"].text or "")


def test_empty_reflection_falls_back_to_default_prompt() -> None:
    choice = build_prompt(_entry("   "), _FixedRandom(0.0))
    assert choice.text == DEFAULT_PROMPT


def test_choose_prefix_covers_last_bucket() -> None:
    assert choose_prefix(_FixedRandom(0.9999)).name == "acoustic"
    assert choose_prefix(_FixedRandom(1.0)).name == "acoustic"
