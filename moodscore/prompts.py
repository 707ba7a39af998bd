from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict

from .mapper import RandomSource
from .models import MoodEntry

DEFAULT_PROMPT = "peaceful ambient soundscape"


class PromptPrefix(BaseModel):
    name: str
    label: str | None
    text: str | None

    model_config = ConfigDict(frozen=True, extra="forbid")


class PromptChoice(BaseModel):
    text: str
    prefix: str
    label: str | None

    model_config = ConfigDict(frozen=True, extra="forbid")


PROMPT_PREFIXES: Mapping[str, PromptPrefix] = MappingProxyType(
    {
        "none": PromptPrefix(name="none", label=None, text=None),
        "ambient": PromptPrefix(
            name="ambient", label="Ambient", text="calm ambient soundscape, soft pads"
        ),
        "piano": PromptPrefix(name="piano", label="Piano", text="gentle solo piano, intimate"),
        "orchestral": PromptPrefix(
            name="orchestral", label="Orchestral", text="cinematic orchestral strings, warm"
        ),
        "jazz": PromptPrefix(name="jazz", label="Jazz", text="mellow jazz trio, brushed drums"),
        "acoustic": PromptPrefix(
            name="acoustic", label="Acoustic", text="acoustic guitar, organic and warm"
        ),
    }
)
_PREFIX_ORDER: tuple[str, ...] = tuple(PROMPT_PREFIXES)


def choose_prefix(rng: RandomSource) -> PromptPrefix:
    index = min(int(rng.random() * len(_PREFIX_ORDER)), len(_PREFIX_ORDER) - 1)
    return PROMPT_PREFIXES[_PREFIX_ORDER[index]]


def build_prompt(entry: MoodEntry, rng: RandomSource) -> PromptChoice:
    """Build the provider prompt from the reflection and a randomly chosen style prefix."""
    reflection = entry.reflection.strip() or DEFAULT_PROMPT
    prefix = choose_prefix(rng)
    text = reflection if prefix.text is None else f"{prefix.text}, {reflection}"
    return PromptChoice(text=text, prefix=prefix.name, label=prefix.label)
