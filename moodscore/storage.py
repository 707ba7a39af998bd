"""Persistence contracts and the in-memory / on-disk implementations."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from pydantic import ValidationError

from .config import MoodScoreSettings
from .errors import ConfigurationError, NotFoundError
from .models import GeneratedMusic, MoodEntry

_LOGGER = logging.getLogger("moodscore.storage")
_MAX_COMPONENT = 128
_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9%_~@-][A-Za-z0-9._%~@-]{0,127}$")
MEMORY_SCHEME = "memory://"
FILE_SCHEME = "file://"


def safe_component(value: str, *, what: str = "identifier") -> str:
    """Reject ids that could escape their directory."""
    if not _SAFE_COMPONENT.match(value) or ".." in value:
        raise ValueError(f"invalid {what}: {value!r}")
    return value


def encode_component(value: str) -> str:
    """Map any id (timestamps, emails, spaces) onto a single safe file name.

    Plain ids pass through unchanged. Everything else is percent-encoded, and
    names that are empty or too long are replaced by their SHA-256 digest.
    """
    encoded = quote(value, safe="@.")
    if encoded.startswith(".") or ".." in encoded:
        encoded = encoded.replace(".", "%2E")
    if not encoded or len(encoded) > _MAX_COMPONENT:
        encoded = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return safe_component(encoded)


class MusicStore(Protocol):
    async def save_music(self, user_id: str, music: GeneratedMusic) -> None: ...

    async def load_music(self, user_id: str, music_id: str) -> GeneratedMusic | None: ...

    async def list_music(self, user_id: str) -> list[GeneratedMusic]: ...

    async def delete_music(self, user_id: str, music_id: str) -> bool: ...

    async def save_mood_entry(self, entry: MoodEntry) -> None: ...

    async def load_mood_entry(self, user_id: str, entry_id: str) -> MoodEntry | None: ...

    async def update_mood_entry_link(
        self,
        user_id: str,
        entry_id: str,
        *,
        music_generated: bool,
        music_id: str | None,
    ) -> MoodEntry: ...


class BlobStore(Protocol):
    async def save(self, key: str, data: bytes) -> str: ...

    async def load(self, reference: str) -> bytes: ...

    async def delete(self, reference: str) -> bool: ...

    async def exists(self, reference: str) -> bool: ...


def _newest_first(items: list[GeneratedMusic]) -> list[GeneratedMusic]:
    return sorted(items, key=lambda music: music.generated_at, reverse=True)


def _linked(entry: MoodEntry, music_generated: bool, music_id: str | None) -> MoodEntry:
    return entry.model_copy(update={"music_generated": music_generated, "music_id": music_id})


class MemoryMusicStore:
    def __init__(self) -> None:
        self._music: dict[tuple[str, str], GeneratedMusic] = {}
        self._entries: dict[tuple[str, str], MoodEntry] = {}

    async def save_music(self, user_id: str, music: GeneratedMusic) -> None:
        self._music[(user_id, music.music_id)] = music

    async def load_music(self, user_id: str, music_id: str) -> GeneratedMusic | None:
        return self._music.get((user_id, music_id))

    async def list_music(self, user_id: str) -> list[GeneratedMusic]:
        return _newest_first([m for (owner, _), m in self._music.items() if owner == user_id])

    async def delete_music(self, user_id: str, music_id: str) -> bool:
        return self._music.pop((user_id, music_id), None) is not None

    async def save_mood_entry(self, entry: MoodEntry) -> None:
        self._entries[(entry.user_id, entry.entry_id)] = entry

    async def load_mood_entry(self, user_id: str, entry_id: str) -> MoodEntry | None:
        return self._entries.get((user_id, entry_id))

    async def update_mood_entry_link(
        self,
        user_id: str,
        entry_id: str,
        *,
        music_generated: bool,
        music_id: str | None,
    ) -> MoodEntry:
        entry = self._entries.get((user_id, entry_id))
        if entry is None:
            raise NotFoundError(f"mood entry {entry_id!r} not found for user {user_id!r}")
        updated = _linked(entry, music_generated, music_id)
        self._entries[(user_id, entry_id)] = updated
        return updated


class JsonMusicStore:
    """One pydantic JSON document per record under ``<root>/users/<user>/``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def _user_dir(self, user_id: str, kind: str) -> Path:
        return self._root / "users" / encode_component(user_id) / kind

    def _music_path(self, user_id: str, music_id: str) -> Path:
        return self._user_dir(user_id, "music") / f"{encode_component(music_id)}.json"

    def _entry_path(self, user_id: str, entry_id: str) -> Path:
        return self._user_dir(user_id, "entries") / f"{encode_component(entry_id)}.json"

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(path)

    @staticmethod
    def _read_music(path: Path) -> GeneratedMusic | None:
        if not path.exists():
            return None
        try:
            return GeneratedMusic.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            _LOGGER.warning("Skipping unreadable music record %s: %s", path, exc)
            return None

    @staticmethod
    def _read_entry(path: Path) -> MoodEntry | None:
        if not path.exists():
            return None
        return MoodEntry.model_validate_json(path.read_text(encoding="utf-8"))

    async def save_music(self, user_id: str, music: GeneratedMusic) -> None:
        path = self._music_path(user_id, music.music_id)
        await asyncio.to_thread(self._write, path, music.model_dump_json(indent=2))

    async def load_music(self, user_id: str, music_id: str) -> GeneratedMusic | None:
        return await asyncio.to_thread(self._read_music, self._music_path(user_id, music_id))

    async def list_music(self, user_id: str) -> list[GeneratedMusic]:
        directory = self._user_dir(user_id, "music")

        def _scan() -> list[GeneratedMusic]:
            if not directory.exists():
                return []
            records = [self._read_music(path) for path in sorted(directory.glob("*.json"))]
            return [record for record in records if record is not None]

        return _newest_first(await asyncio.to_thread(_scan))

    async def delete_music(self, user_id: str, music_id: str) -> bool:
        path = self._music_path(user_id, music_id)

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        return await asyncio.to_thread(_unlink)

    async def save_mood_entry(self, entry: MoodEntry) -> None:
        path = self._entry_path(entry.user_id, entry.entry_id)
        await asyncio.to_thread(self._write, path, entry.model_dump_json(indent=2))

    async def load_mood_entry(self, user_id: str, entry_id: str) -> MoodEntry | None:
        return await asyncio.to_thread(self._read_entry, self._entry_path(user_id, entry_id))

    async def update_mood_entry_link(
        self,
        user_id: str,
        entry_id: str,
        *,
        music_generated: bool,
        music_id: str | None,
    ) -> MoodEntry:
        entry = await self.load_mood_entry(user_id, entry_id)
        if entry is None:
            raise NotFoundError(f"mood entry {entry_id!r} not found for user {user_id!r}")
        updated = _linked(entry, music_generated, music_id)
        await self.save_mood_entry(updated)
        return updated


class MemoryBlobStore:
    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def save(self, key: str, data: bytes) -> str:
        reference = f"{MEMORY_SCHEME}{encode_component(key)}"
        self._blobs[reference] = bytes(data)
        return reference

    async def load(self, reference: str) -> bytes:
        try:
            return self._blobs[reference]
        except KeyError:
            raise NotFoundError(f"audio blob {reference!r} not found") from None

    async def delete(self, reference: str) -> bool:
        return self._blobs.pop(reference, None) is not None

    async def exists(self, reference: str) -> bool:
        return reference in self._blobs


class FileBlobStore:
    """Audio files under a single directory, referenced as ``file://<key>``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, reference: str) -> Path:
        if not reference.startswith(FILE_SCHEME):
            raise NotFoundError(f"not a file blob reference: {reference!r}")
        try:
            key = safe_component(reference[len(FILE_SCHEME) :], what="blob key")
        except ValueError as exc:
            raise NotFoundError(str(exc)) from exc
        return self._root / key

    async def save(self, key: str, data: bytes) -> str:
        reference = f"{FILE_SCHEME}{encode_component(key)}"
        path = self._path(reference)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return reference

    async def load(self, reference: str) -> bytes:
        path = self._path(reference)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise NotFoundError(f"audio blob {reference!r} not found") from None

    async def delete(self, reference: str) -> bool:
        path = self._path(reference)

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        return await asyncio.to_thread(_unlink)

    async def exists(self, reference: str) -> bool:
        try:
            path = self._path(reference)
        except NotFoundError:
            return False
        return await asyncio.to_thread(path.exists)


def build_stores(settings: MoodScoreSettings) -> tuple[MusicStore, BlobStore]:
    match settings.storage:
        case "memory":
            return MemoryMusicStore(), MemoryBlobStore()
        case "file":
            return (
                JsonMusicStore(settings.data_dir),
                FileBlobStore(settings.data_dir / "audio"),
            )
        case _:
            raise ConfigurationError(f"unknown storage backend {settings.storage!r}")
