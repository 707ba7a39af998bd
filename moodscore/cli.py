from __future__ import annotations

import argparse
import asyncio
import logging
import os
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import Iterable

import numpy as np
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import MoodScoreSettings
from .logging_utils import configure_logging, get_log_path, log_exception
from .models import GeneratedMusic, MoodEntry
from .playback import PlaybackEvent
from .service import MoodMusicService, build_service
from .spinner import Spinner, render_error
from .waveform import peaks_for_payload, smooth_peaks

_LOGGER = logging.getLogger("moodscore.cli")
_CONSOLE = Console()
_BARS = "▁▂▃▄▅▆▇█"
_DEFAULT_USER = "local"
_PLAYBACK_GRACE_SECONDS = 2.0


def _default_user() -> str:
    return os.environ.get("MOODSCORE_USER", _DEFAULT_USER)


def sparkline(peaks: Sequence[float]) -> str:
    top = len(_BARS) - 1
    return "".join(_BARS[min(top, max(0, int(round(value * top))))] for value in peaks)


def _music_table(items: Iterable[GeneratedMusic]) -> Table:
    table = Table(title="Generated music")
    table.add_column("Music id")
    table.add_column("Entry")
    table.add_column("Generated")
    table.add_column("Method")
    table.add_column("Mood")
    table.add_column("Tempo", justify="right")
    table.add_column("Key")
    for music in items:
        table.add_row(
            music.music_id,
            music.entry_id,
            music.generated_at.strftime("%Y-%m-%d %H:%M"),
            music.generation_method,
            music.music_parameters.mood,
            str(music.music_parameters.tempo),
            music.music_parameters.key,
        )
    return table


def _print_music(music: GeneratedMusic) -> None:
    summary = music.music_parameters
    _CONSOLE.print(f"Music id: [bold]{music.music_id}[/bold]")
    _CONSOLE.print(f"Method: {music.generation_method} ({music.audio_format}, {music.duration:g}s)")
    _CONSOLE.print(
        f"Mood: {summary.mood}, tempo {summary.tempo} BPM, key {summary.key}, "
        f"instruments: {', '.join(summary.instruments)}"
    )
    if music.prompt_label_used:
        _CONSOLE.print(f"Prompt style: {music.prompt_label_used}")
    if music.waveform_peaks:
        _CONSOLE.print(sparkline(music.waveform_peaks))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="moodscore")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Generate music for a mood entry.")
    generate.add_argument("rating", type=float, help="Mood rating from 1 to 10.")
    generate.add_argument("--tag", action="append", default=[], help="Emotion tag (repeatable).")
    generate.add_argument("--reflection", type=str, default="")
    generate.add_argument("--user", type=str, default=None)
    generate.add_argument("--entry-id", type=str, default=None)
    generate.add_argument("--seed", type=int, default=None)
    generate.add_argument("--output", type=str, default=None, help="Also write the audio here.")

    listing = sub.add_parser("list", help="List generated music.")
    listing.add_argument("--user", type=str, default=None)

    play = sub.add_parser("play", help="Play generated music.")
    play.add_argument("music_id", type=str)
    play.add_argument("--user", type=str, default=None)
    play.add_argument("--repeat", action="store_true")
    play.add_argument("--volume", type=float, default=1.0)
    play.add_argument("--no-wait", action="store_true", help="Return once playback starts.")

    peaks = sub.add_parser("peaks", help="Show waveform peaks for an audio file.")
    peaks.add_argument("file", type=str)
    peaks.add_argument("--bars", type=int, default=96)
    peaks.add_argument("--smooth", type=int, default=0)

    sub.add_parser("doctor", help="Show provider configuration and data paths.")
    return parser


async def _generate(args: argparse.Namespace, settings: MoodScoreSettings) -> int:
    user_id = args.user or _default_user()
    rng = np.random.default_rng(args.seed)
    service = build_service(settings, rng=rng)
    entry = MoodEntry(
        entry_id=args.entry_id or uuid.uuid4().hex,
        user_id=user_id,
        mood_rating=args.rating,
        emotion_tags=tuple(args.tag),
        reflection=args.reflection,
    )
    with Spinner("Generating music"):
        music = await service.generate_music(user_id, entry)
    if music is None:
        _CONSOLE.print("[red]Generation did not produce music.[/red] See logs for details.")
        return 1
    _print_music(music)
    if args.output:
        target = Path(args.output)
        data = await service.load_audio(music)
        target.write_bytes(data)
        _CONSOLE.print(f"Wrote audio to {target}")
    return 0


async def _list(args: argparse.Namespace, settings: MoodScoreSettings) -> int:
    service = build_service(settings)
    items = await service.list_generated_music(args.user or _default_user())
    if not items:
        _CONSOLE.print("No generated music yet.")
        return 0
    _CONSOLE.print(_music_table(items))
    return 0


async def _wait_for_end(service: MoodMusicService, music: GeneratedMusic, *, repeat: bool) -> None:
    done = asyncio.Event()

    def _listener(event: PlaybackEvent) -> None:
        if event.kind in {"finished", "stopped", "error"}:
            done.set()

    unsubscribe = service.playback.subscribe(_listener)
    try:
        if repeat:
            await done.wait()
        else:
            await asyncio.wait_for(done.wait(), timeout=music.duration + _PLAYBACK_GRACE_SECONDS)
    except asyncio.TimeoutError:
        _LOGGER.debug("No completion signal for %s; stopping.", music.music_id)
    finally:
        unsubscribe()


async def _play(args: argparse.Namespace, settings: MoodScoreSettings) -> int:
    user_id = args.user or _default_user()
    service = build_service(settings)
    await service.set_volume(args.volume)
    await service.set_repeat_mode(args.repeat)
    music = await service.retrieve_generated_music(user_id, args.music_id)
    if music is None:
        _CONSOLE.print(f"[red]Music {args.music_id} not found.[/red]")
        return 1
    result = await service.play_music(args.music_id, user_id)
    if not result:
        _CONSOLE.print(f"[red]Playback failed:[/red] {result.reason}")
        return 1
    _CONSOLE.print(f"♪ Playing {args.music_id}" + (" (repeat)" if args.repeat else ""))
    if args.no_wait:
        return 0
    try:
        await _wait_for_end(service, music, repeat=args.repeat)
    finally:
        await service.stop_music()
    return 0


def _peaks(args: argparse.Namespace) -> int:
    data = Path(args.file).read_bytes()
    values = peaks_for_payload(data, args.bars)
    if args.smooth > 0:
        values = smooth_peaks(values, args.smooth)
    _CONSOLE.print(sparkline(values))
    return 0


def _doctor_report(settings: MoodScoreSettings) -> list[str]:
    providers = settings.configured_providers()
    return [
        f"Configured providers: {', '.join(providers) if providers else 'none (procedural only)'}",
        f"Storage: {settings.storage} ({settings.data_dir})",
        f"Audio backend: {settings.audio_backend}",
        f"Provider timeout: {settings.provider_timeout:g}s, passes: {settings.max_retries}",
        f"Log file: {get_log_path()}",
        "Hints:",
        "- Set MOODSCORE_PROXY_URL, ELEVENLABS_API_KEY or HUGGINGFACE_API_TOKEN to enable AI providers.",
        "- Install moodscore[playback] for sounddevice output, or set MOODSCORE_AUDIO_BACKEND=memory.",
    ]


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        settings = MoodScoreSettings.from_env()

        match args.command:
            case "generate":
                return asyncio.run(_generate(args, settings))
            case "list":
                return asyncio.run(_list(args, settings))
            case "play":
                return asyncio.run(_play(args, settings))
            case "peaks":
                return _peaks(args)
            case "doctor":
                for line in _doctor_report(settings):
                    _CONSOLE.print(escape(line))
                return 0

        parser.print_help()
        return 1
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        debug = bool(os.environ.get("MOODSCORE_DEBUG"))
        _LOGGER.warning("moodscore CLI failed: %s", exc, exc_info=debug)
        log_exception("moodscore CLI", exc)
        render_error("moodscore CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
