from __future__ import annotations

import os
import sys
import traceback
from contextlib import contextmanager
from typing import IO, Iterator

from rich.console import Console
from rich.panel import Panel
from rich.status import Status
from rich.text import Text
from rich.traceback import Traceback

from .logging_utils import get_log_path


class Spinner:
    """Rich status spinner; a no-op when the stream is not a terminal."""

    def __init__(
        self,
        message: str,
        *,
        spinner: str = "dots",
        stream: IO[str] | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._message = message
        self._spinner = spinner
        self._stream = stream or sys.stderr
        self._enabled = self._stream.isatty() if enabled is None else enabled
        self._status: Status | None = None

    @property
    def message(self) -> str:
        return self._message

    def start(self) -> None:
        if not self._enabled or self._status is not None:
            return
        console = Console(file=self._stream)
        self._status = console.status(self._message, spinner=self._spinner)
        self._status.start()

    def update(self, message: str) -> None:
        self._message = message
        if self._status is not None:
            self._status.update(message)

    def stop(self) -> None:
        if self._status is None:
            return
        self._status.stop()
        self._status = None

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.stop()


@contextmanager
def spinner(
    message: str,
    *,
    stream: IO[str] | None = None,
    enabled: bool | None = None,
) -> Iterator[Spinner]:
    handle = Spinner(message, stream=stream, enabled=enabled)
    handle.start()
    try:
        yield handle
    finally:
        handle.stop()


def render_error(
    context: str,
    exc: BaseException,
    *,
    stream: IO[str] | None = None,
) -> None:
    target = stream or sys.stderr
    debug = os.environ.get("MOODSCORE_DEBUG")
    log_path = get_log_path()
    if target.isatty():
        console = Console(file=target)
        body = Text.assemble(
            ("MoodScore error while ", "bold"),
            (context, "bold"),
            (":\n\n", "bold"),
            Text(type(exc).__name__, style="bold red"),
            (": ", "bold"),
            Text(str(exc)),
            (f"\nLogs: {log_path}", "dim"),
            ("\n\nSet MOODSCORE_DEBUG=1 for console trace.", "dim"),
        )
        console.print(Panel(body, title="Error", border_style="red"))
        if debug:
            console.print(Traceback.from_exception(type(exc), exc, exc.__traceback__))
        return
    target.write(f"{context} failed: {type(exc).__name__}: {exc} (logs: {log_path})\n")
    if debug:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=target)
