import io

import pytest

from moodscore.spinner import Spinner, render_error, spinner


def test_spinner_disabled_is_noop() -> None:
    handle = Spinner("Generating", enabled=False)
    handle.start()
    handle.update("Still generating")
    handle.stop()
    assert handle.message == "Still generating"


def test_spinner_is_disabled_off_terminal() -> None:
    stream = io.StringIO()
    with spinner("Generating", stream=stream) as handle:
        handle.update("Almost there")
    assert stream.getvalue() == ""


def test_render_error_plain_stream(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOODSCORE_LOG_DIR", str(tmp_path))
    stream = io.StringIO()
    render_error("moodscore CLI", RuntimeError("speaker on fire"), stream=stream)
    assert stream.getvalue() == (
        f"moodscore CLI failed: RuntimeError: speaker on fire (logs: {tmp_path / 'moodscore.log'})\n"
    )


def test_render_error_debug_includes_traceback(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOODSCORE_DEBUG", "1")
    stream = io.StringIO()
    try:
        raise KeyError("music")
    except KeyError as exc:
        render_error("play", exc, stream=stream)
    assert "Traceback" in stream.getvalue()
