import logging

import pytest

from moodscore import logging_utils
from moodscore.logging_utils import (
    configure_logging,
    default_data_dir,
    get_log_dir,
    get_log_path,
    log_exception,
)


def test_log_path_uses_env_override(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("MOODSCORE_LOG_DIR", str(tmp_path))
    assert get_log_dir() == tmp_path
    assert get_log_path() == tmp_path / "moodscore.log"


def test_log_dir_defaults_next_to_data_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("MOODSCORE_LOG_DIR", raising=False)
    monkeypatch.setenv("MOODSCORE_DATA_DIR", str(tmp_path / "data"))
    assert default_data_dir() == tmp_path / "data"
    assert get_log_dir() == tmp_path / "logs"


def test_log_exception_appends_traceback(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("MOODSCORE_LOG_DIR", str(tmp_path))
    try:
        raise ValueError("bad peaks")
    except ValueError as exc:
        path = log_exception("waveform", exc)

    assert path == tmp_path / "moodscore.log"
    text = path.read_text(encoding="utf-8")
    assert "waveform failed: ValueError: bad peaks" in text
    assert "Traceback" in text


def test_configure_logging_adds_file_handler(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOODSCORE_LOG_DIR", str(tmp_path))
    logger = logging.getLogger("moodscore")
    saved_handlers = list(logger.handlers)
    monkeypatch.setattr(logging_utils, "_logging_configured", False)
    try:
        configure_logging(force=True)
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert [h.baseFilename for h in file_handlers] == [str(tmp_path / "moodscore.log")]

        logging.getLogger("moodscore.test").info("hello from the test")
        for handler in file_handlers:
            handler.flush()
        assert "hello from the test" in (tmp_path / "moodscore.log").read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            logger.addHandler(handler)
