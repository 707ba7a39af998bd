from pathlib import Path

import pytest

_MOODSCORE_ENV = (
    "MOODSCORE_PROXY_URL",
    "ELEVENLABS_API_KEY",
    "HUGGINGFACE_API_TOKEN",
    "MOODSCORE_STORAGE",
    "MOODSCORE_AUDIO_BACKEND",
    "MOODSCORE_DEBUG",
    "MOODSCORE_PROVIDER_TIMEOUT",
    "MOODSCORE_MAX_RETRIES",
    "MOODSCORE_RETRY_BACKOFF",
    "MOODSCORE_MIN_PAYLOAD_BYTES",
    "MOODSCORE_USER",
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MOODSCORE_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("MOODSCORE_DATA_DIR", str(tmp_path / "data"))
    for name in _MOODSCORE_ENV:
        monkeypatch.delenv(name, raising=False)
