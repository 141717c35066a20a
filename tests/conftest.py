from __future__ import annotations

import pytest

from caption_pipeline.config import get_settings


@pytest.fixture(autouse=True)
def _test_env(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    root = tmp_path_factory.mktemp("cp_test")
    (root / "logs").mkdir(parents=True, exist_ok=True)
    (root / "_state").mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("APP_ROOT", str(root))
    monkeypatch.setenv("CAPTION_LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("CAPTION_STATE_DIR", str(root / "_state"))
    monkeypatch.setenv("TRANSCRIBE_POLL_INTERVAL_SEC", "0")
    monkeypatch.setenv("TRANSCRIBE_POLL_MAX", "5")
    for name in (
        "ASSEMBLYAI_API_KEY",
        "WHISPER147_API_KEY",
        "WHISPER_N1N_API_KEY",
        "GEMINI147_API_KEY",
        "GEMINI_N1N_API_KEY",
        "GOOGLE_GEMINI_API_KEY",
        "RAGIC_API_KEY",
        "TELEGRAM_BOT_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
