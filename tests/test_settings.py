from datetime import date, datetime, timezone

import pytest

from aicounsel.config.local_store import LocalSettings
from aicounsel.config.settings import load_persona_prompt, load_settings
from aicounsel.core.errors import ConfigurationError
from aicounsel.memory.models import now_iso, to_iso


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ("OPENAI_API_KEY", "AICOUNSEL_STORE", "AICOUNSEL_BACKEND_URL", "AICOUNSEL_BACKEND_KEY",
                 "OPENAI_BASE_URL", "OPENAI_TTS_AUDIO_FORMAT", "AICOUNSEL_UTC_OFFSET_HOURS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AICOUNSEL_DB_PATH", str(tmp_path / "data" / "db.sqlite"))
    monkeypatch.setenv("AICOUNSEL_SPEECH_DIR", str(tmp_path / "speech"))
    monkeypatch.setenv("AICOUNSEL_LOCAL_SETTINGS", str(tmp_path / "local.json"))
    return monkeypatch


def test_missing_api_key_is_fatal(env):
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        load_settings()


def test_rest_store_requires_backend(env):
    env.setenv("OPENAI_API_KEY", "sk-test")
    with pytest.raises(ConfigurationError, match="AICOUNSEL_BACKEND_URL"):
        load_settings()


def test_sqlite_store_needs_no_backend(env, tmp_path):
    env.setenv("OPENAI_API_KEY", "sk-test")
    env.setenv("AICOUNSEL_STORE", "sqlite")
    env.setenv("OPENAI_TTS_AUDIO_FORMAT", "ogg-vorbis")
    env.setenv("AICOUNSEL_UTC_OFFSET_HOURS", "99")

    settings = load_settings()

    assert settings.store == "sqlite"
    assert settings.openai_tts_audio_format == "mp3"
    assert settings.timestamp_utc_offset_hours == 9.0
    assert (tmp_path / "data").is_dir()
    assert (tmp_path / "speech").is_dir()


def test_invalid_base_url_is_fatal(env):
    env.setenv("OPENAI_API_KEY", "sk-test")
    env.setenv("AICOUNSEL_STORE", "sqlite")
    env.setenv("OPENAI_BASE_URL", "api.openai.com/v1")
    with pytest.raises(ConfigurationError):
        load_settings()


def test_persona_prompt_ships_with_package():
    prompt = load_persona_prompt()
    assert "カウンセリング" in prompt


def test_empty_persona_prompt_is_fatal(tmp_path):
    path = tmp_path / "prompt.txt"
    path.write_text("  \n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_persona_prompt(path)


def test_timestamps_use_fixed_offset():
    assert now_iso().endswith("+09:00")
    assert to_iso(date(1990, 4, 1)) == "1990-04-01T00:00:00+09:00"
    assert to_iso(datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)) == "2024-01-01T09:00:00+09:00"


def test_local_settings_tolerate_corrupt_file(tmp_path):
    path = tmp_path / "local.json"
    path.write_text("[1, 2", encoding="utf-8")
    local = LocalSettings(path)

    assert local.user_email is None
    local.set("user_email", "a@example.com")
    assert LocalSettings(path).user_email == "a@example.com"


def test_non_positive_numbers_fall_back_to_defaults(env):
    env.setenv("OPENAI_API_KEY", "sk-test")
    env.setenv("AICOUNSEL_STORE", "sqlite")
    env.setenv("OPENAI_TIMEOUT_SECONDS", "0")
    env.setenv("OPENAI_TTS_SPEED", "-1")

    settings = load_settings()

    assert settings.openai_timeout_seconds > 0
    assert settings.openai_tts_speed == 1.0
