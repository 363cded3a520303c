# aicounsel/config/settings.py

from dataclasses import dataclass
import os
from pathlib import Path

from dotenv import load_dotenv

from aicounsel.core.errors import ConfigurationError

# Expose BASE_DIR for other modules
BASE_DIR = Path(__file__).resolve().parents[2]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

COUNSELING_PROMPT_PATH = BASE_DIR / "aicounsel" / "config" / "counseling_system_prompt.txt"

ALLOWED_STORES = {"rest", "sqlite"}
ALLOWED_TTS_FORMATS = {"mp3", "wav", "opus", "aac", "flac"}


@dataclass
class Settings:
    # Completion endpoint
    openai_api_key: str
    openai_api_base: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-3.5-turbo"
    openai_timeout_seconds: float = 60.0

    # Speech synthesis
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "alloy"
    openai_tts_audio_format: str = "mp3"
    openai_tts_speed: float = 1.0
    speech_output_dir: str = str(BASE_DIR / "aicounsel" / "data" / "speech")

    # Backend record store: "rest" (hosted) or "sqlite" (local)
    store: str = "rest"
    backend_url: str = ""
    backend_key: str = ""
    users_table: str = "users"
    actions_table: str = "action_num"
    db_path: str = str(BASE_DIR / "aicounsel" / "data" / "aicounsel.db")

    # Local key-value settings (user email, profile, registration flag)
    local_settings_path: str = str(BASE_DIR / "aicounsel" / "data" / "local_settings.json")

    # Fixed offset used for last_updated_at / birthdate timestamps
    timestamp_utc_offset_hours: float = 9.0


def _parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _parse_offset_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    # UTC offsets live in [-12, +14]
    return value if -12.0 <= value <= 14.0 else default


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def load_settings() -> Settings:
    """
    Load configuration from environment variables (and defaults).
    Raises ConfigurationError if required settings are missing; this is the
    only fatal error of the application and happens at startup.
    """
    # --- Required: API key ---
    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise ConfigurationError("OPENAI_API_KEY is not set in .env or environment")

    api_base = _env_str("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
    if not (api_base.startswith("http://") or api_base.startswith("https://")):
        raise ConfigurationError(f"OPENAI_BASE_URL is invalid (missing scheme): {api_base!r}")

    # --- TTS audio format (normalized + safeguarded) ---
    tts_format = _env_str("OPENAI_TTS_AUDIO_FORMAT", "mp3").lower()
    if tts_format not in ALLOWED_TTS_FORMATS:
        tts_format = "mp3"

    # --- Backend store ---
    store = _env_str("AICOUNSEL_STORE", "rest").lower()
    if store not in ALLOWED_STORES:
        raise ConfigurationError(f"AICOUNSEL_STORE must be one of {sorted(ALLOWED_STORES)}, got {store!r}")

    backend_url = os.getenv("AICOUNSEL_BACKEND_URL", "").strip().rstrip("/")
    backend_key = os.getenv("AICOUNSEL_BACKEND_KEY", "").strip()
    if store == "rest":
        if not backend_url:
            raise ConfigurationError("AICOUNSEL_BACKEND_URL is not set in .env or environment")
        if not backend_key:
            raise ConfigurationError("AICOUNSEL_BACKEND_KEY is not set in .env or environment")

    defaults = Settings(openai_api_key=api_key)

    db_path = Path(_env_str("AICOUNSEL_DB_PATH", defaults.db_path))
    speech_dir = Path(_env_str("AICOUNSEL_SPEECH_DIR", defaults.speech_output_dir))
    local_path = Path(_env_str("AICOUNSEL_LOCAL_SETTINGS", defaults.local_settings_path))

    # Ensure data directories exist
    for directory in {db_path.parent, speech_dir, local_path.parent}:
        directory.mkdir(parents=True, exist_ok=True)

    return Settings(
        openai_api_key=api_key,
        openai_api_base=api_base,
        openai_model=_env_str("OPENAI_MODEL", defaults.openai_model),
        openai_timeout_seconds=_parse_float_env("OPENAI_TIMEOUT_SECONDS", defaults.openai_timeout_seconds),
        openai_tts_model=_env_str("OPENAI_TTS_MODEL", defaults.openai_tts_model),
        openai_tts_voice=_env_str("OPENAI_TTS_VOICE", defaults.openai_tts_voice),
        openai_tts_audio_format=tts_format,
        openai_tts_speed=_parse_float_env("OPENAI_TTS_SPEED", defaults.openai_tts_speed),
        speech_output_dir=str(speech_dir),
        store=store,
        backend_url=backend_url,
        backend_key=backend_key,
        users_table=_env_str("AICOUNSEL_USERS_TABLE", defaults.users_table),
        actions_table=_env_str("AICOUNSEL_ACTIONS_TABLE", defaults.actions_table),
        db_path=str(db_path),
        local_settings_path=str(local_path),
        timestamp_utc_offset_hours=_parse_offset_env("AICOUNSEL_UTC_OFFSET_HOURS", defaults.timestamp_utc_offset_hours),
    )


def load_persona_prompt(path: Path = COUNSELING_PROMPT_PATH) -> str:
    """Read the counseling persona instruction sent as the system seed."""
    try:
        prompt = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise ConfigurationError(f"Failed to load persona prompt from {path}: {e}") from e
    if not prompt:
        raise ConfigurationError(f"Persona prompt at {path} is empty.")
    return prompt
