"""
Voice Relay configuration.

Loads settings from environment variables (optionally seeded from .env /
.env_local files) with sensible defaults.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from logging_setup import get_logger, Component

logger = get_logger(Component.CONFIG)

MIB = 1024 * 1024

_ENV_FILES = (".env_local", ".env.local", ".env")


class ConfigError(ValueError):
    """Raised when a required setting is missing. Fatal at startup."""


def load_env_files(root: Optional[Path] = None) -> None:
    """Best-effort load of local env files. Never overrides the real environment."""
    root = root or Path.cwd()
    for name in _ENV_FILES:
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    Handles cases like:
    - "300  # comment" -> 300
    - "300" -> 300
    - None -> default
    """
    value = os.environ.get(key)
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _optional(key: str) -> Optional[str]:
    value = os.environ.get(key, "").strip()
    return value or None


@dataclass
class RelayConfig:
    """Voice relay configuration."""

    # Telegram
    bot_token: str
    webhook_url: str
    secret_token: Optional[str] = None
    telegram_api_base: str = "https://api.telegram.org"
    register_webhook: bool = True

    # ASR backends
    vosk_endpoint: Optional[str] = None
    whisper_endpoint: Optional[str] = None

    # HTTP server
    port: int = 7860

    # External request log sink
    log_endpoint: Optional[str] = None

    # Storage
    staging_dir: Path = Path("tmp_audio")
    state_dir: Path = Path(".")
    max_file_size: int = 16 * MIB

    # Timers (seconds)
    janitor_interval_seconds: int = 60
    staging_retention_seconds: int = 900
    typing_interval_seconds: int = 4

    # Per-step deadlines (seconds)
    download_timeout_seconds: int = 60
    conversion_timeout_seconds: int = 120
    asr_timeout_seconds: int = 300
    telegram_timeout_seconds: int = 10

    ffmpeg_bin: str = "ffmpeg"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def update_log_file(self) -> Path:
        return self.state_dir / "last_update_id.txt"

    @property
    def user_models_file(self) -> Path:
        return self.state_dir / "user_models.json"

    @property
    def webhook_endpoint(self) -> str:
        return f"{self.webhook_url.rstrip('/')}/webhook"

    @property
    def max_file_size_mb(self) -> int:
        return self.max_file_size // MIB

    @property
    def worst_case_job_seconds(self) -> int:
        """Longest a job can hold its staging files: every step deadline plus the chat calls around them."""
        return (
            self.download_timeout_seconds
            + self.conversion_timeout_seconds
            + self.asr_timeout_seconds
            + 4 * self.telegram_timeout_seconds
        )

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """
        Load configuration from environment variables.

        Raises:
            ConfigError: if BOT_TOKEN or WEBHOOK_URL is missing
        """
        bot_token = _optional("BOT_TOKEN")
        if not bot_token:
            raise ConfigError("BOT_TOKEN is required")
        webhook_url = _optional("WEBHOOK_URL")
        if not webhook_url:
            raise ConfigError("WEBHOOK_URL is required")

        config = cls(
            bot_token=bot_token,
            webhook_url=webhook_url,
            secret_token=_optional("SECRET_TOKEN"),
            telegram_api_base=os.environ.get("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/"),
            register_webhook=_parse_bool_env("REGISTER_WEBHOOK", True),
            vosk_endpoint=_optional("VOSK_ENDPOINT"),
            whisper_endpoint=_optional("WHISPER_ENDPOINT"),
            port=_parse_int_env("PORT", 7860),
            log_endpoint=_optional("LOG_ENDPOINT"),
            staging_dir=Path(os.environ.get("STAGING_DIR", "tmp_audio")),
            state_dir=Path(os.environ.get("STATE_DIR", ".")),
            max_file_size=_parse_int_env("MAX_FILE_SIZE_BYTES", 16 * MIB),
            janitor_interval_seconds=_parse_int_env("JANITOR_INTERVAL_SECONDS", 60),
            staging_retention_seconds=_parse_int_env("STAGING_RETENTION_SECONDS", 900),
            typing_interval_seconds=_parse_int_env("TYPING_INTERVAL_SECONDS", 4),
            download_timeout_seconds=_parse_int_env("DOWNLOAD_TIMEOUT_SECONDS", 60),
            conversion_timeout_seconds=_parse_int_env("CONVERSION_TIMEOUT_SECONDS", 120),
            asr_timeout_seconds=_parse_int_env("ASR_TIMEOUT_SECONDS", 300),
            telegram_timeout_seconds=_parse_int_env("TELEGRAM_TIMEOUT_SECONDS", 10),
            ffmpeg_bin=os.environ.get("FFMPEG_BIN", "ffmpeg"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_json=_parse_bool_env("LOG_JSON", True),
        )

        if config.staging_retention_seconds <= config.worst_case_job_seconds:
            logger.warning(
                "Staging retention does not exceed the worst-case job duration; "
                "the janitor may reap files of a running job",
                staging_retention_seconds=config.staging_retention_seconds,
                worst_case_job_seconds=config.worst_case_job_seconds,
            )
        return config
