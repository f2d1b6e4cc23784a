"""Application configuration using Pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # AI provider (empty key means fallback replies only)
    groq_api_key: str = ""
    groq_model: str = "llama-3.1-8b-instant"
    ai_timeout_seconds: float = 8.0
    provider_cooldown_seconds: float = 30.0
    context_window: int = 10

    # Narration
    elevenlabs_api_key: str = ""
    elevenlabs_model: str = "eleven_turbo_v2_5"
    tts_timeout_seconds: float = 10.0

    # USSD gateway
    ussd_session_ttl_seconds: float = 180.0
    ussd_max_chars: int = 160

    # Server Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    # Data Storage
    session_backend: Literal["memory", "json"] = "memory"
    data_path: Path = Path("./heal_data")

    def ensure_data_dirs(self) -> None:
        """Ensure required data directories exist."""
        if self.session_backend == "json":
            self.data_path.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    settings = Settings()
    settings.ensure_data_dirs()
    return settings
