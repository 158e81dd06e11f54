"""Configuration management for the coach service."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8787
    log_level: str = "INFO"

    # Speech-to-text (provider chosen per deployment)
    speech_provider: str = "browser"  # assemblyai, deepgram, whisper, google, browser, gemini
    speech_api_key: str = ""
    speech_language: str = "en-US"
    max_upload_bytes: int = 10 * 1024 * 1024
    provider_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 1.0
    max_poll_attempts: int = 60

    # Generation key slots, highest priority first
    gemini_api_key: str = ""
    gemini_api_key_2: str = ""
    gemini_api_key_3: str = ""
    gemini_api_key_4: str = ""

    # Generation dispatch
    generation_model: str = ""  # configured default model, tried after any override
    generation_retries: int = 2
    generation_initial_delay_ms: int = 400
    generation_timeout_ms: int = 7000

    # /api/ai/generate-content proxy
    proxy_retries: int = 0
    proxy_timeout_ms: int = 30000

    # Persisted keys and runtime model override
    credentials_path: str = "~/.config/coach_service/credentials.json"

    model_config = {"env_prefix": "COACH_"}

    def gemini_api_keys(self) -> List[str]:
        """Key slots in priority order (empty slots included)."""
        return [
            self.gemini_api_key,
            self.gemini_api_key_2,
            self.gemini_api_key_3,
            self.gemini_api_key_4,
        ]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
