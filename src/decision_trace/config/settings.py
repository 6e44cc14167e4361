"""Application settings using Pydantic."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Ollama LLM Configuration
    llm_ollama_base_url: str = "http://localhost:11434"
    llm_model_name: str = "gpt-oss:20b"
    llm_temperature: float = 0.0
    llm_request_timeout: int = 120
    llm_num_ctx: int = 8192
    llm_num_predict: int = 4096

    # Retry / backoff
    max_retries: int = 3
    retry_initial_delay_ms: int = 1000
    retry_max_delay_ms: int = 30000
    retry_backoff_multiplier: float = 2.0
    retryable_status_codes: list[int] = [429, 500, 502, 503, 504]

    # Leakage guard
    leakage_threshold_percent: float = 30.0
    leakage_min_field_words: int = 4

    # Persistence
    stage_store_dir: Path = Path("data/cases")

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
