"""Application configuration."""

import logging
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Components receive the values they need at construction time; changing
    settings means rebuilding the affected components.
    """

    # Application
    app_name: str = "Mangekyo Translator"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Database (persistent cache and session context)
    database_url: str = "sqlite+aiosqlite:///./mangekyo.db"

    # Engines
    primary_engine: str = "deepl"  # deepl | google | openai
    fallback_engine: Optional[str] = "google"
    deepl_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    engine_timeout: float = 30.0  # seconds, hard timeout per engine call
    max_retries: int = 3  # total attempts per engine call
    retry_base_delay: float = 1.0
    retry_max_delay: float = 15.0

    # Marker pipeline
    preserve_honorifics: bool = True
    honorific_mode: str = "hybrid"  # preserve | adapt | hybrid | remove
    sfx_mode: str = "auto"

    # Cache
    cache_strategy: str = "hybrid"  # memory | persistent | hybrid
    cache_memory_entries: int = 500
    cache_max_persistent_entries: int = 5000
    cache_ttl_hours: int = 168
    cache_similarity_threshold: float = 0.85
    cache_compression_threshold: int = 1024  # bytes

    # Context tracking
    context_window_size: int = 5
    context_expiry_days: int = 30
    context_save_interval: int = 10  # bubbles between saves

    # Orchestration
    batch_concurrency: int = 4
    min_fuzzy_confidence: float = 0.85

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_choices(self) -> "Settings":
        engines = {"deepl", "google", "openai"}
        if self.primary_engine not in engines:
            raise ValueError(f"primary_engine must be one of {sorted(engines)}")
        if self.fallback_engine and self.fallback_engine not in engines:
            raise ValueError(f"fallback_engine must be one of {sorted(engines)}")
        if self.fallback_engine == self.primary_engine:
            self.fallback_engine = None
        if self.cache_strategy not in {"memory", "persistent", "hybrid"}:
            raise ValueError("cache_strategy must be memory, persistent or hybrid")
        return self


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the service."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()
