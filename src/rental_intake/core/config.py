from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./rental_intake.db"
    extraction_cache_enabled: bool = False

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    provider_timeout_seconds: float = 45.0
    provider_max_attempts: int = 3
    provider_backoff_base_seconds: float = 1.0
    provider_backoff_max_seconds: float = 8.0
    extraction_max_chars: int = 16000

    intake_max_workers: int = 3

    match_threshold: int = 60
    match_suggestion_threshold: int = 30

    low_confidence_threshold: float = 0.5
    max_stay_nights: int = 30
    max_guests: int = 20


settings = Settings()
