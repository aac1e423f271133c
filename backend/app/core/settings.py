from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path
from functools import lru_cache

class AppSettings(BaseSettings):
    allowed_origins: str = "http://localhost:5173"

    # Provider used when a request does not name one: openai | gemini | ollama
    default_provider: str = "openai"

    # Optional so the app still boots (with the echo fallback) without keys
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo-16k"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"

    generation_temperature: float = 0.7

    # A session cancelled before any output still writes an (empty) history record
    persist_empty_results: bool = True

    sse_heartbeat_interval: float = 15.0

    model_config = SettingsConfigDict(
        # Resolve to backend/app/.env regardless of current working directory
        env_file=str(Path(__file__).resolve().parents[1] / ".env"),
        extra="ignore",
    )

class DatabaseSettings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./content_studio.db"

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[1] / ".env"),
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings()


settings = AppSettings()
