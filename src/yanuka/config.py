"""
Yanuka - Configuration and settings.

Only wiring code (CLI, get_client, build_repository) reads settings; the data
layer components take explicit arguments.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, read from the environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase
    supabase_url: str
    supabase_anon_key: str

    # Application
    yanuka_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Data layer
    # Encoding of the content tables: one JSONB "data" column (the layout the
    # document-store migration produced) or normal typed columns.
    default_encoding: Literal["json_column", "flat_columns"] = "json_column"
    app_config_id: str = "config"

    @property
    def is_development(self) -> bool:
        return self.yanuka_env == "development"

    @property
    def is_production(self) -> bool:
        return self.yanuka_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
