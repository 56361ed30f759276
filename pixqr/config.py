"""Application configuration utilities."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Root logger level")
    json_logs: bool = Field(default=True, description="Enable JSON formatted logs")


class MerchantConfig(BaseModel):
    """Receiver data embedded in every generated BR Code."""

    pix_key: str = Field(default="12345678900", min_length=1, max_length=77)
    name: str = Field(default="PDV Inteligente", min_length=1)
    city: str = Field(default="SAO PAULO", min_length=1)


class Settings(BaseSettings):
    """Central application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent / ".env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    app_name: str = Field(default="pixqr")
    environment: Literal["development", "staging", "production"] = Field(default="development")
    api_key: str = Field(default="dev-secret-key")
    database_url: str = Field(default="sqlite+aiosqlite:///./pixqr.db")
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    merchant: MerchantConfig = Field(default_factory=MerchantConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return memoized application settings."""

    return Settings()


settings = get_settings()
