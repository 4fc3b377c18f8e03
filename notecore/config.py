"""
Configuration module for Note Core.

Uses pydantic-settings for configuration management with environment variable support.
Environment variables use NOTE_ prefix (e.g., NOTE_VAULT_PATH).
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables:
    - NOTE_VAULT_PATH: Root directory of the Markdown vault
    - NOTE_LOG_LEVEL (or NOTE_DAEMON_LOG): error, warn, info or debug
    - NOTE_NOTE_EXTENSION: File extension treated as a note
    - NOTE_DAILY_FOLDER: Vault-relative folder for new daily notes
    - NOTE_STRICT_REINDEX: Abort a full reindex on the first failing note
    - NOTE_MAX_CONTENT_SIZE: Maximum note size accepted by write-back, in bytes
    - NOTE_EXCERPT_LENGTH: Maximum characters kept in a mention excerpt
    - NOTE_SUMMARY_TOP_TAGS: Number of tags reported by the weekly summary
    - NOTE_TRANSPORT: stdio or tcp
    - NOTE_HOST / NOTE_PORT: Listen address for the tcp transport
    """

    vault_path: Path = Field(default_factory=lambda: Path("."))
    log_level: str = "info"
    note_extension: str = ".md"
    daily_folder: str = ""
    strict_reindex: bool = True
    max_content_size: int = 1 * 1024 * 1024  # 1MB in bytes
    excerpt_length: int = 120
    summary_top_tags: int = 10
    transport: Literal["stdio", "tcp"] = "stdio"
    host: str = "127.0.0.1"
    port: int = 7878

    model_config = SettingsConfigDict(env_prefix="NOTE_")

    @model_validator(mode="before")
    @classmethod
    def _daemon_log_fallback(cls, data: Any) -> Any:
        # NOTE_DAEMON_LOG applies only when no explicit level was given
        legacy = os.environ.get("NOTE_DAEMON_LOG")
        if legacy and isinstance(data, dict) and "log_level" not in data:
            return {**data, "log_level": legacy}
        return data

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"invalid log level '{value}' (expected error, warn, info or debug)")
        return level

    @field_validator("note_extension")
    @classmethod
    def _check_extension(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("note extension cannot be empty")
        return value if value.startswith(".") else f".{value}"

    @property
    def log_level_value(self) -> int:
        return LOG_LEVELS[self.log_level]


# Global settings instance
settings = Settings()

# Template written by open_daily for a date that has no note yet
DAILY_TEMPLATE = "# {date}\n\n## Tasks\n\n## Log\n"
