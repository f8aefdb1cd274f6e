"""
Application configuration using Pydantic Settings.

A single `Settings` instance is built at process start and handed to
`create_app`; services receive the values they need through their
constructors instead of reading the environment themselves.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables (or a local .env file)."""

    # Storage
    MONGO_URI: Optional[str] = None
    MONGO_DB: str = "credit_library"

    # Stored PDF bytes live under this directory
    UPLOAD_ROOT: Path = Path("uploads")
    STREAM_CHUNK_SIZE: int = 64 * 1024

    # Credit economics
    DOWNLOAD_COST: int = 5
    PLAN_MONTHS: int = 1
    DEFAULT_REJECTION_REASON: str = "Payment rejected by admin"

    # Logging
    AUDIT_LOG_PATH: Path = Path("logs/credit_audit.log")
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)
