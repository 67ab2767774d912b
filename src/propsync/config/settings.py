"""Configuration management using Pydantic Settings."""

from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StampPolicy(str, Enum):
    """When the workspace membership is copied onto a property or tag."""

    ON_CREATE = "on_create"
    ON_EVERY_WRITE = "on_every_write"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="PROPSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document store
    store_backend: str = Field("memory", pattern="^(memory|firestore)$")
    firestore_project: Optional[str] = Field(None, description="Google Cloud project id")
    firestore_database: Optional[str] = Field(None, description="Firestore database id")

    # Atomic batch capacity (Firestore caps a batch at 500 writes)
    max_batch_writes: int = Field(500, ge=2, le=500)

    # Retry configuration for transient store reads
    store_retry_attempts: int = Field(3, ge=1, le=10)
    store_retry_max_wait: float = Field(10.0, gt=0)

    # Whether updates re-stamp membership ("on_create" keeps it untouched)
    membership_stamp_policy: StampPolicy = Field(
        StampPolicy.ON_CREATE,
        description="When memberUserIds is written onto properties and tags",
    )

    # Export / import
    export_version: str = Field("1.0")
    output_dir: Path = Field(Path("exports"))

    # Links shared between users
    deep_link_scheme: str = Field("propsync", pattern="^[a-z][a-z0-9+.-]*$")

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json", pattern="^(json|text)$")


# Instantiate global settings
settings = Settings()
