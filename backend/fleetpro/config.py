from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from typing_extensions import Annotated


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="FP_", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "FleetPro"
    environment: str = "development"
    host: str = os.getenv("FP_HOST", "127.0.0.1")
    port: int = int(os.getenv("FP_PORT", "8080"))
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv("FP_CORS_ORIGINS", "http://127.0.0.1:3000,http://localhost:3000").split(",")
            if origin.strip()
        ]
    )

    storage_backend: str = os.getenv("FP_STORAGE", "json")
    data_file: Path = Path(os.getenv("FP_DATA_FILE", "./data/demoData.json"))
    sqlite_path: Path = Path(os.getenv("FP_SQLITE_PATH", "./data/fleetpro.db"))
    seed_demo_data: bool = os.getenv("FP_SEED_DEMO_DATA", "true").lower() == "true"

    booking_cooldown_seconds: int = int(os.getenv("FP_BOOKING_COOLDOWN_SECONDS", "300"))

    log_level: str = os.getenv("FP_LOG_LEVEL", "INFO")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if not value:
            return []
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"json", "sqlite"}:
            raise ValueError(f"Unsupported storage backend: {value}")
        return normalized

    @field_validator("booking_cooldown_seconds")
    @classmethod
    def _non_negative_cooldown(cls, value: int) -> int:
        return max(0, value)


settings = Settings()

# Ensure essential directories exist
settings.data_file.parent.mkdir(parents=True, exist_ok=True)
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
