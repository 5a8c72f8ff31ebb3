from __future__ import annotations

import os
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/kpl.db"


class CoreSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    database_url: str = Field(DEFAULT_DATABASE_URL, validation_alias="DATABASE_URL")

    host: str = Field("0.0.0.0", validation_alias="HOST")
    port: int = Field(3000, validation_alias="PORT")
    cors_origins: str = Field("*", validation_alias="CORS_ORIGINS")

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> CoreSettings:
    # Ensure data directory exists when using default SQLite path
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        os.makedirs("data", exist_ok=True)
    return CoreSettings()
