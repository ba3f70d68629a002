"""Environment-driven configuration for the DIY Projects API.

Every setting the service reads lives on ``AppSettings``. Values come from the
process environment first, then from ``.env`` / ``.env.local`` files, then from
the defaults below, which are enough to boot a local SQLite instance.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "DIY Projects API"
    APP_ENV: str = "dev"

    # Any SQLAlchemy URL works; SQLite is the zero-setup default.
    DB_URL: str = Field(
        default="sqlite:///./diy_projects.db",
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )
    DB_ECHO: bool = False

    # Leave empty to run the API open (local demos); set to require X-API-Key.
    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = Field(default_factory=list)

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Load the demo catalogue and projects into an empty database at startup.
    SEED_SAMPLE_DATA: bool = False

    MATERIALS_PAGE_SIZE: int = 20
    PROJECTS_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 200
    STOCK_HISTORY_LIMIT: int = 50

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    @property
    def is_sqlite(self) -> bool:
        return self.DB_URL.startswith("sqlite")

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
