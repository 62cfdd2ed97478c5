from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SEED_DIR = Path(__file__).resolve().parent.parent / "seed"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./levelup.db"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Remote LevelUp backend; the local cache is used alone when unset
    remote_api_base_url: str | None = None
    remote_api_token: str | None = None
    remote_timeout_seconds: float = 5.0
    remote_retry_after_seconds: int = 30

    seed_data_dir: str = str(DEFAULT_SEED_DIR)

    # Loyalty rules
    points_earn_amount_per_point: int = 100
    institutional_discount_rate: Decimal = Decimal("0.20")
    institutional_email_domain: str = "duocuc.cl"

    @field_validator("remote_api_base_url", mode="before")
    @classmethod
    def _blank_url_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("points_earn_amount_per_point")
    @classmethod
    def _positive_earn_unit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("points_earn_amount_per_point must be positive")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
