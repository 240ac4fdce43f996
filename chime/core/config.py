from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chime.core.enums import StorageBackend


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    env: Literal["dev", "prod"] = "dev"
    log_level: str = "INFO"

    storage_backend: StorageBackend = StorageBackend.JSON
    storage_path: str = "data/reminders.json"
    redis_url: str = "redis://localhost:6379/0"
    redis_key: str = "chime:reminders"

    # Empty means the host local zone.
    default_timezone: str = ""

    telegram_bot_token: str = ""
    telegram_chat_id: int | None = None

    sound_volume: float = Field(default=0.8, ge=0.0, le=1.0)
    sound_muted: bool = False

    worker_poll_interval_sec: int = 5

    background_enabled: bool = False
    background_key_prefix: str = "chime:background"
    background_poll_interval_sec: int = 60
    background_allowance_ms: int = 5000

    @field_validator("default_timezone", mode="before")
    @classmethod
    def strip_timezone(cls, value: object) -> str:
        if value is None:
            return ""
        return str(value).strip()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
