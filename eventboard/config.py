"""Application settings loaded from the environment."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_ids(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    """Main configuration, read from ``EVENTBOARD_*`` variables or ``.env``."""

    model_config = SettingsConfigDict(env_prefix="EVENTBOARD_", env_file=".env", extra="ignore")

    # Persistence
    backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "eventboard"

    # Authorization, comma-separated ids
    authorized_user_ids: str = Field(default="", description="Users allowed to create events")
    authorized_role_ids: str = Field(default="", description="Roles allowed to create and manage events")
    restrict_event_creation: bool = True

    # Job worker
    run_worker: bool = True
    poll_interval_seconds: float = 1.0
    worker_batch_size: int = 50

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def authorized_users(self) -> list[str]:
        return _split_ids(self.authorized_user_ids)

    @property
    def authorized_roles(self) -> list[str]:
        return _split_ids(self.authorized_role_ids)


@lru_cache
def get_settings() -> Settings:
    return Settings()
