from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PATCH_GATE_",
        extra="ignore",
    )

    LOG_LEVEL: str = "WARNING"

    # --- Snapshot limits ---
    MAX_DOCUMENT_DEPTH: int = 256

    # --- Patch application ---
    STOP_ON_PATCH_ERROR: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()
