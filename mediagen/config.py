"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """mediagen settings.

    Loaded from environment variables or .env file. Credentials are opaque
    strings; nothing here validates or rotates them.
    """

    # --- Application ---
    DEBUG: bool = False

    # --- Fal.ai (Grok / Seedream / Seedance / Wan) ---
    FAL_KEY: str = ""
    FAL_RUN_ENDPOINT: str = "https://fal.run"
    FAL_STORAGE_ENDPOINT: str = "https://rest.alpha.fal.ai/storage/upload"

    # --- Google Gemini (image) / Veo (video) ---
    GEMINI_API_KEY: str = ""
    GEMINI_ENDPOINT: str = "https://generativelanguage.googleapis.com/v1beta"

    # --- HTTP ---
    HTTP_TIMEOUT: float = 180.0

    # --- Long-running operations ---
    POLL_INTERVAL_SECONDS: float = 10.0
    POLL_TIMEOUT_SECONDS: float = 600.0

    # Download finished Veo videos and return inline bytes. Set False to hand
    # back the key-protected file URI instead.
    VEO_INLINE_VIDEO: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging for scripts embedding the core."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
