"""Application configuration with environment variable loading.

Values default from the environment (and a ``.env`` file when present) so the
app runs with nothing but ``OPENROUTER_API_KEY`` set. A missing key does not
stop the app from starting; the first request fails with an auth error.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "x-ai/grok-4-fast"


class Settings(BaseModel):
    """Runtime settings for PolyChat.

    Attributes:
        api_key: Provider API key. Empty means unconfigured.
        base_url: OpenAI-compatible endpoint base URL.
        default_model: Catalog id used when no model is requested.
        history_limit: Most recent persisted turns sent with each request.
        reveal_delay: Seconds between revealed characters.
        retry_attempts: Total attempts for retryable dispatch failures.
        retry_base_delay: First backoff delay in seconds, doubled per attempt.
        request_timeout: Per-request timeout in seconds.
        storage_dir: Directory for the file-backed blob. None keeps it in memory.
        log_level: Root logging level name.
    """

    api_key: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_API_KEY", ""),
        validate_default=True,
        description="API key for the model provider",
    )
    base_url: str = Field(
        default_factory=lambda: os.getenv("POLYCHAT_BASE_URL", DEFAULT_BASE_URL),
    )
    default_model: str = Field(
        default_factory=lambda: os.getenv("POLYCHAT_DEFAULT_MODEL", DEFAULT_MODEL),
    )
    history_limit: int = Field(default=20, ge=1, le=500)
    reveal_delay: float = Field(default=0.03, ge=0.0, le=5.0)
    retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    request_timeout: float = Field(default=30.0, gt=0.0)
    storage_dir: Optional[str] = Field(
        default_factory=lambda: os.getenv("POLYCHAT_STORAGE_DIR") or None,
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("POLYCHAT_LOG_LEVEL", "WARNING"),
        validate_default=True,
    )
    app_title: str = "PolyChat - Multi-Model AI Chat"
    referer: str = "http://localhost:8050"

    @field_validator("api_key")
    @classmethod
    def strip_api_key(cls, v: str) -> str:
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


def get_settings() -> Settings:
    """Create settings from the current environment."""
    return Settings()


def setup_logging(level: str = "WARNING") -> None:
    """Configure root logging once for the app process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug("Logging configured at %s", level.upper())
