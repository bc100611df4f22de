from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mailrender.services.render.types import Theme


class Settings(BaseSettings):
    # Prefer repo-root `.env`; keep local `.env` as a fallback for service-specific overrides.
    _REPO_ROOT = Path(__file__).resolve().parents[4]
    model_config = SettingsConfigDict(env_file=(_REPO_ROOT / ".env", ".env"), extra="ignore")

    VERSION: str = "0.1.0"
    APP_ENV: str = "dev"  # dev|test|prod

    CORS_ORIGINS: str = "http://localhost:3000"
    REQUEST_ID_HEADER: str = "x-request-id"
    ENABLE_PROMETHEUS_METRICS: bool = True
    PROMETHEUS_METRICS_PATH: str = "/metrics"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    CONTENT_SECURITY_POLICY: str = (
        "default-src 'self'; "
        "img-src 'self' data:; "
        "style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; "
        "connect-src 'self'; "
        "frame-ancestors 'none'; "
        "base-uri 'self'; "
        "form-action 'self'"
    )

    # Render pipeline
    RENDER_MAX_CONCURRENCY: int = 8
    ATTACHMENT_FETCH_TIMEOUT_SECONDS: float = 10.0
    MESSAGE_RENDER_TIMEOUT_SECONDS: float = 30.0
    DEFAULT_THEME: Theme = Theme.light
    DEFAULT_LOAD_EXTERNAL_IMAGES: bool = False

    @field_validator("RENDER_MAX_CONCURRENCY")
    @classmethod
    def _validate_max_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("RENDER_MAX_CONCURRENCY must be at least 1")
        return v

    @field_validator(
        "ATTACHMENT_FETCH_TIMEOUT_SECONDS",
        "MESSAGE_RENDER_TIMEOUT_SECONDS",
        "HTTP_TIMEOUT_SECONDS",
    )
    @classmethod
    def _validate_positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be greater than 0")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
