"""Centralized configuration for the replay engine."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Replay engine configuration loaded from environment variables."""

    environment: str = "development"

    # Upstream store
    api_base_url: str = "http://localhost:8000"
    api_token: str | None = None
    request_timeout_seconds: float = Field(default=20.0, gt=0)

    # Monitored submission served by the HTTP surface
    submission_id: str | None = None

    # Live reconciliation
    poll_interval_seconds: float = Field(default=10.0, gt=0)

    # Playback
    playback_base_interval_seconds: float = Field(default=1.0, gt=0)
    default_speed: float = Field(default=1.0, gt=0)
    speed_presets: list[float] = [0.5, 1.0, 2.0, 4.0]
    step_size: int = Field(default=5, ge=1)
    reconstruction_cache_size: int = Field(default=256, ge=1)

    # Logging
    log_level: str = "info"
    log_json: bool = False

    # HTTP surface
    host: str = "127.0.0.1"
    port: int = Field(default=8095, ge=1, le=65535)

    @property
    def json_logs(self) -> bool:
        """JSON log lines in production, or whenever ``log_json`` is set."""
        return self.log_json or self.environment == "production"

    model_config = {"env_prefix": "DRAFTSCOPE_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
