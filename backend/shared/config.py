"""
Central configuration for the scorewatch service.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models.enums import OverrunPolicy


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Root settings for the poll loop, store watcher and adapters."""

    model_config = SettingsConfigDict(
        env_prefix="SW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Unique pod/container ID, bound to every log line")

    # ── Redis ────────────────────────────────────────────────
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_max_connections: int = 20
    connect_retry_attempts: int = 10
    connect_retry_base_delay_s: float = 2.0

    # ── Feed ─────────────────────────────────────────────────
    espn_base_url: str = "https://site.api.espn.com/apis/site/v2/sports"
    feed_sport: str = "football"
    feed_league: str = "nfl"
    feed_dates: Optional[str] = Field(
        default=None,
        description="Scoreboard date filter (YYYYMMDD or YYYYMMDD-YYYYMMDD); empty means today's board.",
    )
    feed_max_retries: int = 1
    team_filter: str = "Eagles"

    # ── Poll loop ────────────────────────────────────────────
    poll_interval_s: float = Field(default=5.0, gt=0)
    fetch_timeout_s: float = Field(default=1.0, gt=0)
    overrun_policy: OverrunPolicy = OverrunPolicy.SKIP

    # ── Score store / bus ────────────────────────────────────
    score_bucket: str = "eagles_scores"
    updates_max_len: int = Field(default=1000, description="Approximate length cap of the bucket mutation stream")
    update_channel: str = "eagles.updates"

    # ── Store watcher ────────────────────────────────────────
    watch_block_ms: int = 5000
    watch_batch_size: int = 100
    watch_retry_delay_s: float = 2.0

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 2112

    @field_validator("team_filter")
    @classmethod
    def team_filter_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("team_filter must not be empty")
        return value.strip()

    @field_validator("feed_dates", mode="before")
    @classmethod
    def empty_dates_is_none(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def redis_url_str(self) -> str:
        return str(self.redis_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
