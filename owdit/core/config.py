"""Core configuration for the Owdit analysis engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OWDIT_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "Owdit Engine"
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Cache (Redis) ────────────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379/0"
    cache_prefix: str = "owdit"
    cache_ttl_hours: int = 24

    # ── Source fetching ──────────────────────────────────────────────────
    etherscan_api_key: str = ""
    etherscan_api_url: str = "https://api.etherscan.io/v2/api"
    sourcify_api_url: str = "https://sourcify.dev/server"
    http_timeout_seconds: float = 10.0
    rpc_url_overrides: dict[int, str] = Field(default_factory=dict)
    fetch_retries: int = Field(default=2, ge=0)
    fetch_retry_base_delay_seconds: float = 0.5

    # ── Import resolution ────────────────────────────────────────────────
    import_cdn_enabled: bool = False
    import_cdn_url: str = "https://cdn.jsdelivr.net/npm"
    import_fetch_timeout_seconds: float = 5.0

    # ── Bytecode heuristics ──────────────────────────────────────────────
    selfdestruct_high_threshold: int = 10
    selfdestruct_critical_threshold: int = 100
    access_control_min_selectors: int = 5

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_hours * 3600


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
