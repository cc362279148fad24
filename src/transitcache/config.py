from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRANSITCACHE_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "transitcache"
    env: str = "dev"

    # Cache engine
    namespace: str = "transit_cache:"
    max_memory_entries: int = Field(default=100, gt=0)
    default_ttl: float = Field(default=300.0, gt=0)  # 5 minutes
    refresh_threshold: float = Field(default=120.0, ge=0)  # refresh 2 min before expiry
    background_refresh_delay: float = Field(default=0.0, ge=0)

    # Durable store
    store_backend: str = "memory"  # memory, local or redis
    store_path: str = "~/.cache/transitcache"
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("TRANSITCACHE_REDIS_URL", "REDIS_URL"),
    )

    # Periodic maintenance
    live_buses_interval: float = Field(default=30.0, gt=0)
    line_catalog_interval: float = Field(default=30 * 60.0, gt=0)

    # Observability
    log_level: str = "INFO"
    log_json: bool = False
    enable_metrics: bool = True


settings = Settings()
