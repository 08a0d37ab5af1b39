"""
Configuration module using Pydantic BaseSettings.
All configuration is loaded from environment variables.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "F1 Race Replay Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database (race store)
    database_url: str = "sqlite:///./f1cache.db"

    # Data sources
    openf1_base_url: str = "https://api.openf1.org/v1"
    ergast_base_url: str = "https://api.jolpi.ca/ergast/f1"
    circuits_geojson_url: str = (
        "https://raw.githubusercontent.com/bacinger/f1-circuits/master/f1-circuits.geojson"
    )
    circuits_cache_path: str = "./circuits-cache.json"
    http_timeout: float = 60.0  # seconds
    max_retries: int = 3
    retry_backoff_s: float = 5.0  # sleep (attempt + 1) * backoff on HTTP 429
    live_from_year: int = 2018
    pit_stop_cutoff_season: int = 2012

    # Playback budget
    max_playback_s: int = 3300  # 55 min, leaves room for the podium screen
    reference_race_ms: int = 5_400_000  # 90 min grand prix
    sprint_factor: float = 0.7

    # Geometry / sampling
    outline_min_spacing: float = 20.0
    outline_min_points: int = 20
    sample_interval_s: float = 1.0
    post_race_hold_s: float = 60.0

    # Serving
    force_race_key: int | None = None
    race_swap_interval_s: float = 3600.0
    prefetch_enabled: bool = False
    prefetch_interval_s: float = 600.0
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
