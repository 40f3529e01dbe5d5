"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Transit Arrivals API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Static GTFS source
    gtfs_static_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("STATIC_GTFS_PATH", "GTFS_STATIC_PATH"),
    )
    gtfs_static_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("STATIC_GTFS_URL", "GTFS_STATIC_URL"),
    )
    gtfs_static_load_on_startup: bool = True
    gtfs_static_fetch_timeout_sec: int = 120

    # GTFS-RT feed URLs
    gtfs_trip_updates_url: str = Field(
        default="https://romamobilita.it/sites/default/files/rome_rtgtfs_trip_updates_feed.pb",
        validation_alias=AliasChoices("TRIP_UPDATES_URL", "GTFS_TRIP_UPDATES_URL"),
    )
    gtfs_vehicle_positions_url: str = Field(
        default="https://romamobilita.it/sites/default/files/rome_rtgtfs_vehicle_positions_feed.pb",
        validation_alias=AliasChoices("VEHICLE_POSITIONS_URL", "GTFS_VEHICLE_POSITIONS_URL"),
    )

    # GTFS-RT polling / worker
    gtfs_rt_poll_interval_sec: int = Field(default=30, ge=1)
    stale_feed_threshold_sec: int = 120
    # Header timestamps further than this from the local clock are ignored
    max_feed_clock_skew_sec: int = Field(default=86400, ge=60)
    gtfs_rt_fetch_timeout_sec: int = 15
    gtfs_rt_max_retries: int = 3
    gtfs_rt_backoff_base: float = 2.0
    gtfs_rt_auto_start: bool = False
    gtfs_rt_start_offline: bool = False

    # Schedule interpretation
    agency_timezone: str = "Europe/Rome"

    # Arrival windows (minutes)
    arrival_imminent_min: int = 2
    arrival_past_tolerance_min: int = 2
    arrival_static_window_min: int = 120
    arrival_rt_window_min: int = 90
    arrival_rt_override_gap_min: int = 30
    arrival_rt_route_horizon_min: int = 360
    arrival_max_rt_results: int = 12

    # Search
    search_result_limit: int = Field(default=100, ge=1, le=1000)
    default_nearby_radius_km: float = 0.5
    max_nearby_radius_km: float = 5.0

    def missing_required_env(self) -> list[str]:
        """Return required environment variables that are missing or empty."""
        missing: list[str] = []

        if self.gtfs_static_load_on_startup and not (
            self.gtfs_static_path or self.gtfs_static_url
        ):
            missing.append("GTFS_STATIC_PATH")

        return missing


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
