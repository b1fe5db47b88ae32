"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Narrative reasoner
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"

    # Discovery sources
    eventfinda_username: str | None = None
    eventfinda_password: SecretStr | None = None
    eventfinda_base_url: str = "https://api.eventfinda.sg/v2"
    scraper_api_key: SecretStr | None = None
    scraper_zone: str | None = None
    scraper_base_url: str = "https://api.brightdata.com/request"
    eventbrite_listing_url: str = "https://www.eventbrite.sg/d/singapore--singapore"
    discovery_max_results: int = 20
    discovery_date_range_days: int = 3
    discovery_timeout_s: float = 10.0

    # HTTP retry policy
    http_max_retries: int = 2
    http_base_delay_ms: int = 1100

    # Weather suitability
    weather_enabled: bool = False
    weather_base_url: str = "https://api.open-meteo.com/v1/forecast"
    weather_rain_threshold: float = 0.5

    # Tunable matching thresholds
    dedup_similarity_threshold: float = 0.75
    plan_word_overlap_threshold: float = 0.6

    # Ranking
    planning_top_k: int = 1

    # Scheduler
    plan_max_items: int = 4
    plan_cutoff_hour: int = 23
    plan_max_gap_minutes: int = 45
    plan_max_span_hours: float = 8.0
    local_utc_offset_hours: float = 8.0
    default_currency: str = "SGD"
    default_lat: float = 1.3521
    default_lng: float = 103.8198
    default_city: str = "Singapore"

    # Approval gate and run registry
    approval_timeout_s: float | None = None
    run_eviction_seconds: int = 300

    # Execution
    knowledge_base_base_url: str | None = None
    knowledge_base_api_key: SecretStr | None = None
    checkout_max_steps: int = 6
    screenshot_dir: str = "/tmp"
    browser_headless: bool = True
    browser_timeout_ms: int = 30000
    default_phone: str = "+6500000000"
    booking_item_timeout_s: float = 180.0

    # Settle delays (milliseconds)
    settle_after_open_ms: int = 2000
    settle_after_booking_click_ms: int = 2000
    settle_first_step_ms: int = 3000
    settle_next_step_ms: int = 2500
    settle_after_fill_ms: int = 500
    settle_final_ms: int = 3000
    quantity_click_delay_ms: int = 300
    quantity_settle_ms: int = 500

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
